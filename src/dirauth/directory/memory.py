"""
DirAuth In-Memory Directory

Simulated directory server for tests, demos, and development, backed by
an ldap3 MOCK_SYNC connection.

Behaves like an LDAP server from the authenticator's point of view:
- search() runs on the mock connection, so RFC 4515 filters are parsed
  and evaluated by ldap3 itself
- bind() verifies the password against the entry's userPassword using
  the directory's own scheme handling (the ldap3 mock only compares
  cleartext)
- A bind with an empty password succeeds as an unauthenticated bind,
  as RFC 4513 section 5.1.2 servers commonly allow

Values of DN-valued attributes (member, uniqueMember, ...) are stored
normalized so equality filters match regardless of spacing, as a
server's distinguishedNameMatch would.

Every operation is recorded so tests can assert how many directory
round trips a call made. Latency and outages can be simulated.
"""

from __future__ import annotations

import re
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import attrs
import structlog
from ldap3 import (
    ALL_ATTRIBUTES,
    BASE,
    LEVEL,
    MOCK_SYNC,
    MODIFY_DELETE,
    MODIFY_REPLACE,
    NONE,
    SUBTREE,
    Connection,
    Server,
)
from ldap3.core.exceptions import LDAPInvalidDnError, LDAPInvalidFilterError
from ldap3.utils.dn import safe_dn

from dirauth.core.crypto import verify_password
from dirauth.core.exceptions import DirectoryError, DirectoryUnreachable, InvalidStoredSecret
from dirauth.core.types import AttributeValues, DirectoryEntry, SearchScope
from dirauth.directory.client import DirectoryClient
from dirauth.directory.dn import is_descendant, normalize_dn, parent_dn
from dirauth.directory.ldap_client import (
    RESULT_NO_SUCH_OBJECT,
    RESULT_SUCCESS,
    entries_from_response,
)
from dirauth.directory.ldif import parse_ldif, read_ldif

logger = structlog.get_logger()

_SCOPES = {
    SearchScope.BASE: BASE,
    SearchScope.ONELEVEL: LEVEL,
    SearchScope.SUBTREE: SUBTREE,
}

# The mock adds this entry on its own
SCHEMA_DN = "cn=schema"

# Attributes with distinguishedName syntax
DN_ATTRIBUTES = frozenset({"member", "uniquemember", "owner", "roleoccupant", "seealso", "manager"})

# filterError (RFC 4511 appendix A)
RESULT_FILTER_ERROR = 87

# Padding around unescaped DN separators
_DN_PADDING = re.compile(r"\s*(?<!\\)([,=+])\s*")


def _values(value: AttributeValues) -> List[str]:
    if isinstance(value, (str, bytes)):
        return [value]
    return list(value)


def _compact_dn(dn: str) -> str:
    """Drop padding around separators, keeping case."""
    return _DN_PADDING.sub(r"\1", dn.strip())


def _normalize_value(attribute: str, value: str) -> str:
    if attribute.lower() not in DN_ATTRIBUTES:
        return value
    return _compact_dn(value)


def _open_mock_connection() -> Connection:
    server = Server("dirauth-memory", get_info=NONE)
    conn = Connection(
        server,
        client_strategy=MOCK_SYNC,
        raise_exceptions=False,
        return_empty_attributes=False,
    )
    conn.open(read_server_info=False)
    return conn


@attrs.define
class InMemoryDirectory(DirectoryClient):
    """
    Thread-safe in-memory directory.

    Example:
        directory = InMemoryDirectory()
        directory.add_entry(
            "uid=alice,ou=people,dc=example,dc=org",
            {"objectClass": ["person"], "uid": "alice",
             "userPassword": hash_password("secret12")},
        )
        assert directory.bind("uid=alice,ou=people,dc=example,dc=org", "secret12")
    """

    password_attribute: str = "userPassword"
    allow_unauthenticated_bind: bool = True
    latency: float = 0.0
    online: bool = True
    default_timeout: float = 10.0

    _connection: Connection = attrs.field(factory=_open_mock_connection, repr=False)
    _operations: List[Tuple[str, str]] = attrs.Factory(list)
    _lock: threading.RLock = attrs.Factory(threading.RLock)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_ldif(cls, source: Union[str, Path], **kwargs: Any) -> InMemoryDirectory:
        """
        Create a directory seeded from an LDIF file path or LDIF text.

        Args:
            source: Path to an .ldif file, or LDIF content
            **kwargs: Passed to the constructor
        """
        directory = cls(**kwargs)
        directory.load_ldif(source)
        return directory

    def load_ldif(self, source: Union[str, Path]) -> int:
        """
        Add all records from an LDIF file path or LDIF text.

        Returns:
            Number of entries added
        """
        if isinstance(source, Path) or (isinstance(source, str) and "\n" not in source):
            records = read_ldif(source)
        else:
            records = list(parse_ldif(source))

        for dn, attributes in records:
            self.add_entry(dn, attributes)

        self._logger.debug("ldif_loaded", entries=len(records))
        return len(records)

    # -------------------------------------------------------------------------
    # Mutation (directory administration, not part of DirectoryClient)
    # -------------------------------------------------------------------------

    def add_entry(self, dn: str, attributes: Mapping[str, AttributeValues]) -> DirectoryEntry:
        """Add or replace an entry."""
        stored: Dict[str, List[str]] = {}
        for name, value in attributes.items():
            values = [_normalize_value(name, v) for v in _values(value)]
            if values:
                stored[name] = values
        if not any(name.lower() == "objectclass" for name in stored):
            stored["objectClass"] = ["top"]

        with self._lock:
            strategy = self._connection.strategy
            dn = _compact_dn(dn)
            strategy.remove_entry(dn)
            strategy.add_entry(dn, stored, validate=False)
            return self._read(dn)

    def remove_entry(self, dn: str) -> bool:
        """Remove an entry. Returns True if it existed."""
        with self._lock:
            return bool(self._connection.strategy.remove_entry(_compact_dn(dn)))

    def add_value(self, dn: str, attribute: str, value: str) -> None:
        """Append a value to an attribute of an existing entry."""
        with self._lock:
            entry = self._require(dn)
            values = entry.get(attribute) + (_normalize_value(attribute, value),)
            self._replace(entry, attribute, values)

    def remove_value(self, dn: str, attribute: str, value: str) -> None:
        """Remove a value (case-insensitive) from an attribute of an existing entry."""
        target = _normalize_value(attribute, value).lower()
        with self._lock:
            entry = self._require(dn)
            current = entry.get(attribute)
            values = tuple(v for v in current if v.lower() != target)
            if values != current:
                self._replace(entry, attribute, values)

    def get_entry(self, dn: str) -> Optional[DirectoryEntry]:
        """Read an entry without recording a directory operation."""
        with self._lock:
            return self._read(dn)

    @property
    def size(self) -> int:
        """Number of entries."""
        with self._lock:
            return sum(
                1 for dn in self._connection.strategy.entries if dn.lower() != SCHEMA_DN
            )

    def _read(self, dn: str) -> Optional[DirectoryEntry]:
        entries = self._query(dn, "(objectClass=*)", None, SearchScope.BASE)
        return entries[0] if entries else None

    def _require(self, dn: str) -> DirectoryEntry:
        entry = self._read(dn)
        if entry is None:
            raise KeyError(dn)
        return entry

    def _replace(self, entry: DirectoryEntry, attribute: str, values: Tuple[str, ...]) -> None:
        change = (MODIFY_REPLACE, list(values)) if values else (MODIFY_DELETE, [])
        self._connection.modify(entry.dn, {attribute: [change]})
        code = self._connection.result.get("result", RESULT_SUCCESS)
        if code != RESULT_SUCCESS:
            raise DirectoryError(f"Modify of {entry.dn} failed with result {code}", code=code)

    # -------------------------------------------------------------------------
    # Operation log
    # -------------------------------------------------------------------------

    @property
    def operations(self) -> List[Tuple[str, str]]:
        """Recorded (operation, target) pairs."""
        with self._lock:
            return list(self._operations)

    @property
    def operation_count(self) -> int:
        """Number of directory round trips recorded."""
        with self._lock:
            return len(self._operations)

    def reset_operations(self) -> None:
        """Clear the operation log."""
        with self._lock:
            self._operations.clear()

    def _record(self, operation: str, target: str) -> None:
        with self._lock:
            self._operations.append((operation, target))

    def _simulate_network(self, timeout: Optional[float]) -> None:
        limit = self.default_timeout if timeout is None else timeout
        if not self.online:
            raise DirectoryUnreachable("Directory is offline")
        if self.latency > 0:
            if self.latency >= limit:
                time.sleep(limit)
                raise DirectoryUnreachable(f"Directory timeout after {limit:.3f}s")
            time.sleep(self.latency)

    # -------------------------------------------------------------------------
    # DirectoryClient
    # -------------------------------------------------------------------------

    def bind(self, dn: str, password: str, timeout: Optional[float] = None) -> bool:
        """Verify password against the entry's stored secret."""
        self._record("bind", dn)
        self._simulate_network(timeout)

        if password == "":
            # Unauthenticated bind: name without password
            return self.allow_unauthenticated_bind

        entry = self.get_entry(dn)
        if entry is None:
            return False

        for stored in entry.get(self.password_attribute):
            try:
                if verify_password(password, stored):
                    return True
            except InvalidStoredSecret:
                self._logger.warning("unusable_stored_secret", dn=entry.dn)
        return False

    def search(
        self,
        base: str,
        search_filter: str,
        attributes: Optional[Iterable[str]] = None,
        scope: SearchScope = SearchScope.SUBTREE,
        timeout: Optional[float] = None,
    ) -> List[DirectoryEntry]:
        """Evaluate a filter over the entries under base."""
        self._record("search", base)
        self._simulate_network(timeout)
        with self._lock:
            return self._query(base, search_filter, attributes, scope)

    def _query(
        self,
        base: str,
        search_filter: str,
        attributes: Optional[Iterable[str]],
        scope: SearchScope,
    ) -> List[DirectoryEntry]:
        if not base.strip():
            return self._query_root(search_filter, attributes, scope)

        base = _compact_dn(base)
        try:
            normalized_base = normalize_dn(base)
            if safe_dn(base) not in self._connection.strategy.entries:
                return []
            self._connection.search(
                search_base=base,
                search_filter=search_filter,
                search_scope=_SCOPES[scope],
                attributes=list(attributes) if attributes is not None else ALL_ATTRIBUTES,
            )
        except LDAPInvalidDnError:
            # invalidDNSyntax: no entry can live there
            return []
        except LDAPInvalidFilterError as e:
            raise DirectoryError(f"Invalid filter {search_filter!r}: {e}", code=RESULT_FILTER_ERROR) from e

        code = self._connection.result.get("result", RESULT_SUCCESS)
        if code == RESULT_NO_SUCH_OBJECT:
            return []
        if code != RESULT_SUCCESS:
            raise DirectoryError(f"Search under {base} failed with result {code}", code=code)

        results = []
        for entry in entries_from_response(self._connection.response or []):
            key = normalize_dn(entry.dn)
            if key == SCHEMA_DN and normalized_base != SCHEMA_DN:
                continue
            if scope == SearchScope.ONELEVEL:
                in_scope = parent_dn(key) == normalized_base
            elif scope == SearchScope.SUBTREE:
                in_scope = is_descendant(key, normalized_base)
            else:
                in_scope = True
            if in_scope:
                results.append(entry)
        return results

    def _query_root(
        self,
        search_filter: str,
        attributes: Optional[Iterable[str]],
        scope: SearchScope,
    ) -> List[DirectoryEntry]:
        # The root DSE itself holds no entries
        if scope == SearchScope.BASE:
            return []
        per_context = SearchScope.SUBTREE if scope == SearchScope.SUBTREE else SearchScope.BASE

        results: Dict[str, DirectoryEntry] = {}
        for context in self._naming_contexts():
            for entry in self._query(context, search_filter, attributes, per_context):
                results.setdefault(normalize_dn(entry.dn), entry)
        return list(results.values())

    def _naming_contexts(self) -> List[str]:
        """Stored entries whose parent is not stored."""
        dns = [dn for dn in self._connection.strategy.entries if dn.lower() != SCHEMA_DN]
        known = {normalize_dn(dn) for dn in dns}
        return [dn for dn in dns if parent_dn(dn) not in known]
