"""
DirAuth Core Types

Fundamental type definitions for directory-backed authentication.

Design Principles:
- Immutable: All types use frozen attrs for safety
- Validated: Type constraints enforced at construction
- Secret-aware: Passwords never appear in repr or logs
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

import attrs
from attrs import field, validators


# =============================================================================
# ENUMS
# =============================================================================


class ComparisonPolicy(Enum):
    """
    How the supplied password is compared with the directory.

    BIND is preferred: the directory verifies the password with its own
    algorithm and the stored secret never leaves the server.
    """

    BIND = auto()
    LOCAL_HASH = auto()


class SearchScope(Enum):
    """Directory search scope (RFC 4511 section 4.5.1.2)."""

    BASE = auto()
    ONELEVEL = auto()
    SUBTREE = auto()


class FailureKind(Enum):
    """Specific reason an authentication attempt failed."""

    EMPTY_USERNAME = "empty_username"
    EMPTY_PASSWORD = "empty_password"
    USER_NOT_FOUND = "user_not_found"
    AMBIGUOUS_USER = "ambiguous_user"
    WRONG_PASSWORD = "wrong_password"
    INVALID_SECRET = "invalid_secret"
    DIRECTORY_ERROR = "directory_error"
    DIRECTORY_UNREACHABLE = "directory_unreachable"

    @property
    def is_outage(self) -> bool:
        """Return True if the failure says nothing about the credential."""
        return self in (FailureKind.DIRECTORY_ERROR, FailureKind.DIRECTORY_UNREACHABLE)


# =============================================================================
# CREDENTIAL
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Credential:
    """
    Username and plaintext password presented for one verification call.

    The password is excluded from repr and equality so it cannot leak
    through logging or debugging output.
    """

    username: str = field(validator=validators.instance_of(str))
    password: str = field(validator=validators.instance_of(str), repr=False, eq=False)


# =============================================================================
# DIRECTORY ENTRY
# =============================================================================


AttributeValues = Union[str, bytes, Iterable[Union[str, bytes]]]


def _decode(value: Union[str, bytes]) -> str:
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.decode("latin-1")
    return str(value)


def _normalize_attributes(
    attributes: Mapping[str, AttributeValues],
) -> Dict[str, Tuple[str, ...]]:
    normalized: Dict[str, Tuple[str, ...]] = {}
    for name, values in attributes.items():
        if isinstance(values, (str, bytes)):
            values = (values,)
        key = name.lower()
        normalized[key] = normalized.get(key, ()) + tuple(_decode(v) for v in values)
    return normalized


@attrs.define(frozen=True, slots=True)
class DirectoryEntry:
    """
    Read-only view of a directory entry.

    Attribute names are case-insensitive; every attribute holds a tuple
    of string values. Stored secrets are kept out of repr.

    INVARIANT: dn is non-empty
    """

    dn: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    attributes: Dict[str, Tuple[str, ...]] = field(
        factory=dict, converter=_normalize_attributes, repr=False
    )

    def get(self, name: str) -> Tuple[str, ...]:
        """Return all values of an attribute (empty tuple if absent)."""
        return self.attributes.get(name.lower(), ())

    def first(self, name: str, default: str = "") -> str:
        """Return the first value of an attribute."""
        values = self.get(name)
        return values[0] if values else default

    def has(self, name: str) -> bool:
        """Check if the attribute is present with at least one value."""
        return bool(self.get(name))

    def only(self, names: Optional[Iterable[str]]) -> DirectoryEntry:
        """Return a copy restricted to the requested attributes."""
        if names is None:
            return self
        wanted = {n.lower() for n in names}
        if "*" in wanted:
            return self
        return DirectoryEntry(
            dn=self.dn,
            attributes={k: v for k, v in self.attributes.items() if k in wanted},
        )


# =============================================================================
# RESULT TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class AuthenticationVerdict:
    """
    Caller-facing result of an authentication attempt.

    Attributes:
        authenticated: Whether the credential was verified
        principal_dn: DN of the authenticated entry (empty on failure)
        groups: Names of groups whose member attribute references the DN
        username: Username the verdict was issued for (empty on failure)
        service_unavailable: True only when the directory could not be
            consulted; every other failure looks identical to the caller

    INVARIANT: authenticated implies principal_dn is non-empty
    INVARIANT: not authenticated implies principal_dn and groups are empty
    """

    authenticated: bool
    principal_dn: str = ""
    groups: FrozenSet[str] = field(factory=frozenset, converter=frozenset)
    username: str = ""
    service_unavailable: bool = False

    def __attrs_post_init__(self) -> None:
        if self.authenticated:
            if not self.principal_dn:
                raise ValueError("Authenticated verdict must have principal_dn")
            if self.service_unavailable:
                raise ValueError("Authenticated verdict cannot be service_unavailable")
        elif self.principal_dn or self.groups or self.username:
            raise ValueError("Denied verdict must not carry principal details")

    @classmethod
    def granted(
        cls,
        principal_dn: str,
        groups: Iterable[str] = (),
        username: str = "",
    ) -> AuthenticationVerdict:
        """Create a successful verdict."""
        return cls(
            authenticated=True,
            principal_dn=principal_dn,
            groups=frozenset(groups),
            username=username,
        )

    @classmethod
    def denied(cls, service_unavailable: bool = False) -> AuthenticationVerdict:
        """Create a failed verdict."""
        return cls(authenticated=False, service_unavailable=service_unavailable)

    def __bool__(self) -> bool:
        return self.authenticated
