"""
DirAuth LDAP Client

Native directory transport over LDAP v3 using ldap3.

Connection model:
- Searches run on pooled connections bound as the manager DN (or
  anonymously). A connection is checked out per call and returned on
  every exit path; a connection that failed mid-call is discarded.
- Binds that verify a user's password run on a dedicated, short-lived
  connection so the pooled connections never change identity.

Timeouts:
- A bind opens its connection with the per-call timeout as both
  connect_timeout and receive_timeout
- A search waits at most the per-call timeout for a pooled connection and
  passes it to the server as the time limit. Pooled sockets keep the
  client-wide receive_timeout they were opened with.

Bind results:
- invalidCredentials (49) and inappropriateAuthentication (48) reject
- busy (51) and unavailable (52) mean the directory cannot answer
- any other non-success code is a directory error

No operation is retried.
"""

from __future__ import annotations

import math
import queue
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, List, Mapping, Optional

import attrs
import structlog
from ldap3 import ALL_ATTRIBUTES, ANONYMOUS, BASE, LEVEL, SIMPLE, SUBTREE, Connection, Server
from ldap3.core.exceptions import (
    LDAPBindError,
    LDAPCommunicationError,
    LDAPException,
    LDAPPasswordIsMandatoryError,
)

from dirauth.core.exceptions import DirectoryError, DirectoryUnreachable
from dirauth.core.types import DirectoryEntry, SearchScope
from dirauth.directory.client import DirectoryClient

logger = structlog.get_logger()


_SCOPES = {
    SearchScope.BASE: BASE,
    SearchScope.ONELEVEL: LEVEL,
    SearchScope.SUBTREE: SUBTREE,
}

# LDAP result codes (RFC 4511 appendix A)
RESULT_SUCCESS = 0
RESULT_NO_SUCH_OBJECT = 32
RESULT_INVALID_DN_SYNTAX = 34
RESULT_INAPPROPRIATE_AUTHENTICATION = 48
RESULT_INVALID_CREDENTIALS = 49
RESULT_BUSY = 51
RESULT_UNAVAILABLE = 52

# Bind outcomes that mean "wrong credentials" rather than a directory fault
REJECTED_BIND_RESULTS = frozenset({RESULT_INAPPROPRIATE_AUTHENTICATION, RESULT_INVALID_CREDENTIALS})
UNAVAILABLE_RESULTS = frozenset({RESULT_BUSY, RESULT_UNAVAILABLE})


# =============================================================================
# CONNECTION POOL
# =============================================================================


@attrs.define
class ConnectionPool:
    """
    Bounded pool of ldap3 connections.

    Thread-safe. At most `size` connections exist at any time; callers
    wait up to `timeout` seconds for a free slot and then fail with
    DirectoryUnreachable.

    Example:
        pool = ConnectionPool(factory=make_connection, size=4)
        with pool.connection() as conn:
            conn.search(...)
    """

    factory: Callable[[], Connection]
    size: int = attrs.field(default=4, validator=attrs.validators.ge(1))
    timeout: float = 10.0

    _idle: "queue.LifoQueue[Connection]" = attrs.Factory(queue.LifoQueue)
    _slots: threading.BoundedSemaphore = attrs.field(init=False)
    _closed: bool = False
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        self._slots = threading.BoundedSemaphore(self.size)

    @contextmanager
    def connection(self, timeout: Optional[float] = None) -> Iterator[Connection]:
        """Check out a bound connection for the duration of the block.

        Args:
            timeout: Seconds to wait for a free slot (pool timeout if None)
        """
        wait = self.timeout if timeout is None else timeout
        if self._closed:
            raise DirectoryError("Connection pool is closed")
        if not self._slots.acquire(timeout=wait):
            self._logger.warning("ldap_pool_exhausted", size=self.size, timeout=wait)
            raise DirectoryUnreachable(f"No directory connection available within {wait}s")

        conn: Optional[Connection] = None
        healthy = False
        try:
            conn = self._checkout()
            yield conn
            healthy = not conn.closed
        finally:
            self._checkin(conn, healthy)
            self._slots.release()

    def _checkout(self) -> Connection:
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            if not conn.closed:
                return conn
        conn = self.factory()
        self._logger.debug("ldap_pool_connection_created", size=self.size)
        return conn

    def _checkin(self, conn: Optional[Connection], healthy: bool) -> None:
        if conn is None:
            return
        if healthy and not self._closed:
            self._idle.put(conn)
            return
        _safe_unbind(conn)

    def close(self) -> int:
        """
        Unbind all idle connections.

        Returns:
            Number of connections closed
        """
        self._closed = True
        closed = 0
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                return closed
            _safe_unbind(conn)
            closed += 1


def _safe_unbind(conn: Connection) -> None:
    try:
        conn.unbind()
    except LDAPException as e:
        logger.debug("ldap_unbind_failed", error=str(e))


# =============================================================================
# LDAP DIRECTORY CLIENT
# =============================================================================


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.decode("latin-1")
    return str(value)


def entries_from_response(response: Iterable[Mapping[str, Any]]) -> List[DirectoryEntry]:
    """Convert an ldap3 search response into DirectoryEntry values.

    Referrals and other non-entry items are skipped. Attribute values are
    taken from ``raw_attributes`` so no schema is needed to decode them.
    """
    return [
        DirectoryEntry(
            dn=item["dn"],
            attributes={
                name: tuple(_decode(v) for v in values)
                for name, values in (item.get("raw_attributes") or {}).items()
            },
        )
        for item in response
        if item.get("type") == "searchResEntry"
    ]


@attrs.define
class LdapDirectoryClient(DirectoryClient):
    """
    DirectoryClient backed by a real LDAP server.

    Attributes:
        url: Server URL, e.g. "ldap://localhost:8389"
        timeout: Default connect/receive timeout in seconds
        pool_size: Maximum concurrent pooled connections
        manager_dn: DN used for searches (anonymous if None)
        manager_password: Password for manager_dn
    """

    url: str
    timeout: float = 10.0
    pool_size: int = 4
    manager_dn: Optional[str] = None
    manager_password: str = attrs.field(default="", repr=False)

    _server: Optional[Server] = None
    _pool: Optional[ConnectionPool] = None
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def server(self) -> Server:
        """Get or create the ldap3 Server."""
        if self._server is None:
            self._server = Server(self.url, connect_timeout=self.timeout)
        return self._server

    @property
    def pool(self) -> ConnectionPool:
        """Get or create the search connection pool."""
        if self._pool is None:
            self._pool = ConnectionPool(
                factory=self._open_manager_connection,
                size=self.pool_size,
                timeout=self.timeout,
            )
        return self._pool

    def _connection(
        self, user: Optional[str], password: Optional[str], timeout: Optional[float] = None
    ) -> Connection:
        limit = self.timeout if timeout is None else timeout
        server = self.server if limit == self.timeout else Server(self.url, connect_timeout=limit)
        return Connection(
            server,
            user=user,
            password=password,
            authentication=SIMPLE if user else ANONYMOUS,
            receive_timeout=limit,
            read_only=True,
            raise_exceptions=False,
        )

    def _open_manager_connection(self) -> Connection:
        conn = self._connection(self.manager_dn, self.manager_password or None)
        try:
            if not conn.bind():
                self._logger.error(
                    "ldap_manager_bind_failed",
                    manager_dn=self.manager_dn,
                    result=conn.result,
                )
                _safe_unbind(conn)
                raise DirectoryError(f"Manager bind failed for {self.manager_dn or 'anonymous'}")
        except LDAPCommunicationError as e:
            raise DirectoryUnreachable(f"Cannot reach directory at {self.url}: {e}") from e
        return conn

    def bind(self, dn: str, password: str, timeout: Optional[float] = None) -> bool:
        """
        Simple bind as dn on a dedicated connection.

        Returns:
            True if the directory accepted the credentials, False if it
            rejected them

        Raises:
            DirectoryUnreachable: On network failure or a busy/unavailable directory
            DirectoryError: On any other bind result
        """
        conn = self._connection(dn, password, timeout)
        try:
            accepted = bool(conn.bind())
            result = dict(conn.result or {})
        except (LDAPBindError, LDAPPasswordIsMandatoryError):
            accepted = False
            result = {"result": RESULT_INVALID_CREDENTIALS}
        except LDAPCommunicationError as e:
            self._logger.warning("ldap_bind_unreachable", url=self.url, error=str(e))
            raise DirectoryUnreachable(f"Cannot reach directory at {self.url}: {e}") from e
        finally:
            _safe_unbind(conn)

        if not accepted:
            code = result.get("result", RESULT_INVALID_CREDENTIALS)
            if code in UNAVAILABLE_RESULTS:
                self._logger.warning("ldap_bind_unavailable", url=self.url, result=code)
                raise DirectoryUnreachable(f"Directory at {self.url} is unavailable ({code})")
            if code not in REJECTED_BIND_RESULTS:
                self._logger.error("ldap_bind_failed", dn=dn, result=code)
                raise DirectoryError(f"Bind as {dn} failed with result {code}", code=code)

        self._logger.debug("ldap_bind", dn=dn, accepted=accepted)
        return accepted

    def search(
        self,
        base: str,
        search_filter: str,
        attributes: Optional[Iterable[str]] = None,
        scope: SearchScope = SearchScope.SUBTREE,
        timeout: Optional[float] = None,
    ) -> List[DirectoryEntry]:
        """Search on a pooled connection."""
        limit = self.timeout if timeout is None else timeout
        try:
            with self.pool.connection(timeout=limit) as conn:
                conn.search(
                    search_base=base,
                    search_filter=search_filter,
                    search_scope=_SCOPES[scope],
                    attributes=list(attributes) if attributes is not None else ALL_ATTRIBUTES,
                    time_limit=max(1, math.ceil(limit)),
                )
                code = conn.result.get("result", RESULT_SUCCESS) if conn.result else RESULT_SUCCESS
                response = list(conn.response or [])
        except LDAPCommunicationError as e:
            self._logger.warning("ldap_search_unreachable", url=self.url, error=str(e))
            raise DirectoryUnreachable(f"Cannot reach directory at {self.url}: {e}") from e

        if code in (RESULT_NO_SUCH_OBJECT, RESULT_INVALID_DN_SYNTAX):
            return []
        if code in UNAVAILABLE_RESULTS:
            self._logger.warning("ldap_search_unavailable", base=base, result=code)
            raise DirectoryUnreachable(f"Directory at {self.url} is unavailable ({code})")
        if code != RESULT_SUCCESS:
            self._logger.error("ldap_search_failed", base=base, result=code)
            raise DirectoryError(f"Search under {base} failed with result {code}", code=code)

        return entries_from_response(response)

    def close(self) -> None:
        """Unbind all pooled connections."""
        if self._pool is not None:
            closed = self._pool.close()
            self._logger.debug("ldap_client_closed", connections=closed)
            self._pool = None
