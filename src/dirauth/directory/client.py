"""
DirAuth Directory Client Interface

The black-box directory capability the authenticator relies on:
bind(dn, password) and search(base, filter).

Implementations: InMemoryDirectory (ldap3 mock, seeded programmatically
or from LDIF) and LdapDirectoryClient (a real LDAP server through ldap3).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from dirauth.core.types import DirectoryEntry, SearchScope


# Requests no attributes (RFC 4511 section 4.5.1.8)
NO_ATTRIBUTES = ("1.1",)


class DirectoryClient(ABC):
    """
    Directory access used by the authenticator.

    Implementations must be safe for concurrent use and must raise
    DirectoryUnreachable, never block indefinitely, when the directory
    cannot be reached within the timeout.
    """

    @abstractmethod
    def bind(self, dn: str, password: str, timeout: Optional[float] = None) -> bool:
        """
        Authenticate as dn with password.

        Returns:
            True if the directory accepted the bind

        Raises:
            DirectoryUnreachable: On connection failure or timeout
        """
        ...

    @abstractmethod
    def search(
        self,
        base: str,
        search_filter: str,
        attributes: Optional[Iterable[str]] = None,
        scope: SearchScope = SearchScope.SUBTREE,
        timeout: Optional[float] = None,
    ) -> List[DirectoryEntry]:
        """
        Search the directory.

        A base that does not exist yields an empty list.

        Raises:
            DirectoryUnreachable: On connection failure or timeout
            DirectoryError: On any other unsuccessful result
        """
        ...

    def lookup(
        self,
        dn: str,
        attributes: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
    ) -> Optional[DirectoryEntry]:
        """Read a single entry by DN, or None if it does not exist."""
        entries = self.search(
            dn,
            "(objectClass=*)",
            attributes=attributes,
            scope=SearchScope.BASE,
            timeout=timeout,
        )
        return entries[0] if entries else None

    def close(self) -> None:
        """Release any held resources."""

    def __enter__(self) -> DirectoryClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
