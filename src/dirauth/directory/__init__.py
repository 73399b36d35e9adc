"""
DirAuth Directory Module

Directory access for the authenticator.

Components:
- client: DirectoryClient interface (bind, search)
- memory: InMemoryDirectory (ldap3 mock server, LDIF seeding)
- ldap_client: LdapDirectoryClient (real servers via ldap3)
- dn: distinguished name helpers
- ldif: LDIF record reader
- discovery: DNS SRV discovery of LDAP servers
"""

from dirauth.directory.client import DirectoryClient
from dirauth.directory.memory import InMemoryDirectory
from dirauth.directory.ldap_client import ConnectionPool, LdapDirectoryClient
from dirauth.directory.discovery import discover_ldap_servers, domain_to_base_dn

__all__ = [
    "DirectoryClient",
    "InMemoryDirectory",
    "LdapDirectoryClient",
    "ConnectionPool",
    "discover_ldap_servers",
    "domain_to_base_dn",
]
