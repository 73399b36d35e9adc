"""
DirAuth - Directory-Backed Authentication

Verifies username/password credentials against an LDAP directory and
reports the authenticated principal's group memberships.

Comparison Policies:
- BIND: the directory verifies the password (preferred)
- LOCAL_HASH: the stored {SCHEME} secret is fetched and compared locally

Directory Transports:
- LdapDirectoryClient: real LDAP server via ldap3, pooled connections
- InMemoryDirectory: simulated directory seeded from LDIF

Example Usage:
    from dirauth import DirectoryAuthenticator, DirectoryConfig

    config = DirectoryConfig.from_url(
        "ldap://localhost:8389/dc=springframework,dc=org",
        user_dn_pattern="uid={0},ou=people",
        group_search_base="ou=groups",
    )
    auth = DirectoryAuthenticator(config)

    verdict = auth.authenticate("ben", "benspassword")
    if verdict.authenticated:
        print(f"Authenticated as {verdict.principal_dn}")
        print(f"Groups: {sorted(verdict.groups)}")
    elif verdict.service_unavailable:
        print("Directory unavailable")

    # Specific failure kinds stay internal
    print(auth.audit.failure_counts())
"""

from dirauth.core.types import AuthenticationVerdict, ComparisonPolicy, FailureKind
from dirauth.auth.authenticator import DirectoryAuthenticator, create_directory_authenticator
from dirauth.auth.config import DirectoryConfig
from dirauth.directory.memory import InMemoryDirectory
from dirauth.directory.ldap_client import LdapDirectoryClient

__version__ = "0.1.0"

__all__ = [
    # Main API
    "DirectoryAuthenticator",
    "DirectoryConfig",
    "create_directory_authenticator",
    # Directory clients
    "InMemoryDirectory",
    "LdapDirectoryClient",
    # Types
    "AuthenticationVerdict",
    "ComparisonPolicy",
    "FailureKind",
    # Metadata
    "__version__",
]
