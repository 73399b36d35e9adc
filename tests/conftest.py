"""
Pytest configuration and shared fixtures for DirAuth tests.
"""

from pathlib import Path

import pytest

from dirauth.auth.authenticator import DirectoryAuthenticator
from dirauth.auth.config import DirectoryConfig
from dirauth.core.types import ComparisonPolicy
from dirauth.directory.memory import InMemoryDirectory
from dirauth.monitoring.audit import AuditTrail


DATA_DIR = Path(__file__).parent / "data"

EXAMPLE_BASE_DN = "dc=example,dc=org"
ALICE_DN = "uid=alice,ou=people,dc=example,dc=org"
ALICE_PASSWORD = "secret12"
# {SSHA} of "secret12" with salt "saltsalt"
ALICE_SECRET = "{SSHA}PRubaJAsCMxRd91IGel0odjS+g5zYWx0c2FsdA=="

SPRING_BASE_DN = "dc=springframework,dc=org"


# =============================================================================
# DIRECTORY FIXTURES
# =============================================================================


@pytest.fixture
def ldif_path() -> Path:
    """LDIF file for dc=springframework,dc=org."""
    return DATA_DIR / "test-server.ldif"


@pytest.fixture
def example_directory() -> InMemoryDirectory:
    """dc=example,dc=org with alice in two groups."""
    return make_example_directory()


@pytest.fixture
def spring_directory(ldif_path: Path) -> InMemoryDirectory:
    """dc=springframework,dc=org seeded from LDIF."""
    return InMemoryDirectory.from_ldif(ldif_path)


# =============================================================================
# CONFIG FIXTURES
# =============================================================================


@pytest.fixture
def pattern_config() -> DirectoryConfig:
    """DN-pattern resolution, bind comparison."""
    return DirectoryConfig(
        url="ldap://localhost:389",
        base_dn=EXAMPLE_BASE_DN,
        user_dn_pattern="uid={0},ou=people",
        group_search_base="ou=groups",
        timeout=2.0,
    )


@pytest.fixture
def search_config() -> DirectoryConfig:
    """Search-based resolution, bind comparison."""
    return DirectoryConfig(
        url="ldap://localhost:389",
        base_dn=EXAMPLE_BASE_DN,
        user_search_base="ou=people",
        user_search_filter="(uid={0})",
        group_search_base="ou=groups",
        timeout=2.0,
    )


@pytest.fixture
def local_hash_config() -> DirectoryConfig:
    """DN-pattern resolution, local {SSHA} comparison."""
    return DirectoryConfig(
        url="ldap://localhost:389",
        base_dn=EXAMPLE_BASE_DN,
        user_dn_pattern="uid={0},ou=people",
        group_search_base="ou=groups",
        comparison_policy=ComparisonPolicy.LOCAL_HASH,
        hash_scheme="SSHA",
        timeout=2.0,
    )


# =============================================================================
# AUTHENTICATOR FIXTURES
# =============================================================================


@pytest.fixture
def audit_trail() -> AuditTrail:
    """Fresh audit trail."""
    return AuditTrail()


@pytest.fixture
def authenticator(
    pattern_config: DirectoryConfig,
    example_directory: InMemoryDirectory,
    audit_trail: AuditTrail,
) -> DirectoryAuthenticator:
    """Authenticator over the example directory."""
    return DirectoryAuthenticator(
        config=pattern_config,
        client=example_directory,
        audit=audit_trail,
    )


@pytest.fixture
def spring_authenticator(spring_directory: InMemoryDirectory) -> DirectoryAuthenticator:
    """Authenticator over the LDIF-seeded directory."""
    config = DirectoryConfig.from_url(
        "ldap://localhost:8389/dc=springframework,dc=org",
        user_dn_pattern="uid={0},ou=people",
        group_search_base="ou=groups",
    )
    return DirectoryAuthenticator(config=config, client=spring_directory)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def make_example_directory(**kwargs) -> InMemoryDirectory:
    """Helper to build dc=example,dc=org."""
    directory = InMemoryDirectory(**kwargs)
    directory.add_entry(EXAMPLE_BASE_DN, {"objectClass": ["domain"], "dc": "example"})
    directory.add_entry("ou=people," + EXAMPLE_BASE_DN, {"objectClass": ["organizationalUnit"]})
    directory.add_entry("ou=groups," + EXAMPLE_BASE_DN, {"objectClass": ["organizationalUnit"]})
    directory.add_entry(
        ALICE_DN,
        {
            "objectClass": ["person", "inetOrgPerson"],
            "uid": "alice",
            "cn": "Alice Example",
            "userPassword": ALICE_SECRET,
        },
    )
    directory.add_entry(
        "cn=staff,ou=groups," + EXAMPLE_BASE_DN,
        {"objectClass": ["groupOfUniqueNames"], "cn": "staff", "uniqueMember": [ALICE_DN]},
    )
    directory.add_entry(
        "cn=admins,ou=groups," + EXAMPLE_BASE_DN,
        {"objectClass": ["groupOfUniqueNames"], "cn": "admins", "uniqueMember": [ALICE_DN]},
    )
    directory.add_entry(
        "cn=empty,ou=groups," + EXAMPLE_BASE_DN,
        {"objectClass": ["groupOfUniqueNames"], "cn": "empty"},
    )
    return directory


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests requiring a real LDAP server"
    )
