"""
Unit tests for dirauth.directory.memory module.

Tests the simulated directory backed by the ldap3 mock server.
"""

import time

import pytest

from dirauth.core.crypto import hash_password
from dirauth.core.exceptions import DirectoryError, DirectoryUnreachable
from dirauth.core.types import SearchScope
from dirauth.directory.client import NO_ATTRIBUTES
from dirauth.directory.memory import InMemoryDirectory

from tests.conftest import ALICE_DN, ALICE_PASSWORD, EXAMPLE_BASE_DN


class TestBind:
    """Tests for bind()."""

    def test_correct_password(self, example_directory):
        assert example_directory.bind(ALICE_DN, ALICE_PASSWORD)

    def test_wrong_password(self, example_directory):
        assert not example_directory.bind(ALICE_DN, "wrong")

    def test_unknown_dn(self, example_directory):
        assert not example_directory.bind("uid=bob,ou=people," + EXAMPLE_BASE_DN, "x")

    def test_invalid_dn(self, example_directory):
        assert not example_directory.bind("not a dn", ALICE_PASSWORD)

    def test_dn_case_insensitive(self, example_directory):
        assert example_directory.bind(ALICE_DN.upper(), ALICE_PASSWORD)

    def test_empty_password_is_unauthenticated_bind(self, example_directory):
        """Test the server-side behaviour the authenticator guards against."""
        assert example_directory.bind(ALICE_DN, "")

    def test_unauthenticated_bind_can_be_disabled(self):
        directory = InMemoryDirectory(allow_unauthenticated_bind=False)
        assert not directory.bind(ALICE_DN, "")

    def test_unusable_secret_does_not_match(self):
        directory = InMemoryDirectory()
        directory.add_entry("cn=a", {"userPassword": ["{CRYPT}xx", hash_password("pw")]})
        assert directory.bind("cn=a", "pw")
        assert not directory.bind("cn=a", "xx")


class TestSearch:
    """Tests for search()."""

    def test_subtree(self, example_directory):
        entries = example_directory.search(EXAMPLE_BASE_DN, "(objectClass=groupOfUniqueNames)")
        assert {e.first("cn") for e in entries} == {"staff", "admins", "empty"}

    def test_onelevel(self, example_directory):
        entries = example_directory.search(
            EXAMPLE_BASE_DN, "(objectClass=*)", scope=SearchScope.ONELEVEL
        )
        assert {e.dn for e in entries} == {
            "ou=people," + EXAMPLE_BASE_DN,
            "ou=groups," + EXAMPLE_BASE_DN,
        }

    def test_base(self, example_directory):
        entries = example_directory.search(ALICE_DN, "(objectClass=*)", scope=SearchScope.BASE)
        assert [e.dn for e in entries] == [ALICE_DN]

    def test_missing_base_is_empty(self, example_directory):
        assert example_directory.search("ou=nowhere," + EXAMPLE_BASE_DN, "(objectClass=*)") == []

    def test_invalid_base_is_empty(self, example_directory):
        assert example_directory.search("not a dn", "(objectClass=*)") == []

    def test_attribute_selection(self, example_directory):
        entry = example_directory.lookup(ALICE_DN, ["cn"])
        assert set(entry.attributes) == {"cn"}

    def test_no_attributes(self, example_directory):
        entry = example_directory.lookup(ALICE_DN, NO_ATTRIBUTES)
        assert entry.dn == ALICE_DN
        assert entry.attributes == {}

    def test_lookup_missing(self, example_directory):
        assert example_directory.lookup("uid=bob,ou=people," + EXAMPLE_BASE_DN) is None

    def test_missing_base_hides_children(self, example_directory):
        example_directory.remove_entry("ou=groups," + EXAMPLE_BASE_DN)
        assert example_directory.search("ou=groups," + EXAMPLE_BASE_DN, "(cn=*)") == []

    def test_schema_entry_hidden(self, example_directory):
        entries = example_directory.search("", "(objectClass=*)")
        assert "cn=schema" not in {e.dn.lower() for e in entries}
        assert len(entries) == example_directory.size


class TestFilters:
    """Filters are evaluated by the ldap3 mock server."""

    @pytest.mark.parametrize(
        "search_filter, expected",
        [
            ("(cn=Ali*)", {"alice"}),
            ("(cn=*example)", {"alice"}),
            ("(cn=ALICE EXAMPLE)", {"alice"}),
            ("(&(objectClass=person)(uid=alice))", {"alice"}),
            ("(|(uid=alice)(uid=star*))", {"alice", "star*"}),
            ("(&(objectClass=person)(!(uid=alice)))", {"star*"}),
            ("(uid=star\\2a)", {"star*"}),
        ],
    )
    def test_evaluation(self, example_directory, search_filter, expected):
        example_directory.add_entry(
            "cn=Star,ou=people," + EXAMPLE_BASE_DN,
            {"objectClass": ["person"], "uid": "star*", "cn": "Star"},
        )
        entries = example_directory.search("ou=people," + EXAMPLE_BASE_DN, search_filter)
        assert {e.first("uid") for e in entries} == expected

    def test_dn_valued_member_ignores_spacing(self, example_directory):
        group = "cn=empty,ou=groups," + EXAMPLE_BASE_DN
        example_directory.add_value(group, "uniqueMember", "uid=alice, ou=people, dc=example, dc=org")
        entries = example_directory.search(EXAMPLE_BASE_DN, f"(uniqueMember={ALICE_DN})")
        assert {e.first("cn") for e in entries} == {"staff", "admins", "empty"}

    def test_invalid_filter(self, example_directory):
        with pytest.raises(DirectoryError) as exc_info:
            example_directory.search(EXAMPLE_BASE_DN, "(uid=alice")
        assert exc_info.value.code == 87


class TestAdministration:
    """Tests for entry mutation helpers."""

    def test_add_entry_defaults_object_class(self):
        directory = InMemoryDirectory()
        entry = directory.add_entry("cn=a", {"cn": "a"})
        assert entry.get("objectClass") == ("top",)

    def test_add_and_remove_value(self, example_directory):
        group = "cn=empty,ou=groups," + EXAMPLE_BASE_DN
        example_directory.add_value(group, "uniqueMember", ALICE_DN)
        assert example_directory.get_entry(group).get("uniqueMember") == (ALICE_DN,)
        example_directory.remove_value(group, "uniqueMember", ALICE_DN.upper())
        assert not example_directory.get_entry(group).has("uniqueMember")

    def test_add_value_missing_entry(self):
        with pytest.raises(KeyError):
            InMemoryDirectory().add_value("cn=nope", "cn", "x")

    def test_remove_entry(self, example_directory):
        assert example_directory.remove_entry(ALICE_DN)
        assert not example_directory.remove_entry(ALICE_DN)
        assert example_directory.get_entry(ALICE_DN) is None

    def test_size(self, example_directory):
        assert example_directory.size == 7


class TestOperationLog:
    """Tests for round-trip accounting."""

    def test_operations_recorded(self, example_directory):
        example_directory.bind(ALICE_DN, ALICE_PASSWORD)
        example_directory.search(EXAMPLE_BASE_DN, "(uid=alice)")
        assert example_directory.operations == [("bind", ALICE_DN), ("search", EXAMPLE_BASE_DN)]
        assert example_directory.operation_count == 2

    def test_get_entry_not_recorded(self, example_directory):
        example_directory.get_entry(ALICE_DN)
        assert example_directory.operation_count == 0

    def test_reset(self, example_directory):
        example_directory.bind(ALICE_DN, ALICE_PASSWORD)
        example_directory.reset_operations()
        assert example_directory.operations == []


class TestSimulatedNetwork:
    """Tests for latency and outage simulation."""

    def test_offline(self, example_directory):
        example_directory.online = False
        with pytest.raises(DirectoryUnreachable):
            example_directory.bind(ALICE_DN, ALICE_PASSWORD)
        with pytest.raises(DirectoryUnreachable):
            example_directory.search(EXAMPLE_BASE_DN, "(uid=alice)")

    def test_latency_within_timeout(self, example_directory):
        example_directory.latency = 0.01
        assert example_directory.bind(ALICE_DN, ALICE_PASSWORD, timeout=1.0)

    def test_latency_beyond_timeout(self, example_directory):
        example_directory.latency = 30.0
        started = time.monotonic()
        with pytest.raises(DirectoryUnreachable):
            example_directory.bind(ALICE_DN, ALICE_PASSWORD, timeout=0.1)
        assert time.monotonic() - started < 1.0

    def test_default_timeout_applies(self):
        directory = InMemoryDirectory(latency=5.0, default_timeout=0.05)
        with pytest.raises(DirectoryUnreachable):
            directory.search("", "(objectClass=*)")


class TestLdifLoading:
    """Tests for LDIF seeding."""

    def test_from_file(self, spring_directory):
        assert spring_directory.size == 13
        ben = spring_directory.get_entry("uid=ben,ou=people,dc=springframework,dc=org")
        assert ben.first("cn") == "Ben Alex"

    def test_from_text(self):
        directory = InMemoryDirectory.from_ldif("dn: cn=a\ncn: a\n\ndn: cn=b\ncn: b\n")
        assert directory.size == 2

    def test_load_returns_count(self, ldif_path):
        assert InMemoryDirectory().load_ldif(str(ldif_path)) == 13

    def test_ldif_secrets_bind(self, spring_directory):
        people = "ou=people,dc=springframework,dc=org"
        assert spring_directory.bind(f"uid=ben,{people}", "benspassword")
        assert spring_directory.bind(f"uid=bob,{people}", "bobspassword")
        assert spring_directory.bind(f"uid=joe,{people}", "joespassword")
        assert spring_directory.bind(f"uid=carol,{people}", "carolspassword")
        assert spring_directory.bind(f"uid=jim,{people}", "jimspassword")
        assert spring_directory.bind(f"uid=sam,{people}", "password")
