"""
Unit tests for dirauth.directory.discovery module.
"""

import dns.exception
import dns.resolver
import pytest

from dirauth.directory.discovery import discover_ldap_servers, domain_to_base_dn


class FakeSrv:
    def __init__(self, target: str, port: int, priority: int, weight: int) -> None:
        self.target = target
        self.port = port
        self.priority = priority
        self.weight = weight


class TestDiscoverLdapServers:
    """Tests for DNS SRV discovery."""

    def test_sorted_by_priority_then_weight(self, monkeypatch):
        queried = {}

        def fake_resolve(name, rdtype, lifetime=None):
            queried["name"] = name
            queried["rdtype"] = rdtype
            return [
                FakeSrv("backup.example.org.", 389, 20, 100),
                FakeSrv("light.example.org.", 389, 10, 10),
                FakeSrv("heavy.example.org.", 3389, 10, 90),
            ]

        monkeypatch.setattr(dns.resolver, "resolve", fake_resolve)

        servers = discover_ldap_servers("Example.org.")

        assert queried == {"name": "_ldap._tcp.example.org", "rdtype": "SRV"}
        assert servers == [
            ("heavy.example.org", 3389),
            ("light.example.org", 389),
            ("backup.example.org", 389),
        ]

    @pytest.mark.parametrize(
        "error", [dns.resolver.NXDOMAIN(), dns.resolver.NoAnswer(), dns.exception.Timeout()]
    )
    def test_dns_failure_returns_empty(self, monkeypatch, error):
        def fake_resolve(name, rdtype, lifetime=None):
            raise error

        monkeypatch.setattr(dns.resolver, "resolve", fake_resolve)
        assert discover_ldap_servers("example.org") == []


class TestDomainToBaseDn:
    """Tests for base DN derivation."""

    @pytest.mark.parametrize(
        "domain,expected",
        [
            ("example.org", "dc=example,dc=org"),
            ("Corp.Example.COM.", "dc=corp,dc=example,dc=com"),
            ("localhost", "dc=localhost"),
            ("", ""),
        ],
    )
    def test_conversion(self, domain, expected):
        assert domain_to_base_dn(domain) == expected
