"""
DirAuth Authenticator Configuration

Immutable, validated configuration for DirectoryAuthenticator.

All validation happens at construction so a broken configuration halts
startup instead of failing on the first login.
"""

from __future__ import annotations

import string
from typing import Any, Optional
from urllib.parse import unquote, urlsplit

import attrs
from attrs import field, validators
from ldap3.core.exceptions import LDAPInvalidDnError, LDAPInvalidFilterError
from ldap3.operation.search import parse_filter

from dirauth.core.crypto import SUPPORTED_SCHEMES
from dirauth.core.exceptions import ConfigurationError, MalformedDnPattern
from dirauth.core.types import ComparisonPolicy
from dirauth.directory.discovery import discover_ldap_servers, domain_to_base_dn
from dirauth.directory.dn import escape_dn_value, join_dn, rdns

# Placeholder substituted into templates (patterns and filters)
PLACEHOLDER = "{0}"

_SAMPLE_USERNAME = "sample"


def _placeholders(template: str) -> list:
    try:
        return [name for _, name, _, _ in string.Formatter().parse(template) if name is not None]
    except ValueError as e:
        raise ConfigurationError(f"Unbalanced braces in {template!r}") from e


def _check_filter_template(template: str, allowed: tuple, sample: str) -> None:
    names = _placeholders(template)
    if not names or any(n not in allowed for n in names):
        raise ConfigurationError(
            f"Filter {template!r} must use only the placeholders "
            + ", ".join("{%s}" % n for n in allowed)
        )
    text = template
    for name in allowed:
        text = text.replace("{%s}" % name, sample)
    try:
        parse_filter(text, None, True, True, None, False)
    except LDAPInvalidFilterError as e:
        raise ConfigurationError(f"Invalid filter {template!r}: {e}") from e


def _positive(instance: Any, attribute: attrs.Attribute, value: Any) -> None:
    if value <= 0:
        raise ConfigurationError(f"{attribute.name} must be positive, got {value!r}")


@attrs.define(frozen=True)
class DirectoryConfig:
    """
    Directory authenticator configuration.

    Attributes:
        url: Directory server URL (e.g., "ldap://localhost:8389")
        base_dn: Base DN appended to every relative DN below
        user_dn_pattern: DN template with one {0} for the username,
            relative to base_dn (e.g., "uid={0},ou=people")
        user_search_base: Search base for search-based resolution,
            relative to base_dn
        user_search_filter: Filter with {0} for the username
            (e.g., "(uid={0})"); mutually exclusive with user_dn_pattern
        group_search_base: Group subtree relative to base_dn
        group_search_filter: Filter with {0} for the principal DN and
            optionally {1} for the username
        group_role_attribute: Attribute holding the group name
        password_attribute: Attribute holding the stored secret
        comparison_policy: BIND (preferred) or LOCAL_HASH
        hash_scheme: Required stored-secret scheme for LOCAL_HASH
        timeout: Network timeout in seconds for every directory operation
        pool_size: Maximum concurrent pooled directory connections
        manager_dn: DN used for searches (anonymous if None)
        manager_password: Password for manager_dn
        allow_empty_password: Let empty passwords reach the directory
    """

    url: str = field(default="ldap://localhost:389", validator=validators.instance_of(str))
    base_dn: str = field(default="", validator=validators.instance_of(str))
    user_dn_pattern: Optional[str] = None
    user_search_base: str = ""
    user_search_filter: Optional[str] = None
    group_search_base: str = "ou=groups"
    group_search_filter: str = "(uniqueMember={0})"
    group_role_attribute: str = "cn"
    password_attribute: str = "userPassword"
    comparison_policy: ComparisonPolicy = field(
        default=ComparisonPolicy.BIND,
        validator=validators.instance_of(ComparisonPolicy),
    )
    hash_scheme: str = field(default="SSHA", converter=lambda s: s.upper())
    timeout: float = field(default=10.0, validator=_positive)
    pool_size: int = field(default=4, validator=_positive)
    manager_dn: Optional[str] = None
    manager_password: str = field(default="", repr=False)
    allow_empty_password: bool = False

    def __attrs_post_init__(self) -> None:
        if (self.user_dn_pattern is None) == (self.user_search_filter is None):
            raise ConfigurationError(
                "Configure exactly one of user_dn_pattern or user_search_filter"
            )

        scheme = urlsplit(self.url).scheme.lower()
        if scheme not in ("ldap", "ldaps"):
            raise ConfigurationError(f"Unsupported directory URL scheme: {self.url!r}")

        try:
            rdns(self.base_dn)
        except LDAPInvalidDnError as e:
            raise ConfigurationError(f"Invalid base DN {self.base_dn!r}") from e

        if self.user_dn_pattern is not None:
            self._check_dn_pattern(self.user_dn_pattern)
        else:
            _check_filter_template(self.user_search_filter, ("0",), _SAMPLE_USERNAME)

        _check_filter_template(self.group_search_filter, ("0", "1"), _SAMPLE_USERNAME)

        if self.comparison_policy == ComparisonPolicy.LOCAL_HASH:
            if self.hash_scheme not in SUPPORTED_SCHEMES:
                raise ConfigurationError(f"Unsupported hash scheme: {self.hash_scheme}")

    def _check_dn_pattern(self, pattern: str) -> None:
        try:
            names = _placeholders(pattern)
        except ConfigurationError as e:
            raise MalformedDnPattern(pattern, "unbalanced braces") from e
        if names != ["0"]:
            raise MalformedDnPattern(pattern, "must contain exactly one {0} placeholder")

        candidate = pattern.replace(PLACEHOLDER, _SAMPLE_USERNAME)
        try:
            components = rdns(candidate)
        except LDAPInvalidDnError as e:
            raise MalformedDnPattern(pattern, "does not produce a valid DN") from e
        if not components:
            raise MalformedDnPattern(pattern, "does not produce a valid DN")

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    @property
    def uses_dn_pattern(self) -> bool:
        """True for pattern-based resolution, False for search-based."""
        return self.user_dn_pattern is not None

    def user_dn(self, username: str) -> str:
        """Build the candidate DN for a username (pattern-based resolution)."""
        if self.user_dn_pattern is None:
            raise ConfigurationError("No user_dn_pattern configured")
        relative = self.user_dn_pattern.replace(PLACEHOLDER, escape_dn_value(username))
        return join_dn(relative, self.base_dn)

    @property
    def user_search_dn(self) -> str:
        """Absolute user search base."""
        return join_dn(self.user_search_base, self.base_dn)

    @property
    def group_search_dn(self) -> str:
        """Absolute group search base."""
        return join_dn(self.group_search_base, self.base_dn)

    # =========================================================================
    # CONSTRUCTORS
    # =========================================================================

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> DirectoryConfig:
        """
        Create config from a URL that carries the base DN in its path.

        Example:
            DirectoryConfig.from_url(
                "ldap://localhost:8389/dc=springframework,dc=org",
                user_dn_pattern="uid={0},ou=people",
            )
        """
        parts = urlsplit(url)
        if not parts.netloc:
            raise ConfigurationError(f"Directory URL has no host: {url!r}")
        base_dn = unquote(parts.path.lstrip("/"))
        if base_dn:
            kwargs.setdefault("base_dn", base_dn)
        return cls(url=f"{parts.scheme}://{parts.netloc}", **kwargs)

    @classmethod
    def from_domain(cls, domain: str, **kwargs: Any) -> DirectoryConfig:
        """
        Create config from a DNS domain.

        Discovers a server via DNS SRV records (_ldap._tcp.<domain>) and
        derives the base DN from the domain labels.
        """
        servers = discover_ldap_servers(domain)
        if not servers:
            raise ConfigurationError(f"No LDAP servers found for domain {domain}")
        host, port = servers[0]
        kwargs.setdefault("base_dn", domain_to_base_dn(domain))
        return cls(url=f"ldap://{host}:{port}", **kwargs)
