"""
DirAuth Directory Authenticator

Decides whether a presented credential is valid against a directory and
reports the authenticated principal's group memberships.

Pipeline (fresh for every call, nothing retained between calls):
1. Local checks: empty username / empty password, no directory traffic
2. Resolve the principal DN (DN pattern, or user search)
3. Verify the password (directory bind, or local hash comparison)
4. Collect group names under the group search base

Every step returns a Result. The caller-facing authenticate() reduces
any Failure to a single denied verdict; the specific error goes to the
audit trail. Only directory outages are surfaced separately, through
AuthenticationVerdict.service_unavailable.

No step is retried: a repeated wrong-password bind could trip the
directory's account lockout.
"""

from __future__ import annotations

import time
from typing import Any, FrozenSet, Optional

import attrs
import structlog
from ldap3.utils.conv import escape_filter_chars
from returns.result import Failure, Result, Success

from dirauth.auth.config import PLACEHOLDER, DirectoryConfig
from dirauth.core.crypto import verify_password
from dirauth.core.exceptions import (
    AmbiguousUser,
    DirAuthError,
    EmptyPasswordRejected,
    EmptyUsernameRejected,
    InvalidStoredSecret,
    UserNotFound,
    WrongPassword,
)
from dirauth.core.types import AuthenticationVerdict, ComparisonPolicy, Credential
from dirauth.directory.client import NO_ATTRIBUTES, DirectoryClient
from dirauth.directory.ldap_client import LdapDirectoryClient
from dirauth.monitoring.audit import AuditTrail

logger = structlog.get_logger()


@attrs.define
class DirectoryAuthenticator:
    """
    Directory-backed credential verification.

    Safe for concurrent use: the only shared resource is the directory
    client, whose connections are pooled.

    Example (in-memory directory):
        directory = InMemoryDirectory.from_ldif("test-server.ldif")
        config = DirectoryConfig(
            base_dn="dc=springframework,dc=org",
            user_dn_pattern="uid={0},ou=people",
        )
        auth = DirectoryAuthenticator(config, client=directory)
        verdict = auth.authenticate("ben", "benspassword")
        if verdict.authenticated:
            print(verdict.principal_dn, sorted(verdict.groups))

    Example (LDAP server):
        config = DirectoryConfig.from_url(
            "ldap://localhost:8389/dc=springframework,dc=org",
            user_dn_pattern="uid={0},ou=people",
        )
        auth = DirectoryAuthenticator(config)
    """

    config: DirectoryConfig

    # Created on demand from config when not supplied
    _client: Optional[DirectoryClient] = None

    _audit: AuditTrail = attrs.Factory(AuditTrail)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def client(self) -> DirectoryClient:
        """Get or create the directory client."""
        if self._client is None:
            self._client = LdapDirectoryClient(
                url=self.config.url,
                timeout=self.config.timeout,
                pool_size=self.config.pool_size,
                manager_dn=self.config.manager_dn,
                manager_password=self.config.manager_password,
            )
        return self._client

    @property
    def audit(self) -> AuditTrail:
        """Internal error channel with the specific failure kinds."""
        return self._audit

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def authenticate(self, username: str, password: str) -> AuthenticationVerdict:
        """
        Authenticate a user against the directory.

        Args:
            username: User name as typed at the login form
            password: Plaintext password (never logged)

        Returns:
            Granted verdict with principal DN and groups, or a denied
            verdict. User-not-found and wrong-password are
            indistinguishable; a directory outage sets service_unavailable.
        """
        result = self.try_authenticate(username, password)
        if isinstance(result, Failure):
            error = result.failure()
            outage = error.kind is not None and error.kind.is_outage
            return AuthenticationVerdict.denied(service_unavailable=outage)
        return result.unwrap()

    def try_authenticate(
        self,
        username: str,
        password: str,
    ) -> Result[AuthenticationVerdict, DirAuthError]:
        """
        Run the pipeline and keep the specific error.

        Returns:
            Success(verdict) or Failure(DirAuthError)
        """
        started = time.monotonic()
        result = self._run(Credential(username=username, password=password))
        elapsed_ms = (time.monotonic() - started) * 1000.0
        self._audit.record(username, result, elapsed_ms)
        return result

    def validate_credentials(self, username: str, password: str) -> bool:
        """
        Validate credentials.

        Returns:
            True if credentials are valid
        """
        return self.authenticate(username, password).authenticated

    def close(self) -> None:
        """Release directory connections."""
        if self._client is not None:
            self._client.close()

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def _run(self, credential: Credential) -> Result[AuthenticationVerdict, DirAuthError]:
        checked = self._check_credential(credential)
        if isinstance(checked, Failure):
            return Failure(checked.failure())

        resolved = self._resolve(credential.username)
        if isinstance(resolved, Failure):
            return Failure(resolved.failure())
        principal_dn = resolved.unwrap()

        if self.config.comparison_policy == ComparisonPolicy.BIND:
            verified = self._verify_bind(principal_dn, credential)
        else:
            verified = self._verify_local(principal_dn, credential)
        if isinstance(verified, Failure):
            return Failure(verified.failure())

        groups = self._load_groups(principal_dn, credential.username)
        if isinstance(groups, Failure):
            return Failure(groups.failure())

        return Success(
            AuthenticationVerdict.granted(
                principal_dn=principal_dn,
                groups=groups.unwrap(),
                username=credential.username,
            )
        )

    def _check_credential(self, credential: Credential) -> Result[Credential, DirAuthError]:
        if not credential.username.strip():
            return Failure(EmptyUsernameRejected())
        # An empty simple-bind password is an unauthenticated bind (RFC 4513 5.1.2)
        if credential.password == "" and not self.config.allow_empty_password:
            return Failure(EmptyPasswordRejected())
        return Success(credential)

    def _resolve(self, username: str) -> Result[str, DirAuthError]:
        """Resolve the principal DN for a username."""
        if self.config.uses_dn_pattern:
            return Success(self.config.user_dn(username))

        search_filter = self.config.user_search_filter.replace(
            PLACEHOLDER, escape_filter_chars(username)
        )
        try:
            entries = self.client.search(
                self.config.user_search_dn,
                search_filter,
                attributes=NO_ATTRIBUTES,
                timeout=self.config.timeout,
            )
        except DirAuthError as e:
            return Failure(e)

        if not entries:
            return Failure(UserNotFound(username))
        if len(entries) > 1:
            return Failure(AmbiguousUser(username, len(entries)))

        self._logger.debug("user_resolved", username=username, principal_dn=entries[0].dn)
        return Success(entries[0].dn)

    def _verify_bind(self, principal_dn: str, credential: Credential) -> Result[str, DirAuthError]:
        """Verify by binding as the principal."""
        if credential.password == "":
            # An unauthenticated bind succeeds for any name, so the entry must exist
            exists = self._entry_exists(principal_dn, credential.username)
            if isinstance(exists, Failure):
                return exists

        try:
            accepted = self.client.bind(
                principal_dn, credential.password, timeout=self.config.timeout
            )
        except DirAuthError as e:
            return Failure(e)

        if accepted:
            return Success(principal_dn)

        if self.config.uses_dn_pattern:
            # Directories answer invalidCredentials for unknown DNs too
            exists = self._entry_exists(principal_dn, credential.username)
            if isinstance(exists, Failure):
                return exists

        return Failure(WrongPassword(principal_dn))

    def _entry_exists(self, principal_dn: str, username: str) -> Result[str, DirAuthError]:
        try:
            entry = self.client.lookup(principal_dn, NO_ATTRIBUTES, timeout=self.config.timeout)
        except DirAuthError as e:
            return Failure(e)
        if entry is None:
            return Failure(UserNotFound(username))
        return Success(principal_dn)

    def _verify_local(self, principal_dn: str, credential: Credential) -> Result[str, DirAuthError]:
        """Verify by fetching the stored secret and hashing locally."""
        attribute = self.config.password_attribute
        try:
            entry = self.client.lookup(principal_dn, [attribute], timeout=self.config.timeout)
        except DirAuthError as e:
            return Failure(e)

        if entry is None:
            return Failure(UserNotFound(credential.username))

        stored_values = entry.get(attribute)
        if not stored_values:
            return Failure(InvalidStoredSecret(f"No {attribute} on {principal_dn}"))

        unusable = []
        for stored in stored_values:
            try:
                if verify_password(credential.password, stored, scheme=self.config.hash_scheme):
                    return Success(principal_dn)
            except InvalidStoredSecret as e:
                unusable.append(e)

        # Only an entry with no comparable value at all is a secret problem
        if len(unusable) == len(stored_values):
            return Failure(unusable[0])
        return Failure(WrongPassword(principal_dn))

    def _load_groups(self, principal_dn: str, username: str) -> Result[FrozenSet[str], DirAuthError]:
        """Collect group names whose member attribute references the principal."""
        search_filter = (
            self.config.group_search_filter
            .replace("{0}", escape_filter_chars(principal_dn))
            .replace("{1}", escape_filter_chars(username))
        )
        attribute = self.config.group_role_attribute
        try:
            entries = self.client.search(
                self.config.group_search_dn,
                search_filter,
                attributes=[attribute],
                timeout=self.config.timeout,
            )
        except DirAuthError as e:
            return Failure(e)

        groups = frozenset(name for entry in entries for name in entry.get(attribute))
        self._logger.debug("groups_loaded", principal_dn=principal_dn, groups=len(groups))
        return Success(groups)


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def create_directory_authenticator(
    url: str,
    user_dn_pattern: Optional[str] = "uid={0},ou=people",
    group_search_base: str = "ou=groups",
    comparison_policy: ComparisonPolicy = ComparisonPolicy.BIND,
    client: Optional[DirectoryClient] = None,
    audit: Optional[AuditTrail] = None,
    **kwargs: Any,
) -> DirectoryAuthenticator:
    """
    Create a directory authenticator.

    Args:
        url: Directory URL, optionally carrying the base DN in its path
        user_dn_pattern: DN pattern relative to the base DN; pass None
            together with user_search_filter for search-based resolution
        group_search_base: Group subtree relative to the base DN
        comparison_policy: BIND or LOCAL_HASH
        client: Directory client (an LdapDirectoryClient is created if None)
        audit: Audit trail (a fresh one is created if None)
        **kwargs: Further DirectoryConfig fields

    Returns:
        Configured DirectoryAuthenticator

    Raises:
        ConfigurationError: If the configuration is invalid

    Example:
        auth = create_directory_authenticator(
            "ldap://localhost:8389/dc=springframework,dc=org"
        )
        auth.authenticate("ben", "benspassword")
    """
    config = DirectoryConfig.from_url(
        url,
        user_dn_pattern=user_dn_pattern,
        group_search_base=group_search_base,
        comparison_policy=comparison_policy,
        **kwargs,
    )
    return DirectoryAuthenticator(
        config=config,
        client=client,
        audit=audit if audit is not None else AuditTrail(),
    )
