"""
DirAuth Exception Types

Custom exceptions for directory authentication errors.

Every per-call error carries a FailureKind so that the audit trail can
tell brute-force attempts apart from directory outages, while the
caller-facing verdict collapses them into a single "not authenticated".
"""

from typing import Optional

from dirauth.core.types import FailureKind


class DirAuthError(Exception):
    """Base exception for all DirAuth errors."""

    kind: Optional[FailureKind] = None

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


# =============================================================================
# CONFIGURATION ERRORS (fatal at startup)
# =============================================================================


class ConfigurationError(DirAuthError):
    """
    Invalid authenticator configuration.

    Raised while building the configuration, never per call.
    """

    pass


class MalformedDnPattern(ConfigurationError):
    """
    User DN pattern is unusable.

    The pattern must contain exactly one {0} placeholder and must
    produce a syntactically valid DN once a username is substituted.
    """

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Malformed user DN pattern {pattern!r}: {reason}")
        self.pattern = pattern


# =============================================================================
# AUTHENTICATION ERRORS (per call)
# =============================================================================


class AuthenticationError(DirAuthError):
    """
    Authentication failed.

    This indicates the verification completed but the credential was
    rejected or could not be matched to a single directory entry.
    """

    pass


class EmptyUsernameRejected(AuthenticationError):
    """Empty username rejected before contacting the directory."""

    kind = FailureKind.EMPTY_USERNAME

    def __init__(self, message: str = "Empty username rejected") -> None:
        super().__init__(message)


class EmptyPasswordRejected(AuthenticationError):
    """
    Empty password rejected before contacting the directory.

    Most directories treat a simple bind with an empty password as an
    unauthenticated (anonymous) bind that succeeds, so the check must
    happen locally.
    """

    kind = FailureKind.EMPTY_PASSWORD

    def __init__(self, message: str = "Empty password rejected") -> None:
        super().__init__(message)


class UserNotFound(AuthenticationError):
    """No directory entry matches the username."""

    kind = FailureKind.USER_NOT_FOUND

    def __init__(self, username: str) -> None:
        super().__init__(f"User not found: {username}", code=32)  # noSuchObject
        self.username = username


class AmbiguousUser(AuthenticationError):
    """User search returned more than one entry."""

    kind = FailureKind.AMBIGUOUS_USER

    def __init__(self, username: str, matches: int) -> None:
        super().__init__(f"User search for {username} returned {matches} entries")
        self.username = username
        self.matches = matches


class WrongPassword(AuthenticationError):
    """Supplied password does not match the directory."""

    kind = FailureKind.WRONG_PASSWORD

    def __init__(self, principal_dn: str) -> None:
        super().__init__(f"Invalid credentials for {principal_dn}", code=49)  # invalidCredentials
        self.principal_dn = principal_dn


# =============================================================================
# DIRECTORY ERRORS
# =============================================================================


class DirectoryError(DirAuthError):
    """
    Directory-level error.

    The directory answered with an unexpected result, so no verdict
    about the credential itself could be reached.
    """

    kind = FailureKind.DIRECTORY_ERROR


class DirectoryUnreachable(DirectoryError):
    """
    Directory could not be reached.

    Covers connection failures, timeouts, and pool exhaustion.
    """

    kind = FailureKind.DIRECTORY_UNREACHABLE


# =============================================================================
# CRYPTO ERRORS
# =============================================================================


class CryptoError(DirAuthError):
    """
    Cryptographic operation failed.

    This indicates an error while hashing, encoding, or verifying
    a secret.
    """

    pass


class InvalidStoredSecret(CryptoError):
    """
    Stored secret cannot be used for comparison.

    The value is missing, malformed, or encoded with a scheme other
    than the one the authenticator is configured for.
    """

    kind = FailureKind.INVALID_SECRET
