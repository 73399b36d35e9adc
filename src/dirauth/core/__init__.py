"""
DirAuth Core Module

Provides foundational types and abstractions used across the package.

Components:
- types: Core type definitions (DirectoryEntry, AuthenticationVerdict, etc.)
- crypto: Password schemes and signatures
- exceptions: Custom exception types
"""

from dirauth.core.types import (
    AuthenticationVerdict,
    ComparisonPolicy,
    Credential,
    DirectoryEntry,
    FailureKind,
    SearchScope,
)
from dirauth.core.exceptions import (
    AmbiguousUser,
    AuthenticationError,
    ConfigurationError,
    CryptoError,
    DirAuthError,
    DirectoryError,
    DirectoryUnreachable,
    EmptyPasswordRejected,
    EmptyUsernameRejected,
    InvalidStoredSecret,
    MalformedDnPattern,
    UserNotFound,
    WrongPassword,
)

__all__ = [
    # Types
    "AuthenticationVerdict",
    "ComparisonPolicy",
    "Credential",
    "DirectoryEntry",
    "FailureKind",
    "SearchScope",
    # Exceptions
    "DirAuthError",
    "ConfigurationError",
    "MalformedDnPattern",
    "AuthenticationError",
    "EmptyUsernameRejected",
    "EmptyPasswordRejected",
    "UserNotFound",
    "AmbiguousUser",
    "WrongPassword",
    "DirectoryError",
    "DirectoryUnreachable",
    "CryptoError",
    "InvalidStoredSecret",
]
