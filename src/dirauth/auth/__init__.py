"""
DirAuth Authentication Module

Directory-backed credential verification.

Components:
- config: DirectoryConfig (immutable, validated at startup)
- authenticator: DirectoryAuthenticator and its factory
"""

from dirauth.auth.config import DirectoryConfig
from dirauth.auth.authenticator import DirectoryAuthenticator, create_directory_authenticator

__all__ = [
    "DirectoryConfig",
    "DirectoryAuthenticator",
    "create_directory_authenticator",
]
