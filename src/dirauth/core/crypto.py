"""
DirAuth Cryptographic Operations

Password scheme handling for locally compared stored secrets.
Uses established libraries - NO custom cryptographic implementations.

Stored secrets follow the RFC 2307 "{SCHEME}value" convention used for
the userPassword attribute:

    {SHA}       base64(sha1(password))
    {SSHA}      base64(sha1(password + salt) + salt)
    {SHA256}    {SSHA256}, {SHA512}, {SSHA512} likewise
    {PBKDF2-SHA256}  iterations$base64(salt)$base64(derived_key)
    {BCRYPT}    $2a$/$2b$/$2y$ modular crypt value (also accepted bare)
    {CLEARTEXT} password stored as-is (opt-in only)

Security:
- Constant-time comparison of digests
- Fresh random salt for every hash produced
"""

from __future__ import annotations

import base64
import binascii
import hmac
import secrets
from typing import Optional, Tuple, Type

import bcrypt
from cryptography.exceptions import InvalidKey
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from dirauth.core.exceptions import InvalidStoredSecret


# =============================================================================
# SCHEMES
# =============================================================================

# scheme -> (hash algorithm, salted)
DIGEST_SCHEMES = {
    "SHA": (hashes.SHA1, False),
    "SSHA": (hashes.SHA1, True),
    "SHA256": (hashes.SHA256, False),
    "SSHA256": (hashes.SHA256, True),
    "SHA512": (hashes.SHA512, False),
    "SSHA512": (hashes.SHA512, True),
}

PBKDF2_SCHEME = "PBKDF2-SHA256"
BCRYPT_SCHEME = "BCRYPT"
CLEARTEXT_SCHEME = "CLEARTEXT"

SUPPORTED_SCHEMES = frozenset(DIGEST_SCHEMES) | {PBKDF2_SCHEME, BCRYPT_SCHEME, CLEARTEXT_SCHEME}

# Modular crypt prefixes written by BCryptPasswordEncoder and htpasswd
BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")

# bcrypt only reads the first 72 bytes of a password
BCRYPT_MAX_PASSWORD_BYTES = 72

DEFAULT_SALT_SIZE = 8
DEFAULT_PBKDF2_ITERATIONS = 29000
DEFAULT_BCRYPT_ROUNDS = 10


def split_scheme(stored: str) -> Tuple[str, str]:
    """
    Split a stored secret into (scheme, encoded value).

    Bare bcrypt values are recognised by their "$2?$" prefix. Any other
    value without a "{SCHEME}" prefix is treated as cleartext.

    Examples:
        "{SSHA}abc=" -> ("SSHA", "abc=")
        "$2a$10$..." -> ("BCRYPT", "$2a$10$...")
        "plain" -> ("CLEARTEXT", "plain")
    """
    if stored.startswith("{"):
        end = stored.find("}")
        if end > 1:
            return stored[1:end].upper(), stored[end + 1 :]
    if stored.startswith(BCRYPT_PREFIXES):
        return BCRYPT_SCHEME, stored
    return CLEARTEXT_SCHEME, stored


def _digest(algorithm: Type[hashes.HashAlgorithm], data: bytes) -> bytes:
    h = hashes.Hash(algorithm(), backend=default_backend())
    h.update(data)
    return h.finalize()


def _b64decode(value: str) -> bytes:
    try:
        return base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidStoredSecret(f"Stored secret is not valid base64: {e}") from e


def constant_time_equals(a: bytes, b: bytes) -> bool:
    """Compare two byte strings without leaking timing information."""
    return hmac.compare_digest(a, b)


# =============================================================================
# HASHING
# =============================================================================


def hash_password(
    password: str,
    scheme: str = "SSHA",
    salt: Optional[bytes] = None,
    iterations: int = DEFAULT_PBKDF2_ITERATIONS,
    rounds: int = DEFAULT_BCRYPT_ROUNDS,
) -> str:
    """
    Encode a password for storage in the directory.

    Args:
        password: Plaintext password
        scheme: One of SUPPORTED_SCHEMES
        salt: Salt for salted schemes (random if not provided)
        iterations: PBKDF2 iteration count
        rounds: bcrypt cost factor

    Returns:
        Encoded value including the "{SCHEME}" prefix

    Raises:
        ValueError: If a BCRYPT password is longer than 72 bytes
    """
    scheme = scheme.upper()
    data = password.encode("utf-8")

    if scheme in DIGEST_SCHEMES:
        algorithm, salted = DIGEST_SCHEMES[scheme]
        if not salted:
            return f"{{{scheme}}}" + base64.b64encode(_digest(algorithm, data)).decode("ascii")
        if salt is None:
            salt = secrets.token_bytes(DEFAULT_SALT_SIZE)
        digest = _digest(algorithm, data + salt)
        return f"{{{scheme}}}" + base64.b64encode(digest + salt).decode("ascii")

    if scheme == PBKDF2_SCHEME:
        if salt is None:
            salt = secrets.token_bytes(16)
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=iterations,
            backend=default_backend(),
        )
        derived = kdf.derive(data)
        return "{%s}%d$%s$%s" % (
            PBKDF2_SCHEME,
            iterations,
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(derived).decode("ascii"),
        )

    if scheme == BCRYPT_SCHEME:
        if len(data) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValueError("bcrypt passwords are limited to 72 bytes")
        hashed = bcrypt.hashpw(data, bcrypt.gensalt(rounds=rounds))
        return "{%s}%s" % (BCRYPT_SCHEME, hashed.decode("ascii"))

    if scheme == CLEARTEXT_SCHEME:
        return password

    raise InvalidStoredSecret(f"Unsupported password scheme: {scheme}")


# =============================================================================
# VERIFICATION
# =============================================================================


def verify_password(password: str, stored: str, scheme: Optional[str] = None) -> bool:
    """
    Check a plaintext password against a stored secret.

    Args:
        password: Plaintext password supplied by the user
        stored: Stored secret as read from the directory
        scheme: Required scheme; a stored value using any other scheme is
            rejected instead of silently downgrading the comparison

    Returns:
        True if the password matches

    Raises:
        InvalidStoredSecret: If the stored value is malformed, uses an
            unsupported scheme, or does not use the required scheme
    """
    actual_scheme, encoded = split_scheme(stored)
    if scheme is not None and actual_scheme != scheme.upper():
        raise InvalidStoredSecret(
            f"Stored secret uses {actual_scheme}, expected {scheme.upper()}"
        )

    data = password.encode("utf-8")

    if actual_scheme in DIGEST_SCHEMES:
        algorithm, salted = DIGEST_SCHEMES[actual_scheme]
        raw = _b64decode(encoded)
        size = algorithm.digest_size
        if salted:
            if len(raw) <= size:
                raise InvalidStoredSecret(f"{actual_scheme} value has no salt")
            expected, salt = raw[:size], raw[size:]
        else:
            if len(raw) != size:
                raise InvalidStoredSecret(f"{actual_scheme} value has wrong length")
            expected, salt = raw, b""
        return constant_time_equals(_digest(algorithm, data + salt), expected)

    if actual_scheme == PBKDF2_SCHEME:
        return _verify_pbkdf2(data, encoded)

    if actual_scheme == BCRYPT_SCHEME:
        return _verify_bcrypt(data, encoded)

    if actual_scheme == CLEARTEXT_SCHEME:
        return constant_time_equals(data, encoded.encode("utf-8"))

    raise InvalidStoredSecret(f"Unsupported password scheme: {actual_scheme}")


def _verify_pbkdf2(data: bytes, encoded: str) -> bool:
    parts = encoded.split("$")
    if len(parts) != 3:
        raise InvalidStoredSecret("PBKDF2 value must be iterations$salt$hash")
    try:
        iterations = int(parts[0])
    except ValueError as e:
        raise InvalidStoredSecret("PBKDF2 iteration count is not a number") from e
    if iterations < 1:
        raise InvalidStoredSecret("PBKDF2 iteration count must be positive")

    salt = _b64decode(parts[1])
    expected = _b64decode(parts[2])
    if not expected:
        raise InvalidStoredSecret("PBKDF2 value has empty hash")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=len(expected),
        salt=salt,
        iterations=iterations,
        backend=default_backend(),
    )
    try:
        kdf.verify(data, expected)
    except InvalidKey:
        return False
    return True


def _verify_bcrypt(data: bytes, encoded: str) -> bool:
    if not encoded.startswith(BCRYPT_PREFIXES):
        raise InvalidStoredSecret("BCRYPT value must start with $2a$, $2b$ or $2y$")
    try:
        hashed = encoded.strip().encode("ascii")
    except UnicodeEncodeError as e:
        raise InvalidStoredSecret("BCRYPT value is not ASCII") from e

    # bcrypt reads a NUL-terminated string of at most 72 bytes
    if len(data) > BCRYPT_MAX_PASSWORD_BYTES or b"\x00" in data:
        return False
    try:
        return bcrypt.checkpw(data, hashed)
    except ValueError as e:
        raise InvalidStoredSecret(f"Malformed BCRYPT value: {e}") from e
