"""
DirAuth Session Tokens

Signed, expiring session tokens issued after a granted verdict, so the
gate does not contact the directory on every request.

Tokens are HS256 JSON Web Tokens carrying "sub", "dn", "groups" and "exp".
"""

from __future__ import annotations

import secrets
import time
from typing import Any, Callable, Dict, FrozenSet, Optional

import attrs
import jwt
import structlog
from attrs import field, validators

from dirauth.core.types import AuthenticationVerdict

logger = structlog.get_logger()

DEFAULT_COOKIE_NAME = "DIRAUTH_SESSION"
ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["exp", "sub", "dn"]


@attrs.define(frozen=True, slots=True)
class SessionPrincipal:
    """
    Authenticated principal carried by a session token.

    Attributes:
        name: Username the verdict was issued for
        dn: Principal DN
        groups: Group names at login time
        expires_at: Unix time after which the token is rejected
    """

    name: str
    dn: str
    groups: FrozenSet[str] = field(factory=frozenset, converter=frozenset)
    expires_at: int = 0

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if the session has expired."""
        return (time.time() if now is None else now) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """JWT claims for this principal."""
        return {
            "sub": self.name,
            "dn": self.dn,
            "groups": sorted(self.groups),
            "exp": self.expires_at,
        }


@attrs.define
class SessionSigner:
    """
    Issues and verifies session tokens.

    ``clock`` stamps the expiry at issue time and is checked again on
    verify. PyJWT additionally rejects tokens whose "exp" is past the
    wall clock.

    Example:
        signer = SessionSigner(secret_key=os.urandom(32))
        token = signer.issue(verdict)
        principal = signer.verify(token)
    """

    secret_key: bytes = field(factory=lambda: secrets.token_bytes(32), repr=False)
    max_age: int = field(default=1800, validator=validators.gt(0))
    cookie_name: str = DEFAULT_COOKIE_NAME
    clock: Callable[[], float] = time.time

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def issue(self, verdict: AuthenticationVerdict) -> str:
        """
        Create a token for a granted verdict.

        Raises:
            ValueError: If the verdict is not authenticated
        """
        if not verdict.authenticated:
            raise ValueError("Cannot issue a session for a denied verdict")

        principal = SessionPrincipal(
            name=verdict.username,
            dn=verdict.principal_dn,
            groups=verdict.groups,
            expires_at=int(self.clock()) + self.max_age,
        )
        return jwt.encode(principal.to_dict(), self.secret_key, algorithm=ALGORITHM)

    def verify(self, token: str) -> Optional[SessionPrincipal]:
        """
        Verify a token.

        Returns:
            The principal, or None if the token is malformed, forged or expired
        """
        if not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[ALGORITHM],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            self._logger.debug("session_expired")
            return None
        except jwt.InvalidTokenError as e:
            self._logger.warning("session_token_invalid", error=str(e))
            return None

        groups = claims.get("groups", [])
        if not isinstance(groups, list):
            return None
        principal = SessionPrincipal(
            name=str(claims["sub"]),
            dn=str(claims["dn"]),
            groups=(str(g) for g in groups),
            expires_at=int(claims["exp"]),
        )

        if principal.is_expired(self.clock()):
            self._logger.debug("session_expired", username=principal.name)
            return None
        return principal

    def cookie_header(self, token: str) -> str:
        """Set-Cookie value for a new session."""
        return (
            f"{self.cookie_name}={token}; Path=/; Max-Age={self.max_age}; "
            "HttpOnly; SameSite=Lax"
        )

    def clear_cookie_header(self) -> str:
        """Set-Cookie value that removes the session."""
        return f"{self.cookie_name}=; Path=/; Max-Age=0; HttpOnly; SameSite=Lax"
