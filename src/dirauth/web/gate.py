"""ASGI gate that requires an authenticated session before every route."""

from __future__ import annotations

from contextvars import ContextVar
from typing import Any, Dict, Optional, Set

import structlog
from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from dirauth.web.session import SessionPrincipal, SessionSigner

logger = structlog.get_logger()

# Principal of the request being handled
current_principal: ContextVar[Optional[SessionPrincipal]] = ContextVar(
    "current_principal", default=None
)


class AuthenticationGate:
    """ASGI interceptor that admits only requests carrying a valid session.

    A valid session cookie populates ``scope["user"]`` and
    ``current_principal`` for the wrapped app. Otherwise HTML clients are
    redirected to the login form and everything else receives 401.

    Args:
        app: The ASGI application to wrap.
        signer: Verifies session tokens.
        login_path: Where unauthenticated browsers are sent.
        exempt_paths: Exact paths that bypass the gate. The login path is
            always exempt.
    """

    def __init__(
        self,
        app: Any,
        signer: SessionSigner,
        *,
        login_path: str = "/login",
        exempt_paths: Optional[Set[str]] = None,
    ) -> None:
        self._app = app
        self._signer = signer
        self._login_path = login_path
        self._exempt_paths = set(exempt_paths) if exempt_paths is not None else set()
        self._exempt_paths.add(login_path)

    def _is_exempt(self, path: str) -> bool:
        return path in self._exempt_paths

    def _principal(self, request: Request) -> Optional[SessionPrincipal]:
        token = request.cookies.get(self._signer.cookie_name)
        if not token:
            return None
        return self._signer.verify(token)

    async def __call__(self, scope: Dict[str, Any], receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self._app(scope, receive, send)
            return

        path = scope.get("path", "")
        if self._is_exempt(path):
            await self._app(scope, receive, send)
            return

        request = Request(scope)
        principal = self._principal(request)
        if principal is None:
            logger.debug("request_unauthenticated", path=path)
            response = self._reject(request)
            await response(scope, receive, send)
            return

        token = current_principal.set(principal)
        try:
            await self._app({**scope, "user": principal}, receive, send)
        finally:
            current_principal.reset(token)

    def _reject(self, request: Request) -> Response:
        """Redirect browsers to the login form, 401 for everything else."""
        if request.method == "GET" and "text/html" in request.headers.get("accept", ""):
            return RedirectResponse(self._login_path, status_code=302)
        return PlainTextResponse("Unauthorized", status_code=401)
