"""
DirAuth Web Application

Composes the login endpoint, the greeting controllers and the
authentication gate into one ASGI app:

    AuthenticationGate -> Starlette routes -> {LoginEndpoint, controllers}

Every route except the login form and logout requires a session.

Usage:
    auth = create_directory_authenticator(
        "ldap://localhost:8389/dc=springframework,dc=org"
    )
    app = create_app(auth, secret_key=os.environ["DIRAUTH_SECRET"].encode())
    # uvicorn.run(app)
"""

from __future__ import annotations

from typing import Optional

import structlog
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from dirauth.auth.authenticator import DirectoryAuthenticator
from dirauth.web.gate import AuthenticationGate, current_principal
from dirauth.web.login import LoginEndpoint
from dirauth.web.session import SessionSigner

logger = structlog.get_logger()


# =============================================================================
# CONTROLLERS
# =============================================================================


async def index(request: Request) -> PlainTextResponse:
    """GET / : greeting."""
    return PlainTextResponse("Welcome to the home page!")


async def home(request: Request) -> PlainTextResponse:
    """GET /home : greets the authenticated principal by name."""
    principal = request.scope.get("user") or current_principal.get()
    name = principal.name if principal is not None else "anonymous"
    return PlainTextResponse(f"Welcome to your home page, {name}!")


def create_app(
    authenticator: DirectoryAuthenticator,
    *,
    secret_key: Optional[bytes] = None,
    max_age: int = 1800,
) -> AuthenticationGate:
    """
    Build the gated ASGI application.

    Args:
        authenticator: Directory authenticator used by the login form
        secret_key: Session signing key (random per process if None,
            which invalidates sessions on restart)
        max_age: Session lifetime in seconds

    Returns:
        ASGI application
    """
    signer = (
        SessionSigner(secret_key=secret_key, max_age=max_age)
        if secret_key is not None
        else SessionSigner(max_age=max_age)
    )
    login = LoginEndpoint(authenticator, signer)

    routes = [
        Route("/", index, methods=["GET"]),
        Route("/home", home, methods=["GET"]),
        *login.routes(),
    ]

    logger.debug("web_app_created", max_age=max_age)
    return AuthenticationGate(
        Starlette(routes=routes),
        signer,
        login_path=login.login_path,
        exempt_paths={login.logout_path},
    )
