"""
DirAuth Form Login

GET  /login   renders the login form
POST /login   verifies username/password against the directory
GET  /logout  clears the session

Outcomes of POST /login:
- granted             -> session cookie + redirect to "/"
- denied              -> redirect to /login?error
- directory outage    -> 503, so users are not told their password is wrong
"""

from __future__ import annotations

import asyncio
import html
from typing import List

import structlog
from starlette.requests import Request
from starlette.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from starlette.routing import Route

from dirauth.auth.authenticator import DirectoryAuthenticator
from dirauth.web.session import SessionSigner

logger = structlog.get_logger()

LOGIN_FORM = """<!DOCTYPE html>
<html>
<head><title>Please sign in</title></head>
<body>
<h2>Please sign in</h2>
{message}
<form method="post" action="{action}">
  <p><label for="username">Username</label>
  <input type="text" id="username" name="username" autofocus></p>
  <p><label for="password">Password</label>
  <input type="password" id="password" name="password"></p>
  <button type="submit">Sign in</button>
</form>
</body>
</html>
"""

ERROR_MESSAGE = '<p class="error">Bad credentials</p>'
LOGOUT_MESSAGE = '<p class="info">You have been signed out</p>'
UNAVAILABLE_MESSAGE = "Authentication service unavailable, please try again later"


# Upper bound on a login form body
MAX_BODY_SIZE = 64 * 1024


class LoginEndpoint:
    """Starlette endpoints for the login form, the credential POST, and logout.

    Args:
        authenticator: Verifies credentials against the directory.
        signer: Issues the session token on success.
        login_path: Path of the form.
        logout_path: Path that clears the session.
        success_path: Redirect target after a successful login.
    """

    def __init__(
        self,
        authenticator: DirectoryAuthenticator,
        signer: SessionSigner,
        *,
        login_path: str = "/login",
        logout_path: str = "/logout",
        success_path: str = "/",
    ) -> None:
        self._authenticator = authenticator
        self._signer = signer
        self.login_path = login_path
        self.logout_path = logout_path
        self._success_path = success_path

    def routes(self) -> List[Route]:
        """Routes for mounting into a Starlette app."""
        return [
            Route(self.login_path, self.form, methods=["GET"]),
            Route(self.login_path, self.login, methods=["POST"]),
            Route(self.logout_path, self.logout, methods=["GET", "POST"]),
        ]

    async def form(self, request: Request) -> HTMLResponse:
        """GET /login : render the form, with a message for ?error or ?logout."""
        message = ""
        if "error" in request.query_params:
            message = ERROR_MESSAGE
        elif "logout" in request.query_params:
            message = LOGOUT_MESSAGE
        return HTMLResponse(LOGIN_FORM.format(message=message, action=html.escape(self.login_path)))

    async def login(self, request: Request) -> Response:
        """POST /login : authenticate the submitted credentials."""
        body = await request.body()
        if len(body) > MAX_BODY_SIZE:
            return PlainTextResponse("Payload Too Large", status_code=413)

        form = await request.form()
        username = str(form.get("username", ""))
        password = str(form.get("password", ""))

        # Directory I/O is blocking
        verdict = await asyncio.to_thread(self._authenticator.authenticate, username, password)

        if verdict.authenticated:
            token = self._signer.issue(verdict)
            logger.info("login_succeeded", username=username)
            response: Response = RedirectResponse(self._success_path, status_code=302)
            response.headers.append("set-cookie", self._signer.cookie_header(token))
            return response
        if verdict.service_unavailable:
            logger.error("login_directory_unavailable", username=username)
            return PlainTextResponse(UNAVAILABLE_MESSAGE, status_code=503)
        logger.info("login_failed", username=username)
        return RedirectResponse(f"{self.login_path}?error", status_code=302)

    async def logout(self, request: Request) -> Response:
        """GET /logout : clear the session cookie."""
        response = RedirectResponse(f"{self.login_path}?logout", status_code=302)
        response.headers.append("set-cookie", self._signer.clear_cookie_header())
        return response
