"""
DirAuth Web Module

ASGI collaborators that enforce the authenticator's verdict.

Components:
- gate: AuthenticationGate (session check before every route)
- login: LoginEndpoint (form login, logout)
- session: SessionSigner (signed, expiring session tokens)
- app: controllers and create_app()
"""

from dirauth.web.app import create_app, home, index
from dirauth.web.gate import AuthenticationGate, current_principal
from dirauth.web.login import LoginEndpoint
from dirauth.web.session import SessionPrincipal, SessionSigner

__all__ = [
    "AuthenticationGate",
    "LoginEndpoint",
    "SessionPrincipal",
    "SessionSigner",
    "create_app",
    "current_principal",
    "home",
    "index",
]
