"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Credential lookup order:
  1. Auth cookie (Settings.auth_cookie_name) -- set by the login route.
  2. Authorization: Bearer <credential> header -- non-browser clients.

Per request, authentication is a three-way decision made exactly once:
  no credential          -> 401, reason "no_credential"
  credential rejected    -> 401, reason "invalid_or_expired"
  credential verified    -> Identity stored on request.state.identity

There is no refresh: an expired credential means logging in again.

try_get_current_identity() is the soft variant (returns None on failure).
get_current_identity() raises AuthenticationError.
require_roles(*roles) layers a role check on top and raises
AuthorizationError (403) for a verified caller with the wrong role.

Layer rule: no imports from api/, audit/ or tasks/.
  This module may import fastapi because it is part of the FastAPI
  dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from fastapi import Depends, Request

from auth.models import ROLE_ADMIN, Identity
from auth.tokens import CredentialError
from core.errors import AuthenticationError, AuthorizationError

logger = logging.getLogger("tasktrack.auth")


def read_credential(request: Request) -> str | None:
    """Return the raw credential presented with the request, if any."""
    settings = request.app.state.settings
    credential = request.cookies.get(settings.auth_cookie_name)
    if not credential:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            credential = auth_header[7:].strip()
    return credential or None


def try_get_current_identity(request: Request) -> Identity | None:
    """Authenticate the request if possible. Never raises for a bad credential."""
    credential = read_credential(request)
    if credential is None:
        return None
    try:
        identity = request.app.state.credentials.verify(credential)
    except CredentialError as exc:
        logger.info("Credential rejected (%s) on %s %s", exc.kind, request.method, request.url.path)
        return None
    request.state.identity = identity
    return identity


def get_current_identity(request: Request) -> Identity:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    credential = read_credential(request)
    if credential is None:
        raise AuthenticationError("Not authenticated.", code="no_credential")
    try:
        identity = request.app.state.credentials.verify(credential)
    except CredentialError as exc:
        logger.info("Credential rejected (%s) on %s %s", exc.kind, request.method, request.url.path)
        raise AuthenticationError("Not authenticated.", code="invalid_or_expired") from exc
    request.state.identity = identity
    return identity


def authorize(identity: Identity | None, allowed_roles: Iterable[str]) -> Identity:
    """Return identity if its role is in allowed_roles.

    None means authentication never ran or failed -- that is a 401, not a 403.
    """
    if identity is None:
        raise AuthenticationError("Not authenticated.", code="no_credential")
    if identity.role not in allowed_roles:
        raise AuthorizationError("Access denied.")
    return identity


def require_roles(*roles: str) -> Callable[..., Identity]:
    """Build a dependency that admits only the given roles.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        async def route(identity: Identity = Depends(require_roles("admin"))): ...
    """
    allowed = frozenset(roles)

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        return authorize(identity, allowed)

    return dependency


require_admin = require_roles(ROLE_ADMIN)
