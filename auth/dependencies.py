"""
auth/dependencies.py -- FastAPI Depends() helpers around the Authentication Gate.

The token travels as "Authorization: Bearer <access token>". The refresh
token cookie is never accepted here; it is only good for POST /auth/refresh.

get_current_auth() runs the gate and raises HTTP 401 with the gate's error code
(missing_token, invalid_token, invalid_session, account_inactive).
require_role() / require_permission() / require_active_role() build
dependencies that additionally raise HTTP 403 with the required vs. held
sets for diagnostics.

On success the AuthContext is also stored on request.state.auth so
middleware and exception handlers further down can see who was calling.

Layer rule: auth/dependencies.py may import from fastapi because it is part of
the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from fastapi import HTTPException, Request

from auth.errors import AuthError, InsufficientRole, PermissionDenied
from auth.gate import AuthContext, AuthGate
from auth.models import ClientInfo, Identity
from auth.permissions import has_any_role, has_permission, role_name
from auth.tokens import extract_bearer_token


def _http_error(exc: AuthError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())


def client_info(request: Request) -> ClientInfo:
    """Network metadata recorded on sessions and audit rows."""
    return ClientInfo(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
    )


def get_current_auth(request: Request) -> AuthContext:
    """Require a valid bearer token backed by a live session.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(auth: AuthContext = Depends(get_current_auth)): ...
    """
    cached = getattr(request.state, "auth", None)
    if cached is not None:
        return cached
    gate: AuthGate = request.app.state.auth_gate
    token = extract_bearer_token(request.headers.get("Authorization"))
    try:
        ctx = gate.authenticate(token)
    except AuthError as exc:
        raise _http_error(exc) from exc
    request.state.auth = ctx
    return ctx


def get_current_identity(request: Request) -> Identity:
    return get_current_auth(request).identity


def require_role(*roles: str | Enum) -> Callable[[Request], Identity]:
    """Dependency factory: 403 unless the caller holds at least one of the roles.

    Checks the full role list, not just the session's active role; use
    require_active_role() for the stricter check.
    """
    required = [role_name(r) for r in roles]

    def dependency(request: Request) -> Identity:
        identity = get_current_identity(request)
        if required and not has_any_role(identity, required):
            raise _http_error(InsufficientRole(detail={"required_roles": required, "user_roles": identity.roles}))
        return identity

    return dependency


def require_active_role(*roles: str | Enum) -> Callable[[Request], Identity]:
    """Dependency factory: 403 unless the session is currently acting as one of the roles."""
    allowed = [role_name(r) for r in roles]

    def dependency(request: Request) -> Identity:
        identity = get_current_identity(request)
        if identity.active_role is None or identity.active_role not in allowed:
            raise _http_error(
                InsufficientRole(
                    "Active role does not have access to this resource.",
                    detail={"allowed_roles": allowed, "active_role": identity.active_role},
                )
            )
        return identity

    return dependency


def require_permission(permission: str) -> Callable[[Request], Identity]:
    """Dependency factory: 403 unless the caller's merged permission set contains the name."""

    def dependency(request: Request) -> Identity:
        identity = get_current_identity(request)
        if not has_permission(identity, permission):
            raise _http_error(
                PermissionDenied(
                    f"Permission '{permission}' required.",
                    detail={"required_permission": permission, "user_permissions": identity.permissions},
                )
            )
        return identity

    return dependency
