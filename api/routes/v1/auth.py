"""
api/routes/v1/auth.py -- Authentication, session and role REST endpoints.

Routes:
  POST /api/v1/auth/register                 -- self-service CUSTOMER sign-up (if enabled)
  POST /api/v1/auth/login                    -- password login; sets refresh cookie
  POST /api/v1/auth/refresh                  -- new access token from the refresh cookie / body
  POST /api/v1/auth/logout                   -- end this session, revoke all refresh tokens
  POST /api/v1/auth/switch-role              -- re-point this session at another role
  GET  /api/v1/auth/profile                  -- user record, roles, permissions
  GET  /api/v1/auth/roles                    -- roles the user can switch to
  GET  /api/v1/auth/permissions              -- merged permission names
  GET  /api/v1/auth/menus                    -- merged menu tree
  GET  /api/v1/auth/check                    -- is this token still good?
  POST /api/v1/auth/password-strength        -- advisory score for a candidate password
  POST /api/v1/auth/change-password          -- self-service password change
  POST /api/v1/auth/users/{id}/reset-password  -- admin reset (users.update)
  POST /api/v1/auth/users                    -- admin account creation (users.create)
  PUT  /api/v1/auth/users/{id}/roles         -- replace role set (roles.manage)
  PATCH /api/v1/auth/users/{id}/status       -- activate / deactivate (users.update)

Security:
  Login, register, refresh, role switch and password reset are rate-limited
  per IP with the limits from core.config.
  Cache-Control: no-store on every response that carries a token.
  AuthError subclasses raised by the service propagate to the handler in
  api/main.py, which renders them in the ErrorResponse envelope.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AdminUserCreatedResponse,
    AssignedRolesResponse,
    AssignRolesRequest,
    ChangePasswordRequest,
    CheckResponse,
    CreateUserRequest,
    IdentityOut,
    LoginRequest,
    LoginResponse,
    MenuOut,
    MenusResponse,
    MessageResponse,
    PasswordResetResponse,
    PasswordStrengthRequest,
    PasswordStrengthResponse,
    PermissionsResponse,
    ProfileResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    RoleOut,
    RolesResponse,
    SessionOut,
    SwitchRoleRequest,
    TokenResponse,
    UpdateStatusRequest,
    UserCreatedResponse,
    UserStatusResponse,
)
from auth.dependencies import client_info, get_current_auth, get_current_identity, require_permission
from auth.errors import MissingToken
from auth.gate import AuthContext
from auth.models import Identity
from auth.passwords import password_strength as score_password, validate_password_strength
from auth.service import AuthService
from auth.tokens import clear_refresh_cookie, set_refresh_cookie
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - register, login, refresh, password-strength:  public
# - logout, switch-role, profile, roles, permissions, menus, check,
#   change-password:                              requires a live session (get_current_auth)
# - users:                                       requires permission users.create
# - users/{id}/reset-password, users/{id}/status: requires permission users.update
# - users/{id}/roles:                             requires permission roles.manage
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _menus(identity: Identity) -> list[MenuOut]:
    return [MenuOut.from_access(m) for m in identity.menus]


def _no_store(content: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.register_rate_limit)
@router.post("/auth/register", response_model=UserCreatedResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserCreatedResponse:
    """Create a CUSTOMER account. Staff roles are never self-assigned."""
    if not _settings.self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    service = _service(request)
    user = service.register(
        body.email,
        body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        phone_number=body.phone_number,
        client=client_info(request),
    )
    return UserCreatedResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        roles=[r.name for r in service.available_roles(user.id, None)],
    )


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    The access token is returned in the body; the refresh token only ever
    travels as an httpOnly cookie. Unknown email and wrong password produce
    the same 401 invalid_credentials response.
    """
    result = _service(request).login(body.email, body.password, client_info(request))
    payload = LoginResponse(
        access_token=result.access_token.token,
        expires_in=result.access_token.expires_in,
        user=IdentityOut.from_identity(result.identity),
        menus=_menus(result.identity),
        session=SessionOut(
            id=result.session.id,
            expires_at=result.session.expires_at,
            last_activity_at=result.session.last_activity_at,
        ),
    )
    resp = _no_store(payload.model_dump())
    set_refresh_cookie(resp, result.refresh_token.token)
    return resp


@limiter.limit(_settings.refresh_rate_limit)
@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request, body: RefreshRequest | None = None) -> JSONResponse:
    """Mint a new access token. The cookie is preferred over a token in the body."""
    token = request.cookies.get(_settings.refresh_cookie_name) or (body.refresh_token if body else None)
    if not token:
        raise MissingToken("Refresh token required.")
    result = _service(request).refresh(token, client_info(request))
    payload = TokenResponse(
        access_token=result.access_token.token,
        expires_in=result.access_token.expires_in,
        user=IdentityOut.from_identity(result.identity),
        menus=_menus(result.identity),
    )
    return _no_store(payload.model_dump())


@router.post("/auth/password-strength", response_model=PasswordStrengthResponse)
def password_strength(body: PasswordStrengthRequest) -> PasswordStrengthResponse:
    """Score a candidate password for UI feedback. Nothing is stored or logged."""
    result = validate_password_strength(body.password)
    strength = score_password(body.password)
    return PasswordStrengthResponse(
        score=strength.score,
        level=strength.level,
        is_valid=result.is_valid,
        errors=result.errors,
    )


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, auth: AuthContext = Depends(get_current_auth)) -> JSONResponse:
    """End the current session and revoke every refresh token of the user."""
    _service(request).logout(auth.identity.user_id, auth.session.id, client_info(request))
    resp = JSONResponse(content={"message": "Logged out."})
    clear_refresh_cookie(resp)
    return resp


@limiter.limit(_settings.role_switch_rate_limit)
@router.post("/auth/switch-role", response_model=TokenResponse)
def switch_role(
    request: Request,
    body: SwitchRoleRequest,
    auth: AuthContext = Depends(get_current_auth),
) -> JSONResponse:
    """Act as another assigned role. The previous access token stops working at once."""
    result = _service(request).switch_role(
        auth.identity.user_id,
        auth.session.id,
        body.role,
        client_info(request),
    )
    payload = TokenResponse(
        access_token=result.access_token.token,
        expires_in=result.access_token.expires_in,
        user=IdentityOut.from_identity(result.identity),
        menus=_menus(result.identity),
    )
    return _no_store(payload.model_dump())


@router.get("/auth/profile", response_model=ProfileResponse)
def profile(request: Request, identity: Identity = Depends(get_current_identity)) -> ProfileResponse:
    prof = _service(request).get_profile(identity.user_id, identity.active_role)
    user = prof.user
    return ProfileResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone_number=user.phone_number,
        status=user.status,
        tenant_id=user.tenant_id,
        is_email_verified=user.is_email_verified,
        last_login_at=user.last_login_at,
        password_expired=prof.identity.password_expired,
        roles=[
            RoleOut(
                name=r.name,
                display_name=r.display_name or r.name,
                is_active=r.name == identity.active_role,
            )
            for r in prof.roles
        ],
        permissions=prof.identity.permissions,
    )


@router.get("/auth/roles", response_model=RolesResponse)
def roles(request: Request, identity: Identity = Depends(get_current_identity)) -> RolesResponse:
    options = _service(request).available_roles(identity.user_id, identity.active_role)
    return RolesResponse(
        roles=[RoleOut(name=o.name, display_name=o.display_name, is_active=o.is_active) for o in options],
        active_role=identity.active_role,
    )


@router.get("/auth/permissions", response_model=PermissionsResponse)
def permissions(identity: Identity = Depends(get_current_identity)) -> PermissionsResponse:
    return PermissionsResponse(permissions=identity.permissions, active_role=identity.active_role)


@router.get("/auth/menus", response_model=MenusResponse)
def menus(identity: Identity = Depends(get_current_identity)) -> MenusResponse:
    return MenusResponse(menus=_menus(identity), active_role=identity.active_role)


@router.get("/auth/check", response_model=CheckResponse)
def check(auth: AuthContext = Depends(get_current_auth)) -> CheckResponse:
    """Cheap liveness check for a token; also refreshes the session's activity stamp."""
    return CheckResponse(
        user=IdentityOut.from_identity(auth.identity),
        session=SessionOut(
            id=auth.session.id,
            expires_at=auth.session.expires_at,
            last_activity_at=auth.session.last_activity_at,
        ),
    )


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
) -> MessageResponse:
    _service(request).change_password(
        identity.user_id,
        body.current_password,
        body.new_password,
        client_info(request),
    )
    return MessageResponse(message="Password changed.")


# ---------------------------------------------------------------------------
# User administration
# ---------------------------------------------------------------------------


@limiter.limit(_settings.password_reset_rate_limit)
@router.post("/auth/users/{user_id}/reset-password", response_model=PasswordResetResponse)
def reset_password(
    request: Request,
    user_id: int,
    body: ResetPasswordRequest,
    actor: Identity = Depends(require_permission("users.update")),
) -> JSONResponse:
    """Set a user's password. Without new_password a compliant one is generated and returned once."""
    password = _service(request).reset_password(
        user_id,
        body.new_password,
        actor=actor,
        client=client_info(request),
    )
    payload = PasswordResetResponse(
        message="Password reset.",
        generated_password=None if body.new_password else password,
    )
    return _no_store(payload.model_dump())


@router.put("/auth/users/{user_id}/roles", response_model=AssignedRolesResponse)
def assign_roles(
    request: Request,
    user_id: int,
    body: AssignRolesRequest,
    actor: Identity = Depends(require_permission("roles.manage")),
) -> AssignedRolesResponse:
    """Replace the user's role set. Roles left out are suspended, not deleted."""
    names = _service(request).assign_roles(
        user_id,
        body.roles,
        actor=actor,
        default=body.default_role,
        client=client_info(request),
    )
    return AssignedRolesResponse(user_id=user_id, roles=names)


@router.post("/auth/users", response_model=AdminUserCreatedResponse, status_code=201)
def create_user(
    request: Request,
    body: CreateUserRequest,
    actor: Identity = Depends(require_permission("users.create")),
) -> JSONResponse:
    """Create an ACTIVE account with any roles. Without a password one is generated and returned once."""
    service = _service(request)
    user, generated = service.create_user(
        body.email,
        body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        phone_number=body.phone_number,
        roles=body.roles,
        default=body.default_role,
        tenant_id=body.tenant_id,
        actor=actor,
        client=client_info(request),
    )
    payload = AdminUserCreatedResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        roles=[r.name for r in service.available_roles(user.id, None)],
        generated_password=generated,
    )
    return _no_store(payload.model_dump(), status_code=201)


@router.patch("/auth/users/{user_id}/status", response_model=UserStatusResponse)
def set_user_status(
    request: Request,
    user_id: int,
    body: UpdateStatusRequest,
    actor: Identity = Depends(require_permission("users.update")),
) -> UserStatusResponse:
    """Activate, deactivate or suspend an account. Leaving ACTIVE ends all of its sessions."""
    user = _service(request).set_status(user_id, body.status, actor=actor, client=client_info(request))
    return UserStatusResponse(id=user.id, email=user.email, status=user.status)
