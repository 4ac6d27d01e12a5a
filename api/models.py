"""
API request and response models for HarborDesk Identity REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import ActivityLog, Identity, MenuAccess, UserStatus

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    # max_length keeps inputs well below bcrypt's 72-byte truncation point
    # for ordinary passwords; strength rules are not checked at login.
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Self-registration always yields a CUSTOMER account; staff roles are
    granted by an admin through PUT /auth/users/{id}/roles.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone_number: str | None = Field(default=None, max_length=40)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class RefreshRequest(BaseModel):
    """Optional body for POST /api/v1/auth/refresh; the cookie wins when both are present."""

    refresh_token: str | None = Field(default=None, max_length=4096)


class SwitchRoleRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    role: str = Field(min_length=1, max_length=50)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


class PasswordStrengthRequest(BaseModel):
    password: str = Field(max_length=128)


class ResetPasswordRequest(BaseModel):
    """Body for POST /auth/users/{id}/reset-password. Omit new_password to generate one."""

    new_password: str | None = Field(default=None, max_length=128)


class AssignRolesRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    roles: list[str] = Field(min_length=1, max_length=20)
    default_role: str | None = Field(default=None, max_length=50)


class CreateUserRequest(BaseModel):
    """Body for POST /auth/users. Omit password to have one generated."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str | None = Field(default=None, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone_number: str | None = Field(default=None, max_length=40)
    tenant_id: str | None = Field(default=None, max_length=100)
    roles: list[str] = Field(min_length=1, max_length=20)
    default_role: str | None = Field(default=None, max_length=50)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class UpdateStatusRequest(BaseModel):
    status: UserStatus


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MenuCapabilitiesOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_view: bool
    can_create: bool
    can_edit: bool
    can_delete: bool


class MenuOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    path: str | None
    icon: str | None
    parent_id: int | None
    sort_order: int
    permissions: MenuCapabilitiesOut

    @classmethod
    def from_access(cls, access: MenuAccess) -> "MenuOut":
        caps = access.capabilities
        return cls(
            name=access.menu.name,
            label=access.menu.label,
            path=access.menu.path,
            icon=access.menu.icon,
            parent_id=access.menu.parent_id,
            sort_order=access.menu.sort_order,
            permissions=MenuCapabilitiesOut(
                can_view=caps.can_view,
                can_create=caps.can_create,
                can_edit=caps.can_edit,
                can_delete=caps.can_delete,
            ),
        )


class IdentityOut(BaseModel):
    """The resolved identity as returned to the client."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    status: str
    tenant_id: str | None
    roles: list[str]
    active_role: str | None
    permissions: list[str]
    password_expired: bool

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityOut":
        return cls(
            id=identity.user_id,
            email=identity.email,
            first_name=identity.first_name,
            last_name=identity.last_name,
            status=identity.status,
            tenant_id=identity.tenant_id,
            roles=identity.roles,
            active_role=identity.active_role,
            permissions=identity.permissions,
            password_expired=identity.password_expired,
        )


class SessionOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int | None
    expires_at: str | None
    last_activity_at: str | None = None


class LoginResponse(BaseModel):
    """Response for POST /auth/login. The refresh token is set as a cookie, not returned here."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: IdentityOut
    menus: list[MenuOut]
    session: SessionOut


class TokenResponse(BaseModel):
    """Response for POST /auth/refresh and POST /auth/switch-role."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: IdentityOut
    menus: list[MenuOut] = Field(default_factory=list)


class RoleOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str
    is_active: bool = False


class RolesResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    roles: list[RoleOut]
    active_role: str | None


class MenusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    menus: list[MenuOut]
    active_role: str | None


class PermissionsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    permissions: list[str]
    active_role: str | None


class ProfileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone_number: str | None
    status: str
    tenant_id: str | None
    is_email_verified: bool
    last_login_at: str | None
    password_expired: bool
    roles: list[RoleOut]
    permissions: list[str]


class CheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: IdentityOut
    session: SessionOut


class UserCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    roles: list[str]


class AdminUserCreatedResponse(UserCreatedResponse):
    generated_password: str | None = None


class UserStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    status: str


class PasswordStrengthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int
    level: str
    is_valid: bool
    errors: list[str]


class PasswordResetResponse(BaseModel):
    """The new password is only echoed back when the server generated it."""

    model_config = ConfigDict(frozen=True)

    message: str
    generated_password: str | None = None


class AssignedRolesResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    roles: list[str]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ActivityLogOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int | None
    action: str
    entity: str
    entity_id: str | None
    details: dict
    ip_address: str | None
    user_agent: str | None
    created_at: str

    @classmethod
    def from_log(cls, log: ActivityLog) -> "ActivityLogOut":
        return cls(
            id=log.id,
            user_id=log.user_id,
            action=log.action,
            entity=log.entity,
            entity_id=log.entity_id,
            details=log.details,
            ip_address=log.ip_address,
            user_agent=log.user_agent,
            created_at=log.created_at or "",
        )


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    limit: int
    total: int
    pages: int


class ActivityLogPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: list[ActivityLogOut]
    pagination: Pagination


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Any | None = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
