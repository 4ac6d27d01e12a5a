"""
auth/models.py -- Domain dataclasses for identity, role and session entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; stores, the resolver and the service do the work.

Timestamps are UTC ISO-8601 strings with microsecond precision (see
auth/schema.py:iso). Fixed width keeps string comparison chronological in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    PENDING = "PENDING"


class RoleName(str, Enum):
    """Well-known role names seeded on every install.

    Roles are stored by name, so deployments may add others; these are the
    ones code refers to directly.
    """

    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"
    PORT = "PORT"
    DEPOT = "DEPOT"
    SALES = "SALES"
    MASTER_PORT = "MASTER_PORT"


class SessionState(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"  # is_active but past expires_at; inert, never swept
    TERMINATED = "TERMINATED"  # explicit logout or eviction; final


class Action(str, Enum):
    """Activity log action codes."""

    REGISTER = "REGISTER"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    ROLE_SWITCH = "ROLE_SWITCH"
    TOKEN_REFRESH = "TOKEN_REFRESH"
    SESSION_EVICTED = "SESSION_EVICTED"
    PASSWORD_RESET = "PASSWORD_RESET"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    ROLES_ASSIGNED = "ROLES_ASSIGNED"
    USER_CREATED = "USER_CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"


@dataclass
class User:
    """An identity record. hashed_password is a bcrypt hash, never plaintext."""

    email: str
    hashed_password: str
    first_name: str = ""
    last_name: str = ""
    phone_number: str | None = None
    status: str = UserStatus.ACTIVE.value
    tenant_id: str | None = None
    id: int | None = None
    is_email_verified: bool = False
    email_verified_at: str | None = None
    last_login_at: str | None = None
    password_changed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value


@dataclass
class Permission:
    name: str  # "bookings.create"
    module: str
    display_name: str = ""
    category: str = "read"
    is_active: bool = True
    id: int | None = None


@dataclass
class Menu:
    name: str
    label: str
    path: str | None = None
    icon: str | None = None
    parent_id: int | None = None
    sort_order: int = 0
    is_active: bool = True
    id: int | None = None


@dataclass
class RoleMenu:
    """One role's capability flags on one menu node."""

    menu: Menu
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    role_id: int | None = None


@dataclass
class Role:
    name: str
    display_name: str = ""
    description: str = ""
    is_active: bool = True
    id: int | None = None
    permissions: list[Permission] = field(default_factory=list)
    menus: list[RoleMenu] = field(default_factory=list)


@dataclass
class UserRole:
    """Assignment edge between a user and a role.

    is_active=False suspends the assignment without deleting it. is_default
    marks the role a fresh login starts in; without one, the earliest
    assignment wins.
    """

    user_id: int
    role_id: int
    is_active: bool = True
    is_default: bool = False
    granted_by: int | None = None
    id: int | None = None
    created_at: str | None = None
    role: Role | None = None


@dataclass
class UserSession:
    """One authenticated client instance ("device").

    token always holds the single currently valid access token for the
    session; rotation overwrites it.
    """

    user_id: int
    token: str
    expires_at: str
    active_role: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    is_active: bool = True
    id: int | None = None
    last_activity_at: str | None = None
    created_at: str | None = None

    def state(self, now_iso: str) -> SessionState:
        if not self.is_active:
            return SessionState.TERMINATED
        if self.expires_at <= now_iso:
            return SessionState.EXPIRED
        return SessionState.ACTIVE


@dataclass
class RefreshToken:
    user_id: int
    token: str
    expires_at: str
    session_id: int | None = None
    is_revoked: bool = False
    id: int | None = None
    created_at: str | None = None


@dataclass
class ActivityLog:
    action: str
    entity: str
    user_id: int | None = None
    entity_id: str | None = None
    details: dict = field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass
class ClientInfo:
    """Network metadata of the caller, recorded on sessions and audit rows."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class MenuCapabilities:
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False

    def merge(self, other: MenuCapabilities) -> MenuCapabilities:
        return MenuCapabilities(
            can_view=self.can_view or other.can_view,
            can_create=self.can_create or other.can_create,
            can_edit=self.can_edit or other.can_edit,
            can_delete=self.can_delete or other.can_delete,
        )


@dataclass
class MenuAccess:
    menu: Menu
    capabilities: MenuCapabilities


@dataclass
class Identity:
    """The resolved identity attached to an authenticated request.

    Built fresh from the store on every request; never cached across requests.
    """

    user_id: int
    email: str
    first_name: str
    last_name: str
    status: str
    tenant_id: str | None
    roles: list[str]
    active_role: str | None
    permissions: list[str]
    menus: list[MenuAccess]
    session_id: int | None = None
    session_expires_at: str | None = None
    last_activity_at: str | None = None
    password_expired: bool = False
