"""
auth/store.py -- SQLAlchemy Core persistence for users, roles and grants.

Pattern: Repository + Data Mapper. UserStore is the repository; the _row_to_*
functions are the mappers. Service and gate code never touches SQL directly.

Covers the "who is this and what may they hold" side of the core: users,
roles, the permission catalogue, menus with per-role capability flags, and
the user<->role assignment edges. Session and refresh-token rows live in
auth/sessions.py.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import Menu, Permission, Role, RoleMenu, User, UserRole
from auth.schema import menus, now_iso, permissions, role_menus, role_permissions, roles, user_roles, users


class UserStore:
    """Repository for User, Role, Permission, Menu and UserRole entities.

    Usage:
        engine = create_auth_engine("sqlite:///harbordesk_auth.db")
        store = UserStore(engine)
        uid = store.create_user(User(email="ops@example.com", hashed_password=hash_password("S3cure!pass")))
        store.assign_role(uid, store.get_role_by_name("SALES").id)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers check get_by_email() first; the unique index is the backstop
        for concurrent registrations.
        """
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                users.insert().values(
                    email=user.email.strip().lower(),
                    hashed_password=user.hashed_password,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    phone_number=user.phone_number,
                    status=user.status,
                    tenant_id=user.tenant_id,
                    is_email_verified=1 if user.is_email_verified else 0,
                    email_verified_at=user.email_verified_at,
                    password_changed_at=user.password_changed_at or now,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email. Emails are stored and matched lowercased."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: first_name, last_name, phone_number, status,
        tenant_id. Returns True if a row was updated.
        """
        allowed = {"first_name", "last_name", "phone_number", "status", "tenant_id"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(
                users.update().where(users.c.id == user_id).values(**fields, updated_at=now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Replace the password hash and restart the password-expiry clock."""
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == user_id)
                .values(hashed_password=hashed_password, password_changed_at=now, updated_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(users.update().where(users.c.id == user_id).values(last_login_at=now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Catalogue: permissions, roles, menus
    # ------------------------------------------------------------------

    def create_permission(self, permission: Permission) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                permissions.insert().values(
                    name=permission.name,
                    display_name=permission.display_name,
                    module=permission.module,
                    category=permission.category,
                    is_active=1 if permission.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_permission_by_name(self, name: str) -> Permission | None:
        with self.engine.connect() as conn:
            row = conn.execute(permissions.select().where(permissions.c.name == name)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def create_role(self, role: Role) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                roles.insert().values(
                    name=role.name,
                    display_name=role.display_name,
                    description=role.description,
                    is_active=1 if role.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_role_by_name(self, name: str) -> Role | None:
        """Return the bare role row (permissions and menus not loaded)."""
        with self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(roles.select().order_by(roles.c.name)).fetchall()
        return [_row_to_role(r) for r in rows]

    def grant_permission(self, role_id: int, permission_id: int) -> None:
        """Attach a permission to a role. Idempotent."""
        with self.engine.connect() as conn:
            exists = conn.execute(
                select(role_permissions.c.role_id).where(
                    (role_permissions.c.role_id == role_id) & (role_permissions.c.permission_id == permission_id)
                )
            ).fetchone()
            if exists is None:
                conn.execute(role_permissions.insert().values(role_id=role_id, permission_id=permission_id))
                conn.commit()

    def create_menu(self, menu: Menu) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                menus.insert().values(
                    name=menu.name,
                    label=menu.label,
                    path=menu.path,
                    icon=menu.icon,
                    parent_id=menu.parent_id,
                    sort_order=menu.sort_order,
                    is_active=1 if menu.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_menu_by_name(self, name: str) -> Menu | None:
        with self.engine.connect() as conn:
            row = conn.execute(menus.select().where(menus.c.name == name)).fetchone()
        return _row_to_menu(row) if row is not None else None

    def bind_menu(
        self,
        role_id: int,
        menu_id: int,
        *,
        can_view: bool = False,
        can_create: bool = False,
        can_edit: bool = False,
        can_delete: bool = False,
    ) -> None:
        """Set one role's capability flags on one menu, replacing any previous binding."""
        flags = {
            "can_view": 1 if can_view else 0,
            "can_create": 1 if can_create else 0,
            "can_edit": 1 if can_edit else 0,
            "can_delete": 1 if can_delete else 0,
        }
        match = (role_menus.c.role_id == role_id) & (role_menus.c.menu_id == menu_id)
        with self.engine.connect() as conn:
            result = conn.execute(role_menus.update().where(match).values(**flags))
            if result.rowcount == 0:
                conn.execute(role_menus.insert().values(role_id=role_id, menu_id=menu_id, **flags))
            conn.commit()

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def assign_role(
        self,
        user_id: int,
        role_id: int,
        *,
        granted_by: int | None = None,
        is_default: bool = False,
    ) -> int:
        """Create (or reactivate) the assignment edge and return its ID.

        Reactivating keeps the original row so assignment order, and with it
        the fallback default role, does not shift.
        """
        match = (user_roles.c.user_id == user_id) & (user_roles.c.role_id == role_id)
        with self.engine.connect() as conn:
            if is_default:
                conn.execute(user_roles.update().where(user_roles.c.user_id == user_id).values(is_default=0))
            existing = conn.execute(select(user_roles.c.id).where(match)).fetchone()
            if existing is not None:
                conn.execute(
                    user_roles.update()
                    .where(user_roles.c.id == existing.id)
                    .values(is_active=1, is_default=1 if is_default else 0, granted_by=granted_by)
                )
                conn.commit()
                return existing.id
            result = conn.execute(
                user_roles.insert().values(
                    user_id=user_id,
                    role_id=role_id,
                    is_active=1,
                    is_default=1 if is_default else 0,
                    granted_by=granted_by,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def set_assignment_active(self, user_id: int, role_id: int, is_active: bool) -> bool:
        """Suspend or restore an assignment without deleting it."""
        with self.engine.connect() as conn:
            result = conn.execute(
                user_roles.update()
                .where((user_roles.c.user_id == user_id) & (user_roles.c.role_id == role_id))
                .values(is_active=1 if is_active else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def get_assignments(self, user_id: int) -> list[UserRole]:
        """Return the user's ACTIVE assignments, in assignment order, fully loaded.

        Each UserRole.role carries its permissions and menu bindings so the
        result can go straight into resolve_permissions() / resolve_menus().
        Three queries regardless of role count: assignments, permissions,
        menu bindings.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(
                    user_roles.c.id.label("assignment_id"),
                    user_roles.c.user_id,
                    user_roles.c.role_id,
                    user_roles.c.is_active.label("assignment_active"),
                    user_roles.c.is_default,
                    user_roles.c.granted_by,
                    user_roles.c.created_at,
                    roles.c.name,
                    roles.c.display_name,
                    roles.c.description,
                    roles.c.is_active,
                )
                .join(roles, roles.c.id == user_roles.c.role_id)
                .where((user_roles.c.user_id == user_id) & (user_roles.c.is_active == 1))
                .order_by(user_roles.c.id)
            ).fetchall()
            role_ids = [r.role_id for r in rows]
            perms_by_role = self._load_permissions(conn, role_ids)
            menus_by_role = self._load_menus(conn, role_ids)

        assignments: list[UserRole] = []
        for r in rows:
            role = Role(
                id=r.role_id,
                name=r.name,
                display_name=r.display_name,
                description=r.description,
                is_active=bool(r.is_active),
                permissions=perms_by_role.get(r.role_id, []),
                menus=menus_by_role.get(r.role_id, []),
            )
            assignments.append(
                UserRole(
                    id=r.assignment_id,
                    user_id=r.user_id,
                    role_id=r.role_id,
                    is_active=bool(r.assignment_active),
                    is_default=bool(r.is_default),
                    granted_by=r.granted_by,
                    created_at=r.created_at,
                    role=role,
                )
            )
        return assignments

    @staticmethod
    def _load_permissions(conn, role_ids: list[int]) -> dict[int, list[Permission]]:
        result: dict[int, list[Permission]] = defaultdict(list)
        if not role_ids:
            return result
        rows = conn.execute(
            select(role_permissions.c.role_id, permissions)
            .join(permissions, permissions.c.id == role_permissions.c.permission_id)
            .where(role_permissions.c.role_id.in_(role_ids))
            .order_by(permissions.c.name)
        ).fetchall()
        for row in rows:
            result[row.role_id].append(_row_to_permission(row))
        return result

    @staticmethod
    def _load_menus(conn, role_ids: list[int]) -> dict[int, list[RoleMenu]]:
        result: dict[int, list[RoleMenu]] = defaultdict(list)
        if not role_ids:
            return result
        rows = conn.execute(
            select(
                role_menus.c.role_id,
                role_menus.c.can_view,
                role_menus.c.can_create,
                role_menus.c.can_edit,
                role_menus.c.can_delete,
                menus,
            )
            .join(menus, menus.c.id == role_menus.c.menu_id)
            .where(role_menus.c.role_id.in_(role_ids))
        ).fetchall()
        for row in rows:
            result[row.role_id].append(
                RoleMenu(
                    role_id=row.role_id,
                    menu=_row_to_menu(row),
                    can_view=bool(row.can_view),
                    can_create=bool(row.can_create),
                    can_edit=bool(row.can_edit),
                    can_delete=bool(row.can_delete),
                )
            )
        return result


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        first_name=row.first_name,
        last_name=row.last_name,
        phone_number=row.phone_number,
        status=row.status,
        tenant_id=row.tenant_id,
        is_email_verified=bool(row.is_email_verified),
        email_verified_at=row.email_verified_at,
        last_login_at=row.last_login_at,
        password_changed_at=row.password_changed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        display_name=row.display_name,
        description=row.description,
        is_active=bool(row.is_active),
    )


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        name=row.name,
        display_name=row.display_name,
        module=row.module,
        category=row.category,
        is_active=bool(row.is_active),
    )


def _row_to_menu(row) -> Menu:
    return Menu(
        id=row.id,
        name=row.name,
        label=row.label,
        path=row.path,
        icon=row.icon,
        parent_id=row.parent_id,
        sort_order=row.sort_order,
        is_active=bool(row.is_active),
    )
