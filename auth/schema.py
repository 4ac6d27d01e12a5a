"""
auth/schema.py -- SQLAlchemy Core schema shared by the auth stores.

UserStore, SessionStore and ActivityAuditor all work against the tables
declared here and share one Engine (built by create_auth_engine()), so a
single SQLite file or Postgres database holds the whole identity core.

Timestamps:
  Stored as TEXT in fixed-width UTC ISO-8601 with microseconds
  ("2026-01-02T03:04:05.000006+00:00"). Every writer goes through iso(),
  which makes lexicographic order equal chronological order -- the session
  gate relies on this for its `expires_at > now` match.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

metadata = MetaData()

# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("phone_number", String(40)),
    Column("status", String(20), nullable=False, server_default="ACTIVE"),
    Column("tenant_id", String(64)),
    Column("is_email_verified", Integer, nullable=False, server_default="0"),
    Column("email_verified_at", String(40)),
    Column("last_login_at", String(40)),
    Column("password_changed_at", String(40)),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40)),
)

roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
    Column("display_name", String(100), nullable=False, server_default=""),
    Column("description", Text, nullable=False, server_default=""),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

permissions = Table(
    "permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("display_name", String(150), nullable=False, server_default=""),
    Column("module", String(50), nullable=False),
    Column("category", String(30), nullable=False, server_default="read"),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

role_permissions = Table(
    "role_permissions",
    metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

menus = Table(
    "menus",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("label", String(150), nullable=False),
    Column("path", String(255)),
    Column("icon", String(100)),
    Column("parent_id", Integer, ForeignKey("menus.id")),
    Column("sort_order", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

role_menus = Table(
    "role_menus",
    metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("menu_id", Integer, ForeignKey("menus.id", ondelete="CASCADE"), primary_key=True),
    Column("can_view", Integer, nullable=False, server_default="0"),
    Column("can_create", Integer, nullable=False, server_default="0"),
    Column("can_edit", Integer, nullable=False, server_default="0"),
    Column("can_delete", Integer, nullable=False, server_default="0"),
)

user_roles = Table(
    "user_roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("is_default", Integer, nullable=False, server_default="0"),
    Column("granted_by", Integer),  # user id of the admin who granted it
    Column("created_at", String(40), nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
)

# ---------------------------------------------------------------------------
# Sessions and refresh tokens
# ---------------------------------------------------------------------------

user_sessions = Table(
    "user_sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token", Text, nullable=False),
    Column("active_role", String(50)),
    Column("ip_address", String(64)),
    Column("user_agent", Text),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("expires_at", String(40), nullable=False),
    Column("last_activity_at", String(40), nullable=False),
    Column("created_at", String(40), nullable=False),
)

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token", Text, nullable=False, unique=True),
    Column("session_id", Integer),  # session it was issued with; informational, not a FK
    Column("is_revoked", Integer, nullable=False, server_default="0"),
    Column("expires_at", String(40), nullable=False),
    Column("created_at", String(40), nullable=False),
)

# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

activity_logs = Table(
    "activity_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, index=True),  # NULL for anonymous failures; no FK, rows outlive users
    Column("action", String(50), nullable=False, index=True),
    Column("entity", String(50), nullable=False),
    Column("entity_id", String(64)),
    Column("details", JSON),
    Column("ip_address", String(64)),
    Column("user_agent", Text),
    Column("created_at", String(40), nullable=False, index=True),
)


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def iso(dt: datetime) -> str:
    """Render a datetime in the storage format (UTC, microsecond precision)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_iso() -> str:
    return iso(datetime.now(timezone.utc))


def parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys on every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_auth_engine(db_url: str) -> Engine:
    """Build the shared Engine and create any missing tables.

    check_same_thread=False because FastAPI runs sync route handlers in a
    thread pool; SQLite connections are otherwise bound to their creator.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine
