"""
auth/sessions.py -- Session Store and Refresh Token Store.

Pattern: Repository + Data Mapper (same as auth/store.py).

Lifecycle of a session row:
  ACTIVE      is_active=1, expires_at in the future
  EXPIRED     is_active=1, expires_at in the past -- inert; never swept, a
              refresh may rotate it back to life
  TERMINATED  is_active=0 -- logout, eviction or account deactivation; final

Concurrency:
  No application locks. Every per-session mutation is a conditional write
  (primary key plus is_active=1), so a refresh and a role switch racing on
  the same session each see a consistent row and the later write wins. A
  write against a TERMINATED row matches nothing and reports False, which is
  how "no transition out of TERMINATED" is enforced.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.engine import Engine

from auth.models import RefreshToken, UserSession
from auth.schema import now_iso, refresh_tokens, user_sessions


class SessionStore:
    """Repository for UserSession and RefreshToken rows."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: UserSession) -> int:
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                user_sessions.insert().values(
                    user_id=session.user_id,
                    token=session.token,
                    active_role=session.active_role,
                    ip_address=session.ip_address,
                    user_agent=session.user_agent,
                    is_active=1,
                    expires_at=session.expires_at,
                    last_activity_at=now,
                    created_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_session(self, session_id: int) -> UserSession | None:
        with self.engine.connect() as conn:
            row = conn.execute(user_sessions.select().where(user_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def find_live_session(self, user_id: int, token: str, now: str | None = None) -> UserSession | None:
        """Return the ACTIVE session that currently carries this exact token.

        This is the authoritative check behind every protected request: a
        token whose session was terminated or rotated away matches nothing,
        regardless of what the token's own signature says.
        """
        now = now or now_iso()
        with self.engine.connect() as conn:
            row = conn.execute(
                user_sessions.select().where(
                    (user_sessions.c.user_id == user_id)
                    & (user_sessions.c.token == token)
                    & (user_sessions.c.is_active == 1)
                    & (user_sessions.c.expires_at > now)
                )
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def latest_open_session(self, user_id: int) -> UserSession | None:
        """Return the user's most recently used non-terminated session.

        Expired-but-open sessions qualify: refreshing is exactly how a session
        whose access token lapsed gets a new one.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                user_sessions.select()
                .where((user_sessions.c.user_id == user_id) & (user_sessions.c.is_active == 1))
                .order_by(user_sessions.c.last_activity_at.desc(), user_sessions.c.id.desc())
                .limit(1)
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_open_sessions(self, user_id: int) -> list[UserSession]:
        """Return the user's non-terminated sessions, least recently used first.

        Expired-but-open rows are included: a refresh can bring them back, so
        they still occupy a slot under MAX_USER_SESSIONS.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                user_sessions.select()
                .where((user_sessions.c.user_id == user_id) & (user_sessions.c.is_active == 1))
                .order_by(user_sessions.c.last_activity_at.asc(), user_sessions.c.id.asc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def touch_session(self, session_id: int) -> str | None:
        """Stamp last_activity_at on an open session. Returns the stamp, or None if not open."""
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                user_sessions.update()
                .where((user_sessions.c.id == session_id) & (user_sessions.c.is_active == 1))
                .values(last_activity_at=now)
            )
            conn.commit()
        return now if result.rowcount > 0 else None

    def rotate_session_token(
        self,
        session_id: int,
        token: str,
        expires_at: str,
        active_role: str | None = None,
    ) -> bool:
        """Replace the session's access token (and optionally its active role) in place.

        The previous token stops matching find_live_session() the moment this
        commits. Returns False if the session is missing or TERMINATED.
        """
        values: dict = {"token": token, "expires_at": expires_at, "last_activity_at": now_iso()}
        if active_role is not None:
            values["active_role"] = active_role
        with self.engine.connect() as conn:
            result = conn.execute(
                user_sessions.update()
                .where((user_sessions.c.id == session_id) & (user_sessions.c.is_active == 1))
                .values(**values)
            )
            conn.commit()
        return result.rowcount > 0

    def terminate_session(self, session_id: int, user_id: int) -> bool:
        """Move a session to TERMINATED. user_id is matched to prevent IDOR."""
        with self.engine.connect() as conn:
            result = conn.execute(
                user_sessions.update()
                .where(
                    (user_sessions.c.id == session_id)
                    & (user_sessions.c.user_id == user_id)
                    & (user_sessions.c.is_active == 1)
                )
                .values(is_active=0)
            )
            conn.commit()
        return result.rowcount > 0

    def terminate_all_sessions(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                user_sessions.update()
                .where((user_sessions.c.user_id == user_id) & (user_sessions.c.is_active == 1))
                .values(is_active=0)
            )
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def create_refresh_token(self, refresh: RefreshToken) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                refresh_tokens.insert().values(
                    user_id=refresh.user_id,
                    token=refresh.token,
                    session_id=refresh.session_id,
                    is_revoked=0,
                    expires_at=refresh.expires_at,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_refresh_token(self, token: str) -> RefreshToken | None:
        """Look up a refresh token row by its exact value, revoked or not."""
        with self.engine.connect() as conn:
            row = conn.execute(refresh_tokens.select().where(refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh(row) if row is not None else None

    def revoke_refresh_token(self, token: str) -> bool:
        """Revoke one refresh token by value. False if unknown or already revoked."""
        with self.engine.connect() as conn:
            result = conn.execute(
                refresh_tokens.update()
                .where((refresh_tokens.c.token == token) & (refresh_tokens.c.is_revoked == 0))
                .values(is_revoked=1)
            )
            conn.commit()
        return result.rowcount > 0

    def revoke_session_refresh_tokens(self, session_id: int) -> int:
        """Revoke the refresh tokens issued together with one session."""
        with self.engine.connect() as conn:
            result = conn.execute(
                refresh_tokens.update()
                .where((refresh_tokens.c.session_id == session_id) & (refresh_tokens.c.is_revoked == 0))
                .values(is_revoked=1)
            )
            conn.commit()
        return result.rowcount

    def revoke_all_refresh_tokens(self, user_id: int) -> int:
        """Revoke every outstanding refresh token of the user. Returns how many flipped."""
        with self.engine.connect() as conn:
            result = conn.execute(
                refresh_tokens.update()
                .where((refresh_tokens.c.user_id == user_id) & (refresh_tokens.c.is_revoked == 0))
                .values(is_revoked=1)
            )
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_session(row) -> UserSession:
    return UserSession(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        active_role=row.active_role,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        is_active=bool(row.is_active),
        expires_at=row.expires_at,
        last_activity_at=row.last_activity_at,
        created_at=row.created_at,
    )


def _row_to_refresh(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        session_id=row.session_id,
        is_revoked=bool(row.is_revoked),
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
