"""
auth/gate.py -- Authentication Gate: the per-request identity check.

Framework-free. auth/dependencies.py adapts it to FastAPI; anything else that
holds a bearer token (a worker, a websocket handler) can call it directly.

Check order for authenticate(token):
  1. no token                                   -> MissingToken
  2. signature / claims / expiry                -> InvalidToken
  3. user missing                               -> InvalidToken
     user status != ACTIVE                      -> AccountNotActive
  4. no session with (user_id, token, is_active, expires_at > now)
                                                -> InvalidSession
  5. touch last_activity_at, resolve roles / permissions / menus

Step 4 is what makes logout and role switches immediately authoritative: the
old token still verifies cryptographically until its natural expiry, but no
live session carries it any more.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.errors import AccountNotActive, InvalidSession, InvalidToken, MissingToken
from auth.models import Identity, UserSession
from auth.passwords import is_password_expired
from auth.permissions import build_identity
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import verify_access_token


@dataclass
class AuthContext:
    identity: Identity
    session: UserSession
    token: str


class AuthGate:
    def __init__(self, user_store: UserStore, session_store: SessionStore) -> None:
        self.user_store = user_store
        self.session_store = session_store

    def authenticate(self, token: str | None) -> AuthContext:
        if not token:
            raise MissingToken()

        claims = verify_access_token(token)

        user = self.user_store.get_by_id(claims.user_id)
        if user is None:
            raise InvalidToken()
        if not user.is_active:
            raise AccountNotActive()

        session = self.session_store.find_live_session(user.id, token)
        if session is None:
            raise InvalidSession()

        touched = self.session_store.touch_session(session.id)
        if touched is None:
            # Terminated between the match and the touch.
            raise InvalidSession()
        session.last_activity_at = touched

        roles = [a.role for a in self.user_store.get_assignments(user.id)]
        identity = build_identity(
            user,
            roles,
            session.active_role or claims.active_role,
            session=session,
            password_expired=is_password_expired(user.password_changed_at),
        )
        return AuthContext(identity=identity, session=session, token=token)
