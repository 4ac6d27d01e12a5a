"""
auth/service.py -- Session lifecycle: login, role switch, refresh, logout.

AuthService orchestrates the leaf components:

  passwords.py    verify / hash credentials
  tokens.py       mint access and refresh tokens
  store.py        users, roles and assignments
  sessions.py     session and refresh-token rows
  permissions.py  resolve permissions and menus (the only merge)
  audit.py        record every outcome; never fails the caller

Security notes:
  Enumeration: unknown email and wrong password both raise
      InvalidCredentials with the same message and the same bcrypt cost
      (burn_dummy_check). The audit row records which one it was.
      AccountNotActive is only reported after the password matched, so it
      cannot be used to enumerate registered emails.

  Default role: the assignment flagged is_default, else the earliest active
      assignment. Assignment order carries no business meaning; is_default is
      the knob to set it explicitly.

  Session cap: MAX_USER_SESSIONS open sessions per user, expired-but-open
      ones included. A login that would exceed it terminates the least
      recently used sessions first and revokes their refresh tokens.

  Account status: leaving ACTIVE ends every open session and revokes every
      refresh token of the user.

  Logout revokes EVERY refresh token of the user, not just the one issued
      with this session ("log out everywhere"). Other devices keep working
      until their access tokens expire, then cannot refresh.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.audit import ActivityAuditor
from auth.errors import (
    AccountNotActive,
    EmailAlreadyRegistered,
    InvalidCredentials,
    InvalidSession,
    RefreshTokenInvalid,
    RoleNotAssigned,
    RoleNotFound,
    SelfDeactivation,
    UserNotFound,
)
from auth.models import (
    Action,
    ClientInfo,
    Identity,
    RefreshToken,
    Role,
    RoleName,
    SessionState,
    User,
    UserRole,
    UserSession,
    UserStatus,
)
from auth.passwords import (
    burn_dummy_check,
    generate_random_password,
    hash_password,
    is_password_expired,
    verify_password,
)
from auth.permissions import build_identity, role_name
from auth.schema import now_iso
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import IssuedToken, issue_access_token, issue_refresh_token, verify_refresh_token
from core.config import get_settings

logger = logging.getLogger("harbordesk.auth")

_settings = get_settings()


@dataclass
class LoginResult:
    user: User
    identity: Identity
    session: UserSession
    access_token: IssuedToken
    refresh_token: IssuedToken


@dataclass
class SwitchRoleResult:
    identity: Identity
    access_token: IssuedToken
    previous_role: str | None


@dataclass
class RefreshResult:
    identity: Identity
    access_token: IssuedToken
    session: UserSession | None


@dataclass
class RoleOption:
    name: str
    display_name: str
    is_active: bool  # True for the session's current role


@dataclass
class Profile:
    user: User
    identity: Identity
    roles: list[Role]


def default_role(assignments: list[UserRole]) -> str | None:
    """Pick the role a fresh login starts in."""
    active = [a for a in assignments if a.role is not None and a.role.is_active]
    for assignment in active:
        if assignment.is_default:
            return assignment.role.name
    return active[0].role.name if active else None


class AuthService:
    def __init__(self, user_store: UserStore, session_store: SessionStore, auditor: ActivityAuditor) -> None:
        self.user_store = user_store
        self.session_store = session_store
        self.auditor = auditor

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _roles(self, user_id: int) -> tuple[list[UserRole], list[Role], list[str]]:
        assignments = self.user_store.get_assignments(user_id)
        roles = [a.role for a in assignments]
        names = [r.name for r in roles if r.is_active]
        return assignments, roles, names

    def _identity(self, user: User, roles: list[Role], active_role: str | None, session: UserSession | None) -> Identity:
        return build_identity(
            user,
            roles,
            active_role,
            session=session,
            password_expired=is_password_expired(user.password_changed_at),
        )

    def _enforce_session_limit(self, user: User, client: ClientInfo) -> None:
        """Terminate least-recently-used open sessions so one more fits under the cap.

        A victim's refresh tokens are revoked with it, otherwise the evicted
        device could refresh its way back in.
        """
        limit = _settings.max_user_sessions
        if limit <= 0:
            return
        open_sessions = self.session_store.list_open_sessions(user.id)
        overflow = len(open_sessions) - limit + 1
        for victim in open_sessions[: max(overflow, 0)]:
            if self.session_store.terminate_session(victim.id, user.id):
                self.session_store.revoke_session_refresh_tokens(victim.id)
                logger.info("Evicted session %s of user %s (limit %d)", victim.id, user.id, limit)
                self.auditor.record(
                    Action.SESSION_EVICTED,
                    entity="UserSession",
                    entity_id=victim.id,
                    user_id=user.id,
                    details={"reason": "max_user_sessions", "limit": limit},
                    client=client,
                )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        *,
        first_name: str = "",
        last_name: str = "",
        phone_number: str | None = None,
        roles: list[str] | None = None,
        tenant_id: str | None = None,
        granted_by: int | None = None,
        client: ClientInfo | None = None,
    ) -> User:
        """Create an ACTIVE user with the given roles (defaults to CUSTOMER).

        Raises WeakPassword, EmailAlreadyRegistered or RoleNotFound.
        """
        user, role_names = self._insert_user(
            email,
            password,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
            roles=roles,
            tenant_id=tenant_id,
            granted_by=granted_by,
        )
        self.auditor.record(
            Action.REGISTER,
            entity="User",
            entity_id=user.id,
            user_id=user.id,
            details={"email": user.email, "roles": role_names},
            client=client,
        )
        return user

    def create_user(
        self,
        email: str,
        password: str | None = None,
        *,
        first_name: str = "",
        last_name: str = "",
        phone_number: str | None = None,
        roles: list[str] | None = None,
        default: str | None = None,
        tenant_id: str | None = None,
        actor: Identity | None = None,
        client: ClientInfo | None = None,
    ) -> tuple[User, str | None]:
        """Administrative creation. Generates a compliant password when none is given.

        Returns the user and the generated password (None if the caller chose one).
        """
        generated = None if password else generate_random_password()
        user, role_names = self._insert_user(
            email,
            password or generated,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
            roles=roles,
            default=default,
            tenant_id=tenant_id,
            granted_by=actor.user_id if actor else None,
        )
        logger.info("User %s created by %s", user.id, actor.email if actor else "system")
        self.auditor.record(
            Action.USER_CREATED,
            entity="User",
            entity_id=user.id,
            user_id=actor.user_id if actor else None,
            details={"email": user.email, "roles": role_names, "created_by": actor.email if actor else None},
            client=client,
        )
        return user, generated

    def _insert_user(
        self,
        email: str,
        password: str,
        *,
        first_name: str,
        last_name: str,
        phone_number: str | None,
        roles: list[str] | None,
        tenant_id: str | None,
        granted_by: int | None,
        default: str | None = None,
    ) -> tuple[User, list[str]]:
        if self.user_store.get_by_email(email) is not None:
            raise EmailAlreadyRegistered()

        role_names = list(dict.fromkeys(role_name(r) for r in (roles or [RoleName.CUSTOMER])))
        role_rows = []
        for name in role_names:
            role = self.user_store.get_role_by_name(name)
            if role is None:
                raise RoleNotFound(f"Role '{name}' does not exist.")
            role_rows.append(role)
        default = role_name(default) if default else None
        if default is not None and default not in role_names:
            raise RoleNotAssigned(detail={"requested_role": default, "available_roles": role_names})

        hashed = hash_password(password)
        user_id = self.user_store.create_user(
            User(
                email=email,
                hashed_password=hashed,
                first_name=first_name,
                last_name=last_name,
                phone_number=phone_number,
                tenant_id=tenant_id,
                status=UserStatus.ACTIVE.value,
            )
        )
        for role in role_rows:
            self.user_store.assign_role(user_id, role.id, granted_by=granted_by, is_default=role.name == default)

        return self.user_store.get_by_id(user_id), role_names

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, client: ClientInfo | None = None) -> LoginResult:
        client = client or ClientInfo()
        user = self.user_store.get_by_email(email)

        if user is None:
            burn_dummy_check(password)
            self._login_failed(None, email, "User not found", client)
            raise InvalidCredentials()

        if not verify_password(password, user.hashed_password):
            self._login_failed(user.id, email, "Invalid password", client)
            raise InvalidCredentials()

        if not user.is_active:
            self._login_failed(user.id, email, "Account not active", client, status=user.status)
            raise AccountNotActive()

        assignments, roles, names = self._roles(user.id)
        active_role = default_role(assignments)

        self._enforce_session_limit(user, client)

        access = issue_access_token(user.id, user.email, active_role, names)
        session_id = self.session_store.create_session(
            UserSession(
                user_id=user.id,
                token=access.token,
                expires_at=access.expires_at,
                active_role=active_role,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
            )
        )
        refresh = issue_refresh_token(user.id)
        self.session_store.create_refresh_token(
            RefreshToken(user_id=user.id, token=refresh.token, expires_at=refresh.expires_at, session_id=session_id)
        )
        self.user_store.update_last_login(user.id)

        user = self.user_store.get_by_id(user.id)
        session = self.session_store.get_session(session_id)
        self.auditor.record(
            Action.LOGIN_SUCCESS,
            entity="User",
            entity_id=user.id,
            user_id=user.id,
            details={"active_role": active_role, "session_id": session_id},
            client=client,
        )
        logger.info("User %s logged in (session %s, role %s)", user.id, session_id, active_role)
        return LoginResult(
            user=user,
            identity=self._identity(user, roles, active_role, session),
            session=session,
            access_token=access,
            refresh_token=refresh,
        )

    def _login_failed(
        self,
        user_id: int | None,
        email: str,
        reason: str,
        client: ClientInfo,
        status: str | None = None,
    ) -> None:
        details = {"email": email, "reason": reason}
        if status is not None:
            details["status"] = status
        self.auditor.record(
            Action.LOGIN_FAILED,
            entity="User",
            entity_id=user_id,
            user_id=user_id,
            details=details,
            client=client,
        )

    # ------------------------------------------------------------------
    # Role switch
    # ------------------------------------------------------------------

    def switch_role(
        self,
        user_id: int,
        session_id: int,
        target_role: str | RoleName,
        client: ClientInfo | None = None,
    ) -> SwitchRoleResult:
        """Re-point one session at another of the user's roles.

        Overwrites the session's token, active role and expiry in place; the
        previous access token stops passing the gate immediately. Refresh
        tokens are not touched.
        """
        target = role_name(target_role)
        user = self.user_store.get_by_id(user_id)
        if user is None:
            raise UserNotFound()

        _, roles, names = self._roles(user.id)
        if target not in names:
            raise RoleNotAssigned(detail={"requested_role": target, "available_roles": names})

        session = self.session_store.get_session(session_id)
        if session is None or session.user_id != user.id or session.state(now_iso()) != SessionState.ACTIVE:
            raise InvalidSession()
        previous_role = session.active_role

        access = issue_access_token(user.id, user.email, target, names)
        if not self.session_store.rotate_session_token(session.id, access.token, access.expires_at, active_role=target):
            raise InvalidSession()

        session = self.session_store.get_session(session.id)
        self.auditor.record(
            Action.ROLE_SWITCH,
            entity="UserSession",
            entity_id=session.id,
            user_id=user.id,
            details={"previous_role": previous_role, "new_role": target},
            client=client,
        )
        return SwitchRoleResult(
            identity=self._identity(user, roles, target, session),
            access_token=access,
            previous_role=previous_role,
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str, client: ClientInfo | None = None) -> RefreshResult:
        """Mint a new access token from a refresh token.

        The refresh token itself is not rotated. It belongs to the session it
        was issued with: once that session is terminated the token is revoked
        and refused. Tokens issued without a session fall back to the user's
        most recently used open session. The active role comes from that
        session, else the default assignment. The session's token and expiry
        are updated in place so the new access token passes the gate.
        """
        claims = verify_refresh_token(refresh_token)

        record = self.session_store.get_refresh_token(refresh_token)
        if record is None or record.is_revoked or record.user_id != claims.user_id:
            raise RefreshTokenInvalid()
        if record.expires_at <= now_iso():
            raise RefreshTokenInvalid()

        user = self.user_store.get_by_id(record.user_id)
        if user is None:
            raise RefreshTokenInvalid()
        if not user.is_active:
            raise AccountNotActive()

        assignments, roles, names = self._roles(user.id)

        if record.session_id is not None:
            session = self.session_store.get_session(record.session_id)
            if session is None or not session.is_active:
                self.session_store.revoke_refresh_token(refresh_token)
                logger.info("Refused refresh for user %s: session %s is terminated", user.id, record.session_id)
                raise RefreshTokenInvalid()
        else:
            session = self.session_store.latest_open_session(user.id)

        if session is not None and session.active_role in names:
            active_role = session.active_role
        else:
            active_role = default_role(assignments)

        access = issue_access_token(user.id, user.email, active_role, names)
        if session is not None:
            if self.session_store.rotate_session_token(
                session.id, access.token, access.expires_at, active_role=active_role
            ):
                session = self.session_store.get_session(session.id)
            else:
                session = None
        if session is None:
            logger.warning("Refresh for user %s found no open session; new access token has no session", user.id)

        self.auditor.record(
            Action.TOKEN_REFRESH,
            entity="UserSession",
            entity_id=session.id if session else None,
            user_id=user.id,
            details={"active_role": active_role},
            client=client,
        )
        return RefreshResult(
            identity=self._identity(user, roles, active_role, session),
            access_token=access,
            session=session,
        )

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, user_id: int, session_id: int, client: ClientInfo | None = None) -> int:
        """Terminate one session and revoke ALL of the user's refresh tokens.

        Returns the number of refresh tokens revoked.
        """
        terminated = self.session_store.terminate_session(session_id, user_id)
        revoked = self.session_store.revoke_all_refresh_tokens(user_id)
        self.auditor.record(
            Action.LOGOUT,
            entity="User",
            entity_id=user_id,
            user_id=user_id,
            details={"session_id": session_id, "session_terminated": terminated, "refresh_tokens_revoked": revoked},
            client=client,
        )
        return revoked

    # ------------------------------------------------------------------
    # Profile and roles
    # ------------------------------------------------------------------

    def get_profile(self, user_id: int, active_role: str | None = None) -> Profile:
        user = self.user_store.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        assignments, roles, _ = self._roles(user.id)
        identity = self._identity(user, roles, active_role or default_role(assignments), None)
        return Profile(user=user, identity=identity, roles=[r for r in roles if r.is_active])

    def available_roles(self, user_id: int, active_role: str | None) -> list[RoleOption]:
        _, roles, _ = self._roles(user_id)
        return [
            RoleOption(
                name=r.name,
                display_name=r.display_name or r.name.replace("_", " ").title(),
                is_active=r.name == active_role,
            )
            for r in roles
            if r.is_active
        ]

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
        client: ClientInfo | None = None,
    ) -> None:
        """Self-service change. The current password must verify first."""
        user = self.user_store.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if not verify_password(current_password, user.hashed_password):
            raise InvalidCredentials("Current password is incorrect.")
        self.user_store.update_password(user.id, hash_password(new_password))
        self.auditor.record(
            Action.PASSWORD_CHANGED,
            entity="User",
            entity_id=user.id,
            user_id=user.id,
            details={"email": user.email},
            client=client,
        )

    def reset_password(
        self,
        target_user_id: int,
        new_password: str | None = None,
        *,
        actor: Identity | None = None,
        client: ClientInfo | None = None,
    ) -> str:
        """Administrative reset. Generates a compliant password when none is given.

        Returns the password that was set so the caller can hand it over once.
        """
        target = self.user_store.get_by_id(target_user_id)
        if target is None:
            raise UserNotFound()
        password = new_password or generate_random_password()
        self.user_store.update_password(target.id, hash_password(password))
        self.auditor.record(
            Action.PASSWORD_RESET,
            entity="User",
            entity_id=target.id,
            user_id=actor.user_id if actor else None,
            details={"email": target.email, "reset_by": actor.email if actor else None},
            client=client,
        )
        return password

    # ------------------------------------------------------------------
    # Role assignment
    # ------------------------------------------------------------------

    def assign_roles(
        self,
        user_id: int,
        roles: list[str],
        *,
        actor: Identity | None = None,
        default: str | None = None,
        client: ClientInfo | None = None,
    ) -> list[str]:
        """Replace the user's active role set. Dropped roles are suspended, not deleted.

        Returns the resulting active role names in assignment order.
        """
        user = self.user_store.get_by_id(user_id)
        if user is None:
            raise UserNotFound()

        wanted: list[Role] = []
        for name in dict.fromkeys(role_name(r) for r in roles):
            role = self.user_store.get_role_by_name(name)
            if role is None:
                raise RoleNotFound(f"Role '{name}' does not exist.")
            wanted.append(role)
        default = role_name(default) if default else None
        if default is not None and default not in {r.name for r in wanted}:
            raise RoleNotAssigned(detail={"requested_role": default, "available_roles": [r.name for r in wanted]})

        previous = self.user_store.get_assignments(user.id)
        wanted_ids = {r.id for r in wanted}
        for assignment in previous:
            if assignment.role_id not in wanted_ids:
                self.user_store.set_assignment_active(user.id, assignment.role_id, False)
        granted_by = actor.user_id if actor else None
        for role in wanted:
            self.user_store.assign_role(user.id, role.id, granted_by=granted_by, is_default=role.name == default)

        _, _, names = self._roles(user.id)
        self.auditor.record(
            Action.ROLES_ASSIGNED,
            entity="User",
            entity_id=user.id,
            user_id=granted_by,
            details={
                "email": user.email,
                "assigned_by": actor.email if actor else None,
                "previous_roles": [a.role.name for a in previous],
                "roles": names,
            },
            client=client,
        )
        return names

    # ------------------------------------------------------------------
    # Account status
    # ------------------------------------------------------------------

    def set_status(
        self,
        user_id: int,
        status: UserStatus | str,
        *,
        actor: Identity | None = None,
        client: ClientInfo | None = None,
    ) -> User:
        """Move an account to a new lifecycle status.

        Leaving ACTIVE terminates every open session and revokes every refresh
        token, so the account is locked out at once instead of when its access
        tokens lapse. An actor cannot take their own account out of ACTIVE.
        """
        status = UserStatus(status)
        user = self.user_store.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if actor is not None and actor.user_id == user.id and status is not UserStatus.ACTIVE:
            raise SelfDeactivation()

        previous = user.status
        self.user_store.update_user(user.id, status=status.value)
        terminated = revoked = 0
        if status is not UserStatus.ACTIVE:
            terminated = self.session_store.terminate_all_sessions(user.id)
            revoked = self.session_store.revoke_all_refresh_tokens(user.id)
        logger.info("User %s status %s -> %s (%d sessions ended)", user.id, previous, status.value, terminated)

        self.auditor.record(
            Action.STATUS_CHANGED,
            entity="User",
            entity_id=user.id,
            user_id=actor.user_id if actor else None,
            details={
                "email": user.email,
                "previous_status": previous,
                "status": status.value,
                "changed_by": actor.email if actor else None,
                "sessions_terminated": terminated,
                "refresh_tokens_revoked": revoked,
            },
            client=client,
        )
        return self.user_store.get_by_id(user.id)
