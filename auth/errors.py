"""
auth/errors.py -- Typed failures raised by the auth core.

Every failure a caller can expect (bad password, stale token, missing role)
is an AuthError subclass carrying a stable error_code and the HTTP status the
API layer should answer with. api/main.py turns them into the standard
{"error": {code, message, detail}} envelope; the core itself never imports
fastapi.

Database errors are deliberately NOT wrapped here. They propagate as
sqlalchemy.exc.SQLAlchemyError and end up in the generic 500 handler.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for expected authentication / authorization failures."""

    status_code: int = 400
    error_code: str = "auth_error"
    default_message: str = "Authentication failed."

    def __init__(self, message: str | None = None, *, detail: dict | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.detail = detail or {}

    def to_dict(self) -> dict:
        body: dict = {"code": self.error_code, "message": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class InvalidCredentials(AuthError):
    """Unknown email or wrong password. The two are never told apart."""

    status_code = 401
    error_code = "invalid_credentials"
    default_message = "Invalid email or password."


class AccountNotActive(AuthError):
    status_code = 401
    error_code = "account_inactive"
    default_message = "User account is not active."


class WeakPassword(AuthError):
    status_code = 400
    error_code = "weak_password"
    default_message = "Password does not meet the strength requirements."

    def __init__(self, errors: list[str]) -> None:
        super().__init__(detail={"errors": list(errors)})
        self.errors = list(errors)


class MissingToken(AuthError):
    status_code = 401
    error_code = "missing_token"
    default_message = "Access token is required."


class AccessTokenInvalid(AuthError):
    """Bad signature, bad claims or lapsed expiry -- deliberately one type."""

    status_code = 401
    error_code = "invalid_token"
    default_message = "Invalid or expired access token."


InvalidToken = AccessTokenInvalid


class RefreshTokenInvalid(AuthError):
    status_code = 401
    error_code = "invalid_refresh_token"
    default_message = "Invalid or expired refresh token."


class InvalidSession(AuthError):
    """The token verifies but no live session row carries it."""

    status_code = 401
    error_code = "invalid_session"
    default_message = "Session has expired or is invalid."


class RoleNotAssigned(AuthError):
    status_code = 403
    error_code = "role_not_assigned"
    default_message = "User does not have access to this role."


class InsufficientRole(AuthError):
    status_code = 403
    error_code = "insufficient_role"
    default_message = "Insufficient permissions."


class PermissionDenied(AuthError):
    status_code = 403
    error_code = "permission_denied"
    default_message = "Permission denied."


class EmailAlreadyRegistered(AuthError):
    status_code = 409
    error_code = "conflict"
    default_message = "A user with this email already exists."


class UserNotFound(AuthError):
    status_code = 404
    error_code = "not_found"
    default_message = "User not found."


class RoleNotFound(AuthError):
    status_code = 404
    error_code = "not_found"
    default_message = "Role not found."


class SelfDeactivation(AuthError):
    status_code = 400
    error_code = "self_deactivation"
    default_message = "You cannot deactivate your own account."
