"""
auth/tokens.py -- Token Issuer: JWT access / refresh tokens and cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Access tokens are signed with SECRET_KEY,
       refresh tokens with REFRESH_SECRET_KEY, so neither can stand in for the
       other. Both carry iss/aud, a "type" claim and a random jti; the jti
       makes every issued token unique even when two are minted in the same
       second for the same user and role.

  Access payload: user_id, email (as sub), the single active_role, and the
       full roles list. Refresh payload: user_id only.

  Verification raises AccessTokenInvalid / RefreshTokenInvalid for every
       failure -- bad signature, wrong audience, lapsed expiry. Callers must
       not tell these apart.

  A verified access token is NOT proof of a live session. auth/gate.py always
       re-checks the session row, which is how logout and role switches take
       effect before the token's own expiry.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import AccessTokenInvalid, RefreshTokenInvalid
from auth.schema import iso
from core.config import get_settings

_settings = get_settings()

_ALGORITHM = "HS256"
_ACCESS = "access"
_REFRESH = "refresh"


@dataclass
class IssuedToken:
    token: str
    expires_at: str  # storage-format ISO timestamp
    expires_in: int  # seconds, for the client


@dataclass
class AccessClaims:
    user_id: int
    email: str
    active_role: str | None
    roles: list[str]
    expires_at: str
    jti: str


@dataclass
class RefreshClaims:
    user_id: int
    expires_at: str
    jti: str


def access_token_lifetime() -> timedelta:
    return timedelta(minutes=_settings.access_token_expire_minutes)


def refresh_token_lifetime() -> timedelta:
    return timedelta(days=_settings.refresh_token_expire_days)


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def _encode(claims: dict, key: str, token_type: str, expires_in: timedelta) -> IssuedToken:
    now = datetime.now(timezone.utc)
    expire = now + expires_in
    payload = {
        **claims,
        "type": token_type,
        "jti": secrets.token_hex(16),
        "iss": _settings.token_issuer,
        "aud": _settings.token_audience,
        "iat": now,
        "exp": expire,
    }
    token = jwt.encode(payload, key, algorithm=_ALGORITHM)
    return IssuedToken(token=token, expires_at=iso(expire), expires_in=int(expires_in.total_seconds()))


def issue_access_token(
    user_id: int,
    email: str,
    active_role: str | None,
    roles: list[str],
    expires_in: timedelta | None = None,
) -> IssuedToken:
    """Sign a short-lived access token for one session's current role.

    Args:
        user_id:     Numeric user ID stored in the DB.
        email:       Stored as the JWT subject claim.
        active_role: The role this session acts as; None for a user with no
                     active assignments.
        roles:       Every active role name, used to validate role switches.
        expires_in:  Override the configured lifetime (tests, admin tooling).
    """
    claims = {
        "sub": email,
        "user_id": user_id,
        "email": email,
        "active_role": active_role,
        "roles": list(roles),
    }
    return _encode(claims, _settings.secret_key, _ACCESS, expires_in or access_token_lifetime())


def issue_refresh_token(user_id: int, expires_in: timedelta | None = None) -> IssuedToken:
    """Sign a long-lived refresh token. Carries the user id and nothing else."""
    return _encode(
        {"user_id": user_id},
        _settings.refresh_secret_key,
        _REFRESH,
        expires_in or refresh_token_lifetime(),
    )


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def _decode(token: str, key: str, token_type: str) -> dict | None:
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=[_ALGORITHM],
            audience=_settings.token_audience,
            issuer=_settings.token_issuer,
        )
    except JWTError:
        return None
    if payload.get("type") != token_type or not isinstance(payload.get("user_id"), int):
        return None
    return payload


def _exp_iso(payload: dict) -> str:
    return iso(datetime.fromtimestamp(payload["exp"], tz=timezone.utc))


def verify_access_token(token: str) -> AccessClaims:
    """Check signature, claims and expiry of an access token.

    Pure and side-effect free; safe to call from any number of threads.
    """
    payload = _decode(token, _settings.secret_key, _ACCESS)
    if payload is None:
        raise AccessTokenInvalid()
    return AccessClaims(
        user_id=payload["user_id"],
        email=payload.get("email", payload.get("sub", "")),
        active_role=payload.get("active_role"),
        roles=list(payload.get("roles") or []),
        expires_at=_exp_iso(payload),
        jti=payload.get("jti", ""),
    )


def verify_refresh_token(token: str) -> RefreshClaims:
    payload = _decode(token, _settings.refresh_secret_key, _REFRESH)
    if payload is None:
        raise RefreshTokenInvalid()
    return RefreshClaims(user_id=payload["user_id"], expires_at=_exp_iso(payload), jti=payload.get("jti", ""))


# ---------------------------------------------------------------------------
# Transport helpers
# ---------------------------------------------------------------------------


def extract_bearer_token(auth_header: str | None) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header, if any."""
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def set_refresh_cookie(response, token: str) -> None:
    """Write the refresh token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="strict": never sent on cross-site requests; the refresh endpoint
        is only ever called by the first-party client.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the refresh token lifetime (7 days by default).

    The access token is NOT set as a cookie; it travels in the response body
    and comes back as a Bearer header.
    """
    response.set_cookie(
        _settings.refresh_cookie_name,
        value=token,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
        max_age=int(refresh_token_lifetime().total_seconds()),
    )


def clear_refresh_cookie(response) -> None:
    response.delete_cookie(
        _settings.refresh_cookie_name,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
    )
