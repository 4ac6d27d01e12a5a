"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - Access token round trip keeps active role and role set
  - Two tokens minted back to back differ (jti)
  - Access and refresh tokens are not interchangeable
  - Expired and tampered tokens are rejected with the typed error
  - Bearer header parsing
  - Refresh cookie attributes
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.responses import JSONResponse
from jose import jwt

from auth.errors import AccessTokenInvalid, RefreshTokenInvalid
from auth.tokens import (
    clear_refresh_cookie,
    extract_bearer_token,
    issue_access_token,
    issue_refresh_token,
    set_refresh_cookie,
    verify_access_token,
    verify_refresh_token,
)
from core.config import get_settings


def test_access_round_trip_keeps_role_and_roles():
    issued = issue_access_token(7, "sales@harbordesk.test", "SALES", ["SALES", "CUSTOMER"])
    claims = verify_access_token(issued.token)
    assert claims.user_id == 7
    assert claims.email == "sales@harbordesk.test"
    assert claims.active_role == "SALES"
    assert set(claims.roles) == {"SALES", "CUSTOMER"}
    assert claims.expires_at == issued.expires_at


def test_expires_in_matches_configured_lifetime():
    issued = issue_access_token(1, "a@harbordesk.test", None, [])
    assert issued.expires_in == get_settings().access_token_expire_minutes * 60


def test_tokens_minted_together_are_distinct():
    first = issue_access_token(1, "a@harbordesk.test", "CUSTOMER", ["CUSTOMER"])
    second = issue_access_token(1, "a@harbordesk.test", "CUSTOMER", ["CUSTOMER"])
    assert first.token != second.token
    assert verify_access_token(first.token).jti != verify_access_token(second.token).jti


def test_refresh_round_trip():
    issued = issue_refresh_token(42)
    claims = verify_refresh_token(issued.token)
    assert claims.user_id == 42


def test_refresh_token_is_not_an_access_token():
    refresh = issue_refresh_token(1)
    with pytest.raises(AccessTokenInvalid):
        verify_access_token(refresh.token)


def test_access_token_is_not_a_refresh_token():
    access = issue_access_token(1, "a@harbordesk.test", "CUSTOMER", ["CUSTOMER"])
    with pytest.raises(RefreshTokenInvalid):
        verify_refresh_token(access.token)


def test_expired_access_token_rejected():
    issued = issue_access_token(1, "a@harbordesk.test", "CUSTOMER", ["CUSTOMER"], expires_in=timedelta(seconds=-5))
    with pytest.raises(AccessTokenInvalid):
        verify_access_token(issued.token)


def test_foreign_signature_rejected():
    settings = get_settings()
    forged = jwt.encode(
        {
            "user_id": 1,
            "type": "access",
            "iss": settings.token_issuer,
            "aud": settings.token_audience,
            "exp": 9999999999,
        },
        "x" * 40,
        algorithm="HS256",
    )
    with pytest.raises(AccessTokenInvalid):
        verify_access_token(forged)


def test_wrong_audience_rejected():
    settings = get_settings()
    token = jwt.encode(
        {"user_id": 1, "type": "access", "iss": settings.token_issuer, "aud": "someone-else", "exp": 9999999999},
        settings.secret_key,
        algorithm="HS256",
    )
    with pytest.raises(AccessTokenInvalid):
        verify_access_token(token)


@pytest.mark.parametrize("garbage", ["", "abc", "a.b.c"])
def test_garbage_rejected(garbage):
    with pytest.raises(AccessTokenInvalid):
        verify_access_token(garbage)


@pytest.mark.parametrize(
    "header, expected",
    [
        ("Bearer abc.def", "abc.def"),
        ("Bearer   ", None),
        ("Basic abc", None),
        (None, None),
        ("", None),
    ],
)
def test_extract_bearer_token(header, expected):
    assert extract_bearer_token(header) == expected


def test_refresh_cookie_attributes():
    resp = JSONResponse(content={})
    set_refresh_cookie(resp, "tok")
    header = resp.headers["set-cookie"]
    name = get_settings().refresh_cookie_name
    assert header.startswith(f"{name}=tok")
    assert "HttpOnly" in header
    assert "SameSite=strict" in header
    assert f"Max-Age={get_settings().refresh_token_expire_days * 86400}" in header


def test_clear_refresh_cookie_expires_it():
    resp = JSONResponse(content={})
    clear_refresh_cookie(resp)
    header = resp.headers["set-cookie"]
    assert "Max-Age=0" in header
