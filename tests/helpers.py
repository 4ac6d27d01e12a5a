"""tests/helpers.py -- Small request and database helpers shared by the tests."""

from __future__ import annotations

from sqlalchemy import select

from auth.schema import refresh_tokens

PASSWORD = "Harbor#Dock42"


def login(client, email: str, password: str = PASSWORD) -> dict:
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def refresh_rows(session_store, user_id: int) -> list:
    """Every refresh token row of one user, oldest first."""
    with session_store.engine.connect() as conn:
        tokens = conn.execute(
            select(refresh_tokens.c.token).where(refresh_tokens.c.user_id == user_id).order_by(refresh_tokens.c.id)
        ).scalars().all()
    return [session_store.get_refresh_token(t) for t in tokens]
