"""
tests/test_dependencies.py -- Tests for the FastAPI guards in auth/dependencies.py.

A throwaway FastAPI app mounts one route per guard so each can be exercised
without the production middleware stack. FastAPI's default HTTPException
handler is used, so error bodies arrive under "detail".
"""

from __future__ import annotations

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from auth.dependencies import get_current_auth, require_active_role, require_role
from auth.models import RoleName
from helpers import PASSWORD, bearer


@pytest.fixture()
def guarded(gate):
    app = FastAPI()
    app.state.auth_gate = gate

    @app.get("/staff")
    def staff(identity=Depends(require_role(RoleName.SALES, RoleName.ADMIN))):
        return {"roles": identity.roles}

    @app.get("/acting-sales")
    def acting_sales(identity=Depends(require_active_role("SALES"))):
        return {"active_role": identity.active_role}

    @app.get("/cached")
    def cached(request: Request, auth=Depends(get_current_auth)):
        return {"same": request.state.auth is auth}

    return TestClient(app)


def _token(service, email):
    return service.login(email, PASSWORD).access_token.token


def test_require_role(guarded, service, make_user):
    customer = make_user(RoleName.CUSTOMER)
    mixed = make_user(RoleName.CUSTOMER, RoleName.SALES)

    resp = guarded.get("/staff", headers=bearer(_token(service, customer.email)))
    assert resp.status_code == 403
    detail = resp.json()["detail"]
    assert detail["code"] == "insufficient_role"
    assert detail["detail"] == {"required_roles": ["SALES", "ADMIN"], "user_roles": ["CUSTOMER"]}

    # Any held role counts, not just the active one.
    resp = guarded.get("/staff", headers=bearer(_token(service, mixed.email)))
    assert resp.status_code == 200


def test_require_active_role(guarded, service, make_user):
    user = make_user(RoleName.CUSTOMER, RoleName.SALES)
    login = service.login(user.email, PASSWORD)

    resp = guarded.get("/acting-sales", headers=bearer(login.access_token.token))
    assert resp.status_code == 403
    assert resp.json()["detail"]["detail"] == {"allowed_roles": ["SALES"], "active_role": "CUSTOMER"}

    switched = service.switch_role(user.id, login.session.id, RoleName.SALES)
    resp = guarded.get("/acting-sales", headers=bearer(switched.access_token.token))
    assert resp.status_code == 200
    assert resp.json() == {"active_role": "SALES"}


def test_missing_token_is_401(guarded):
    resp = guarded.get("/staff")
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "missing_token"


def test_context_stored_on_request_state(guarded, service, make_user):
    user = make_user()
    resp = guarded.get("/cached", headers=bearer(_token(service, user.email)))
    assert resp.json() == {"same": True}
