"""
tests/conftest.py -- Shared test fixtures for HarborDesk Identity.

This module provides:
  - engine / user_store / session_store / auditor / service / gate:
    the auth core wired to an isolated in-memory DB per test
  - catalogue: a small role / permission / menu set (ADMIN, CUSTOMER, SALES
    plus an inactive DEPOT role) with overlapping menus
  - make_user: factory registering a user with the given roles
  - client: TestClient over the real app with a patched lifespan

Each test gets its own named shared-memory SQLite database
(file:<uuid>?mode=memory&cache=shared&uri=true). TestClient runs sync routes
on worker threads, and a plain :memory: database exists per connection, so
those threads would see empty tables. The uuid isolates tests from each other.

Environment variables must be set before any auth/core import:
  DEBUG=true          get_settings() auto-generates both signing keys
  BCRYPT_ROUNDS=4     keeps hashing fast
  *_RATE_LIMIT        generous limits so repeated logins are not throttled
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import -- get_settings() is cached on first call.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000 per minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000 per minute")
os.environ.setdefault("REFRESH_RATE_LIMIT", "1000 per minute")
os.environ.setdefault("ROLE_SWITCH_RATE_LIMIT", "1000 per minute")
os.environ.setdefault("PASSWORD_RESET_RATE_LIMIT", "1000 per minute")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.audit import ActivityAuditor
from auth.gate import AuthGate
from auth.models import Menu, Permission, Role, RoleName
from auth.schema import create_auth_engine
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore

from helpers import PASSWORD


# ---------------------------------------------------------------------------
# Catalogue helper
# ---------------------------------------------------------------------------


def _seed_small_catalogue(store: UserStore) -> dict[str, int]:
    """Create a catalogue small enough to reason about in assertions.

    Menu bindings (view/create/edit/delete):
      CUSTOMER  dashboard V, bookings VC
      SALES     dashboard V, bookings V-E, customers VCE, reports V
      ADMIN     every menu VCED
      DEPOT     (inactive role) reports VCED
    """
    perm_ids = {}
    for name in (
        "bookings.view",
        "bookings.create",
        "customers.view",
        "reports.view",
        "users.create",
        "users.update",
        "roles.manage",
        "system.logs",
    ):
        perm_ids[name] = store.create_permission(Permission(name=name, module=name.split(".")[0]))

    menu_ids = {}
    for order, name in enumerate(("dashboard", "bookings", "customers", "reports"), start=1):
        menu_ids[name] = store.create_menu(Menu(name=name, label=name.title(), path=f"/{name}", sort_order=order))

    role_ids = {
        RoleName.ADMIN.value: store.create_role(Role(name=RoleName.ADMIN.value, display_name="Administrator")),
        RoleName.CUSTOMER.value: store.create_role(Role(name=RoleName.CUSTOMER.value, display_name="Customer")),
        RoleName.SALES.value: store.create_role(Role(name=RoleName.SALES.value, display_name="Sales Representative")),
        RoleName.DEPOT.value: store.create_role(
            Role(name=RoleName.DEPOT.value, display_name="Depot User", is_active=False)
        ),
    }

    for perm_id in perm_ids.values():
        store.grant_permission(role_ids["ADMIN"], perm_id)
    for name in ("bookings.view", "bookings.create"):
        store.grant_permission(role_ids["CUSTOMER"], perm_ids[name])
    for name in ("bookings.view", "customers.view", "reports.view"):
        store.grant_permission(role_ids["SALES"], perm_ids[name])
    store.grant_permission(role_ids["DEPOT"], perm_ids["system.logs"])

    for menu_id in menu_ids.values():
        store.bind_menu(role_ids["ADMIN"], menu_id, can_view=True, can_create=True, can_edit=True, can_delete=True)
    store.bind_menu(role_ids["CUSTOMER"], menu_ids["dashboard"], can_view=True)
    store.bind_menu(role_ids["CUSTOMER"], menu_ids["bookings"], can_view=True, can_create=True)
    store.bind_menu(role_ids["SALES"], menu_ids["dashboard"], can_view=True)
    store.bind_menu(role_ids["SALES"], menu_ids["bookings"], can_view=True, can_edit=True)
    store.bind_menu(role_ids["SALES"], menu_ids["customers"], can_view=True, can_create=True, can_edit=True)
    store.bind_menu(role_ids["SALES"], menu_ids["reports"], can_view=True)
    store.bind_menu(
        role_ids["DEPOT"], menu_ids["reports"], can_view=True, can_create=True, can_edit=True, can_delete=True
    )
    return role_ids


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    eng = create_auth_engine(url)
    yield eng
    eng.dispose()


@pytest.fixture()
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture()
def session_store(engine) -> SessionStore:
    return SessionStore(engine)


@pytest.fixture()
def auditor(engine) -> ActivityAuditor:
    return ActivityAuditor(engine)


@pytest.fixture()
def service(user_store, session_store, auditor) -> AuthService:
    return AuthService(user_store, session_store, auditor)


@pytest.fixture()
def gate(user_store, session_store) -> AuthGate:
    return AuthGate(user_store, session_store)


@pytest.fixture()
def catalogue(user_store) -> dict[str, int]:
    return _seed_small_catalogue(user_store)


@pytest.fixture()
def make_user(service, catalogue):
    """Register users through the service so every path is the real one."""
    counter = iter(range(1, 1000))

    def _make(*roles, email: str | None = None, password: str = PASSWORD):
        email = email or f"user{next(counter)}@harbordesk.test"
        return service.register(
            email,
            password,
            first_name="Test",
            last_name="User",
            roles=list(roles) or None,
        )

    return _make


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(engine, user_store, session_store, auditor, service, gate):
    """Return an async context manager that replaces the real lifespan.

    Wires the per-test stores into app.state so routes hit the same
    in-memory DB the test body seeds, never the production database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.user_store = user_store
        app.state.session_store = session_store
        app.state.auditor = auditor
        app.state.auth_service = service
        app.state.auth_gate = gate
        yield

    return test_lifespan


@pytest.fixture()
def client(engine, user_store, session_store, auditor, service, gate, catalogue) -> Generator[TestClient, None, None]:
    app.router.lifespan_context = _patch_lifespan(engine, user_store, session_store, auditor, service, gate)
    limiter.reset()
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
