"""
tests/test_permissions.py -- Unit tests for auth/permissions.py (pure, no DB).

Covers:
  - resolve_permissions is order-independent, idempotent and skips inactive rows
  - resolve_menus ORs each capability flag independently
  - build_identity drops an active role the user no longer holds
  - has_any_role accepts RoleName members
"""

from __future__ import annotations

from auth.models import Menu, Permission, Role, RoleMenu, RoleName, User
from auth.permissions import build_identity, has_any_role, has_permission, resolve_menus, resolve_permissions

BOOKINGS = Menu(name="bookings", label="Bookings", sort_order=2, id=2)
DASHBOARD = Menu(name="dashboard", label="Dashboard", sort_order=1, id=1)


def _role(name, perms=(), menus=(), is_active=True):
    return Role(
        name=name,
        is_active=is_active,
        permissions=[Permission(name=p, module=p.split(".")[0]) for p in perms],
        menus=list(menus),
    )


def test_resolve_permissions_is_order_independent():
    a = _role("SALES", ["quotes.view", "bookings.view"])
    b = _role("CUSTOMER", ["bookings.view", "bookings.create"])
    assert resolve_permissions([a, b]) == resolve_permissions([b, a])
    assert resolve_permissions([a, b]) == ["bookings.create", "bookings.view", "quotes.view"]


def test_resolve_permissions_is_idempotent():
    a = _role("SALES", ["quotes.view"])
    assert resolve_permissions([a, a]) == resolve_permissions([a]) == ["quotes.view"]


def test_resolve_permissions_skips_inactive_roles_and_permissions():
    inactive_perm = Permission(name="system.backup", module="system", is_active=False)
    role = _role("ADMIN", ["users.view"])
    role.permissions.append(inactive_perm)
    suspended = _role("DEPOT", ["depot.inventory"], is_active=False)
    assert resolve_permissions([role, suspended]) == ["users.view"]


def test_resolve_permissions_empty():
    assert resolve_permissions([]) == []


def test_resolve_menus_ors_each_capability():
    a = _role("SALES", menus=[RoleMenu(menu=BOOKINGS, can_view=True)])
    b = _role("CUSTOMER", menus=[RoleMenu(menu=BOOKINGS, can_edit=True)])
    merged = resolve_menus([a, b])
    assert len(merged) == 1
    caps = merged[0].capabilities
    assert (caps.can_view, caps.can_create, caps.can_edit, caps.can_delete) == (True, False, True, False)


def test_resolve_menus_sorted_and_skips_inactive():
    hidden = Menu(name="legacy", label="Legacy", sort_order=0, is_active=False)
    a = _role(
        "SALES",
        menus=[
            RoleMenu(menu=BOOKINGS, can_view=True),
            RoleMenu(menu=DASHBOARD, can_view=True),
            RoleMenu(menu=hidden, can_view=True),
        ],
    )
    suspended = _role("DEPOT", menus=[RoleMenu(menu=Menu(name="depot", label="Depot"), can_view=True)], is_active=False)
    names = [m.menu.name for m in resolve_menus([a, suspended])]
    assert names == ["dashboard", "bookings"]


def test_resolve_menus_does_not_mutate_inputs():
    a = _role("SALES", menus=[RoleMenu(menu=BOOKINGS, can_view=True)])
    b = _role("CUSTOMER", menus=[RoleMenu(menu=BOOKINGS, can_delete=True)])
    resolve_menus([a, b])
    again = resolve_menus([a])
    assert again[0].capabilities.can_delete is False


def test_build_identity_drops_unheld_active_role():
    user = User(email="x@harbordesk.test", hashed_password="h", id=3)
    roles = [_role("CUSTOMER", ["bookings.view"])]
    identity = build_identity(user, roles, "SALES")
    assert identity.active_role is None
    assert identity.roles == ["CUSTOMER"]
    assert identity.permissions == ["bookings.view"]

    identity = build_identity(user, roles, "CUSTOMER")
    assert identity.active_role == "CUSTOMER"


def test_role_and_permission_checks():
    user = User(email="x@harbordesk.test", hashed_password="h", id=3)
    identity = build_identity(user, [_role("SALES", ["quotes.view"])], "SALES")
    assert has_any_role(identity, [RoleName.SALES])
    assert has_any_role(identity, ["ADMIN", "SALES"])
    assert not has_any_role(identity, [RoleName.ADMIN])
    assert has_permission(identity, "quotes.view")
    assert not has_permission(identity, "quotes.approve")
