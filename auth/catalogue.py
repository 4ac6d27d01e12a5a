"""
auth/catalogue.py -- The standard permission / role / menu catalogue.

Permissions are "<module>.<action>" names. Each menu is tied to one module,
and a role's capability flags on that menu are derived from the permissions
it holds on the module:

  can_view    <module>.view
  can_create  <module>.create
  can_edit    <module>.update
  can_delete  <module>.delete or <module>.cancel

seed_catalogue() is idempotent: existing rows are looked up by name and left
as they are, missing grants and menu bindings are added.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.models import Menu, Permission, Role, RoleName
from auth.store import UserStore

logger = logging.getLogger("harbordesk.catalogue")

# (name, display name, category)
PERMISSIONS: list[tuple[str, str, str]] = [
    ("dashboard.view", "View Dashboard", "read"),
    ("users.view", "View Users", "read"),
    ("users.create", "Create Users", "write"),
    ("users.update", "Update Users", "write"),
    ("users.delete", "Delete Users", "delete"),
    ("roles.view", "View Roles", "read"),
    ("roles.manage", "Manage Roles", "admin"),
    ("bookings.view", "View Bookings", "read"),
    ("bookings.create", "Create Bookings", "write"),
    ("bookings.update", "Update Bookings", "write"),
    ("bookings.cancel", "Cancel Bookings", "write"),
    ("bookings.delete", "Delete Bookings", "delete"),
    ("bl.view", "View Bills of Lading", "read"),
    ("bl.create", "Create Bills of Lading", "write"),
    ("bl.update", "Update Bills of Lading", "write"),
    ("bl.release", "Release Bills of Lading", "admin"),
    ("vessels.view", "View Vessels", "read"),
    ("vessels.create", "Create Vessels", "write"),
    ("vessels.update", "Update Vessels", "write"),
    ("vessels.delete", "Delete Vessels", "delete"),
    ("schedules.view", "View Schedules", "read"),
    ("schedules.create", "Create Schedules", "write"),
    ("schedules.update", "Update Schedules", "write"),
    ("schedules.delete", "Delete Schedules", "delete"),
    ("containers.view", "View Containers", "read"),
    ("containers.create", "Create Containers", "write"),
    ("containers.update", "Update Containers", "write"),
    ("containers.track", "Track Containers", "read"),
    ("customers.view", "View Customers", "read"),
    ("customers.create", "Create Customers", "write"),
    ("customers.update", "Update Customers", "write"),
    ("customers.delete", "Delete Customers", "delete"),
    ("quotes.view", "View Quotes", "read"),
    ("quotes.create", "Create Quotes", "write"),
    ("quotes.update", "Update Quotes", "write"),
    ("quotes.approve", "Approve Quotes", "admin"),
    ("documents.view", "View Documents", "read"),
    ("documents.upload", "Upload Documents", "write"),
    ("documents.download", "Download Documents", "read"),
    ("reports.view", "View Reports", "read"),
    ("reports.export", "Export Reports", "read"),
    ("reports.all", "All Reports", "admin"),
    ("system.settings", "System Settings", "admin"),
    ("system.logs", "View Activity Logs", "admin"),
    ("system.backup", "System Backup", "admin"),
    ("port.operations", "Port Operations", "write"),
    ("port.management", "Port Management", "admin"),
    ("depot.operations", "Depot Operations", "write"),
    ("depot.inventory", "Depot Inventory", "write"),
]


@dataclass(frozen=True)
class RoleSpec:
    name: RoleName
    display_name: str
    description: str
    permissions: tuple[str, ...]


_CUSTOMER = (
    "dashboard.view",
    "bookings.view",
    "bookings.create",
    "bookings.update",
    "bl.view",
    "containers.view",
    "containers.track",
    "quotes.view",
    "quotes.create",
    "documents.view",
    "documents.upload",
    "documents.download",
)

ROLES: list[RoleSpec] = [
    RoleSpec(
        RoleName.ADMIN,
        "Administrator",
        "Full system access with all permissions",
        tuple(name for name, _, _ in PERMISSIONS),
    ),
    RoleSpec(RoleName.CUSTOMER, "Customer", "Customer portal access for booking and tracking", _CUSTOMER),
    RoleSpec(
        RoleName.PORT,
        "Port User",
        "Port operations and vessel management",
        (
            "dashboard.view",
            "bookings.view",
            "vessels.view",
            "vessels.update",
            "schedules.view",
            "schedules.update",
            "containers.view",
            "containers.update",
            "containers.track",
            "port.operations",
            "documents.view",
            "documents.upload",
        ),
    ),
    RoleSpec(
        RoleName.DEPOT,
        "Depot User",
        "Depot and container management",
        (
            "dashboard.view",
            "bookings.view",
            "containers.view",
            "containers.update",
            "containers.track",
            "depot.operations",
            "depot.inventory",
            "documents.view",
            "documents.upload",
        ),
    ),
    RoleSpec(
        RoleName.SALES,
        "Sales Representative",
        "Sales activities and customer management",
        (
            "dashboard.view",
            "customers.view",
            "customers.create",
            "customers.update",
            "quotes.view",
            "quotes.create",
            "quotes.update",
            "bookings.view",
            "bookings.create",
            "reports.view",
            "reports.export",
            "documents.view",
            "documents.upload",
        ),
    ),
    RoleSpec(
        RoleName.MASTER_PORT,
        "Master Port",
        "Master port operations with elevated permissions",
        (
            "dashboard.view",
            "bookings.view",
            "vessels.view",
            "vessels.create",
            "vessels.update",
            "vessels.delete",
            "schedules.view",
            "schedules.create",
            "schedules.update",
            "schedules.delete",
            "containers.view",
            "containers.update",
            "containers.track",
            "port.operations",
            "port.management",
            "documents.view",
            "documents.upload",
            "reports.view",
            "reports.export",
        ),
    ),
]

# (menu name == permission module, label, path, icon)
MENUS: list[tuple[str, str, str, str]] = [
    ("dashboard", "Dashboard", "/dashboard", "home"),
    ("bookings", "Bookings", "/bookings", "calendar"),
    ("bl", "Bills of Lading", "/bills-of-lading", "file-text"),
    ("quotes", "Quotes", "/quotes", "tag"),
    ("customers", "Customers", "/customers", "briefcase"),
    ("vessels", "Vessels", "/vessels", "anchor"),
    ("schedules", "Schedules", "/schedules", "clock"),
    ("containers", "Containers", "/containers", "box"),
    ("port", "Port Operations", "/port", "navigation"),
    ("depot", "Depot", "/depot", "archive"),
    ("documents", "Documents", "/documents", "folder"),
    ("reports", "Reports", "/reports", "bar-chart"),
    ("users", "Users", "/admin/users", "users"),
    ("roles", "Roles", "/admin/roles", "shield"),
    ("system", "System", "/admin/system", "settings"),
]


def menu_capabilities(module: str, granted: set[str]) -> dict[str, bool]:
    """Derive one role's flags on a module's menu from the permissions it holds.

    Any permission on the module implies can_view, so e.g. a role holding only
    port.operations still sees the Port menu.
    """
    held = {name.split(".", 1)[1] for name in granted if name.split(".", 1)[0] == module}
    return {
        "can_view": bool(held),
        "can_create": "create" in held,
        "can_edit": "update" in held,
        "can_delete": bool(held & {"delete", "cancel"}),
    }


def seed_catalogue(store: UserStore) -> dict[str, int]:
    """Create any missing permissions, roles, grants, menus and bindings.

    Returns role name -> role id for the standard roles.
    """
    permission_ids: dict[str, int] = {}
    for name, display_name, category in PERMISSIONS:
        existing = store.get_permission_by_name(name)
        if existing is None:
            module = name.split(".", 1)[0]
            permission_ids[name] = store.create_permission(
                Permission(name=name, module=module, display_name=display_name, category=category)
            )
        else:
            permission_ids[name] = existing.id

    menu_ids: dict[str, int] = {}
    for order, (name, label, path, icon) in enumerate(MENUS, start=1):
        existing = store.get_menu_by_name(name)
        if existing is None:
            menu_ids[name] = store.create_menu(Menu(name=name, label=label, path=path, icon=icon, sort_order=order))
        else:
            menu_ids[name] = existing.id

    role_ids: dict[str, int] = {}
    for spec in ROLES:
        existing = store.get_role_by_name(spec.name.value)
        if existing is None:
            role_id = store.create_role(
                Role(name=spec.name.value, display_name=spec.display_name, description=spec.description)
            )
            logger.info("Created role %s with %d permissions", spec.name.value, len(spec.permissions))
        else:
            role_id = existing.id
        role_ids[spec.name.value] = role_id

        granted = set(spec.permissions)
        for perm in spec.permissions:
            store.grant_permission(role_id, permission_ids[perm])
        for menu_name, menu_id in menu_ids.items():
            flags = menu_capabilities(menu_name, granted)
            if flags["can_view"]:
                store.bind_menu(role_id, menu_id, **flags)

    logger.info(
        "Catalogue ready: %d permissions, %d roles, %d menus",
        len(permission_ids),
        len(role_ids),
        len(menu_ids),
    )
    return role_ids
