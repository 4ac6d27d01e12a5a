"""
auth/permissions.py -- Role/Permission Resolver.

Pure functions: a list of loaded Role objects in, a flat permission list and
a merged menu list out. No I/O, no caching -- login, refresh, role switch,
profile and the per-request gate all call the same two functions so the
merge rules live in exactly one place.

Merge rules:
  Permissions -- union across active roles of permissions flagged is_active,
      returned sorted so equal role sets always produce identical output.
  Menus -- union of menus across active roles; for a menu bound to several
      roles each capability flag is OR-ed independently (role A's can_view
      plus role B's can_edit gives view+edit, not either role's full set).
      Ordered by (sort_order, name).

A user with no active roles resolves to two empty lists, not an error.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from auth.models import Identity, MenuAccess, MenuCapabilities, Role, User, UserSession


def resolve_permissions(roles: Iterable[Role]) -> list[str]:
    names: set[str] = set()
    for role in roles:
        if not role.is_active:
            continue
        names.update(p.name for p in role.permissions if p.is_active)
    return sorted(names)


def resolve_menus(roles: Iterable[Role]) -> list[MenuAccess]:
    merged: dict[str, MenuAccess] = {}
    for role in roles:
        if not role.is_active:
            continue
        for binding in role.menus:
            if not binding.menu.is_active:
                continue
            caps = MenuCapabilities(
                can_view=binding.can_view,
                can_create=binding.can_create,
                can_edit=binding.can_edit,
                can_delete=binding.can_delete,
            )
            key = binding.menu.name
            if key in merged:
                merged[key].capabilities = merged[key].capabilities.merge(caps)
            else:
                merged[key] = MenuAccess(menu=binding.menu, capabilities=caps)
    return sorted(merged.values(), key=lambda m: (m.menu.sort_order, m.menu.name))


def build_identity(
    user: User,
    roles: list[Role],
    active_role: str | None,
    *,
    session: UserSession | None = None,
    password_expired: bool = False,
) -> Identity:
    """Assemble the per-request Identity from a user and their loaded active roles.

    An active role that is no longer among the user's active assignments
    (suspended since the token was minted) is reported as None so it grants
    nothing.
    """
    role_names = [r.name for r in roles if r.is_active]
    return Identity(
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        status=user.status,
        tenant_id=user.tenant_id,
        roles=role_names,
        active_role=active_role if active_role in role_names else None,
        permissions=resolve_permissions(roles),
        menus=resolve_menus(roles),
        session_id=session.id if session else None,
        session_expires_at=session.expires_at if session else None,
        last_activity_at=session.last_activity_at if session else None,
        password_expired=password_expired,
    )


def has_any_role(identity: Identity, required: Iterable[str]) -> bool:
    """True if the identity holds at least one of the required roles (any assignment, not just the active one)."""
    held = set(identity.roles)
    return any(role_name(r) in held for r in required)


def role_name(role: str | Enum) -> str:
    """Accept RoleName members and plain strings alike."""
    return role.value if isinstance(role, Enum) else role


def has_permission(identity: Identity, permission: str) -> bool:
    return permission in identity.permissions
