"""Role capability checks evaluated at the HTTP boundary."""

from __future__ import annotations

from collections.abc import Iterable

from ..domain.account import Role

ADMIN_ROLES = frozenset({Role.admin, Role.super_admin})


def has_any_role(actor_role: str | Role | None, required: Iterable[Role]) -> bool:
    """Return ``True`` when the actor holds one of the required roles."""
    if actor_role is None:
        return False
    try:
        role = Role(actor_role)
    except ValueError:
        return False
    return role in set(required)


def is_admin(actor_role: str | Role | None) -> bool:
    return has_any_role(actor_role, ADMIN_ROLES)
