# sterile_core/permissions.py
from __future__ import annotations

from typing import Dict, FrozenSet, Iterable

from rest_framework.permissions import BasePermission

from sterile_core.actors import Actor
from sterile_core.exceptions import Forbidden
from sterile_core.workflows import Role


# ------------------------------------------------------------------
# Operation → role table (elevated roles are allowed everywhere)
# ------------------------------------------------------------------
LIST = "list"
REGISTER = "register"
ADVANCE_STATUS = "advance_status"
STEAM_STERILIZE = "steam_sterilize"
MARK_UNSTERILIZED = "mark_unsterilized"
CREATE_GROUP = "create_group"
ADD_TO_GROUP = "add_to_group"
REMOVE_FROM_GROUP = "remove_from_group"
DISSOLVE_GROUP = "dissolve_group"
REQUEST_FORWARDING = "request_forwarding"
ACCEPT_FORWARDING = "accept_forwarding"
REJECT_FORWARDING = "reject_forwarding"
ASSIGN_STORAGE_SLOT = "assign_storage_slot"
RELEASE_STORAGE_SLOT = "release_storage_slot"
REMOVE_ITEM = "remove_item"
CLEAR_ALL = "clear_all"

OPERATION_ROLES: Dict[str, FrozenSet[str]] = {
    LIST: frozenset({Role.MSU, Role.STORAGE, Role.SURGERY}),
    REGISTER: frozenset({Role.MSU}),
    ADVANCE_STATUS: frozenset({Role.MSU}),
    STEAM_STERILIZE: frozenset({Role.MSU}),
    MARK_UNSTERILIZED: frozenset({Role.MSU, Role.SURGERY}),
    CREATE_GROUP: frozenset({Role.MSU, Role.STORAGE}),
    ADD_TO_GROUP: frozenset({Role.MSU, Role.STORAGE}),
    REMOVE_FROM_GROUP: frozenset({Role.MSU, Role.STORAGE}),
    DISSOLVE_GROUP: frozenset({Role.MSU, Role.STORAGE}),
    REQUEST_FORWARDING: frozenset({Role.MSU, Role.STORAGE, Role.SURGERY}),
    ACCEPT_FORWARDING: frozenset({Role.MSU, Role.STORAGE, Role.SURGERY}),
    REJECT_FORWARDING: frozenset({Role.MSU, Role.STORAGE, Role.SURGERY}),
    ASSIGN_STORAGE_SLOT: frozenset({Role.STORAGE}),
    RELEASE_STORAGE_SLOT: frozenset({Role.STORAGE}),
    REMOVE_ITEM: frozenset({Role.MSU}),
    CLEAR_ALL: frozenset(),
}


def allowed_roles(operation: str) -> FrozenSet[str]:
    if operation not in OPERATION_ROLES:
        raise KeyError(f"Unknown operation: {operation}")
    return OPERATION_ROLES[operation]


def authorize(actor: Actor, operation: str, locations: Iterable[str] = ()) -> None:
    """
    Admission check run before any state machine.

    Raises Forbidden when the actor's role may not perform `operation`, or
    when a location-scoped role touches a subject outside its home location.
    """
    roles = allowed_roles(operation)

    if actor.is_elevated:
        return

    if actor.role not in roles:
        raise Forbidden(
            f"Role '{actor.role}' may not perform {operation}.",
            operation=operation,
            role=actor.role,
        )

    home = actor.home_locations()
    outside = sorted({loc for loc in locations if loc not in home})
    if outside:
        raise Forbidden(
            f"Role '{actor.role}' may only act on subjects at its home location.",
            operation=operation,
            role=actor.role,
            locations=outside,
        )


def scope_queryset(actor: Actor, queryset, field: str = "location"):
    """
    Listing is filtered, never rejected: non-elevated actors only see rows
    whose `field` is one of their home locations.
    """
    authorize(actor, LIST)
    home = actor.home_locations()
    if home is None:
        return queryset
    return queryset.filter(**{f"{field}__in": sorted(home)})


def can_see_location(actor: Actor, location: str) -> bool:
    home = actor.home_locations()
    return home is None or location in home


# ------------------------------------------------------------------
# DRF permission class
# ------------------------------------------------------------------
class HasStaffRole(BasePermission):
    """
    Authenticated users with a staff profile (or superusers).

    Per-operation checks are done by `authorize` inside the core.
    """

    message = "A staff role is required to use the sterilization API."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        if user.is_superuser:
            return True
        return getattr(user, "staff_profile", None) is not None


__all__ = [
    "OPERATION_ROLES",
    "allowed_roles",
    "authorize",
    "scope_queryset",
    "can_see_location",
    "HasStaffRole",
]
