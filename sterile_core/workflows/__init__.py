# sterile_core/workflows/__init__.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from django.db import models

from sterile_core.exceptions import ValidationError


# ===============================================================
# Canonical vocabularies
# ===============================================================

class Status(models.TextChoices):
    NOT_STERILIZED = "not_sterilized", "Not Sterilized"
    WASHING_BY_HAND = "washing_by_hand", "Washing by Hand"
    AUTOMATIC_WASHING = "automatic_washing", "Automatic Washing"
    STEAM_STERILIZATION = "steam_sterilization", "Steam Sterilization"
    COOLING = "cooling", "Cooling"
    FINISHED = "finished", "Finished"


class Action(models.TextChoices):
    REGISTERED = "registered", "Registered"
    STEP_BY_HAND = "step_by_hand", "Step: By Hand"
    STEP_WASHING = "step_washing", "Step: Washing"
    STEP_STEAM_STERILIZATION = "step_steam_sterilization", "Step: Steam Sterilization"
    STEP_COOLING = "step_cooling", "Step: Cooling"
    STEP_FINISHED = "step_finished", "Step: Finished"
    MARKED_UNSTERILIZED = "marked_unsterilized", "Marked Unsterilized"
    GROUPED = "grouped", "Grouped"
    DISBANDED = "disbanded", "Disbanded"
    REMOVED_FROM_GROUP = "removed_from_group", "Removed from Group"
    FORWARDING_REQUESTED = "forwarding_requested", "Forwarding Requested"
    FORWARDED = "forwarded", "Forwarded"
    REJECTED = "rejected", "Rejected"
    STORED = "stored", "Stored"
    UNSTORED = "unstored", "Removed from Storage Slot"
    REMOVED_FROM_INVENTORY = "removed_from_inventory", "Removed from Inventory"


class Location(models.TextChoices):
    MSU = "msu", "MSU"
    STORAGE = "storage", "Storage"
    SURGERY_ROOM_1 = "surgery_room_1", "Surgery Room 1"
    SURGERY_ROOM_2 = "surgery_room_2", "Surgery Room 2"
    SURGERY_ROOM_3 = "surgery_room_3", "Surgery Room 3"
    SURGERY_ROOM_4 = "surgery_room_4", "Surgery Room 4"
    SURGERY_ROOM_5 = "surgery_room_5", "Surgery Room 5"
    REMOVED = "removed", "Removed"


class Role(models.TextChoices):
    HEAD_ADMIN = "head_admin", "Head Administrator"
    ADMIN = "admin", "Administrator"
    MSU = "msu", "MSU Personnel"
    STORAGE = "storage", "Storage Personnel"
    SURGERY = "surgery", "Surgery Personnel"


class RequestStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    REJECTED = "rejected", "Rejected"


STEP_ORDER: List[str] = [
    Status.NOT_STERILIZED,
    Status.WASHING_BY_HAND,
    Status.AUTOMATIC_WASHING,
    Status.STEAM_STERILIZATION,
    Status.COOLING,
    Status.FINISHED,
]

# Audit action written when a subject enters a step.
STEP_ACTIONS: Dict[str, str] = {
    Status.NOT_STERILIZED: Action.MARKED_UNSTERILIZED,
    Status.WASHING_BY_HAND: Action.STEP_BY_HAND,
    Status.AUTOMATIC_WASHING: Action.STEP_WASHING,
    Status.STEAM_STERILIZATION: Action.STEP_STEAM_STERILIZATION,
    Status.COOLING: Action.STEP_COOLING,
    Status.FINISHED: Action.STEP_FINISHED,
}

ELEVATED_ROLES = frozenset({Role.HEAD_ADMIN, Role.ADMIN})

SURGERY_ROOMS = frozenset(
    {
        Location.SURGERY_ROOM_1,
        Location.SURGERY_ROOM_2,
        Location.SURGERY_ROOM_3,
        Location.SURGERY_ROOM_4,
        Location.SURGERY_ROOM_5,
    }
)

# Rejection reason that sends every instrument back to the MSU for rework.
NOT_PROPERLY_PACKAGED = "not_properly_packaged"


# ===============================================================
# Normalization
# ===============================================================

STATUS_ALIASES: Dict[str, str] = {
    "not_sterilized": Status.NOT_STERILIZED,
    "unsterilized": Status.NOT_STERILIZED,
    "marked_unsterilized": Status.NOT_STERILIZED,
    "by_hand": Status.WASHING_BY_HAND,
    "step_by_hand": Status.WASHING_BY_HAND,
    "washing_by_hand": Status.WASHING_BY_HAND,
    "washing": Status.AUTOMATIC_WASHING,
    "step_washing": Status.AUTOMATIC_WASHING,
    "automatic_washing": Status.AUTOMATIC_WASHING,
    "steam_sterilization": Status.STEAM_STERILIZATION,
    "step_steam_sterilization": Status.STEAM_STERILIZATION,
    "cooling": Status.COOLING,
    "step_cooling": Status.COOLING,
    "finished": Status.FINISHED,
    "step_finished": Status.FINISHED,
    "sterilized": Status.FINISHED,
}

LOCATION_ALIASES: Dict[str, str] = {
    "msu": Location.MSU,
    "central_unit": Location.MSU,
    "storage": Location.STORAGE,
    "removed": Location.REMOVED,
    "deleted": Location.REMOVED,
}

ROLE_ALIASES: Dict[str, str] = {
    "head_admin": Role.HEAD_ADMIN,
    "headadmin": Role.HEAD_ADMIN,
    "admin": Role.ADMIN,
    "administrator": Role.ADMIN,
    "superuser": Role.ADMIN,
    "msu": Role.MSU,
    "storage": Role.STORAGE,
    "surgery": Role.SURGERY,
}


def _slug(value: Any) -> str:
    raw = str(value or "").strip().lower()
    for ch in (" ", "-", "."):
        raw = raw.replace(ch, "_")
    while "__" in raw:
        raw = raw.replace("__", "_")
    return raw


def normalize_status(value: Any) -> str:
    s = _slug(value)
    if s not in STATUS_ALIASES:
        raise ValidationError(f"Unknown status: {value!r}", field="status")
    return Status(STATUS_ALIASES[s]).value


def normalize_location(value: Any) -> str:
    s = _slug(value)
    if s in LOCATION_ALIASES:
        return Location(LOCATION_ALIASES[s]).value
    # "Surgery Room 3", "surgery-room-3", "surgery_room_3"
    if s.startswith("surgery_room_"):
        candidate = s
    elif s.startswith("surgery_") and s[len("surgery_"):].isdigit():
        candidate = "surgery_room_" + s[len("surgery_"):]
    else:
        candidate = ""
    if candidate in Location.values:
        return Location(candidate).value
    raise ValidationError(f"Unknown location: {value!r}", field="location")


def normalize_role(value: Any) -> str:
    s = _slug(value)
    if s not in ROLE_ALIASES:
        raise ValidationError(f"Unknown role: {value!r}", field="role")
    return Role(ROLE_ALIASES[s]).value


def normalize_reason(value: Any) -> str:
    return _slug(value)


# ===============================================================
# Step ordering
# ===============================================================

def next_status(current: str) -> Optional[str]:
    """
    Successor of a step, or None for the last step.
    """
    idx = STEP_ORDER.index(normalize_status(current))
    if idx + 1 >= len(STEP_ORDER):
        return None
    return STEP_ORDER[idx + 1].value


def is_surgery_room(location: Any) -> bool:
    return location in SURGERY_ROOMS


def is_elevated(role: Any) -> bool:
    return role in ELEVATED_ROLES


def workflow_definition() -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for clients.
    """
    transitions: Dict[str, List[str]] = {}
    for s in STEP_ORDER:
        nxt = next_status(s)
        transitions[str(s)] = [str(nxt)] if nxt else []

    return {
        "steps": [{"value": str(s), "label": Status(s).label} for s in STEP_ORDER],
        "transitions": transitions,
        "locations": [
            {"value": loc.value, "label": loc.label}
            for loc in Location
            if loc != Location.REMOVED
        ],
        "actions": [{"value": a.value, "label": a.label} for a in Action],
        "roles": [{"value": r.value, "label": r.label} for r in Role],
    }


__all__ = [
    "Status",
    "Action",
    "Location",
    "Role",
    "RequestStatus",
    "STEP_ORDER",
    "STEP_ACTIONS",
    "ELEVATED_ROLES",
    "SURGERY_ROOMS",
    "NOT_PROPERLY_PACKAGED",
    "normalize_status",
    "normalize_location",
    "normalize_role",
    "normalize_reason",
    "next_status",
    "is_surgery_room",
    "is_elevated",
    "workflow_definition",
]
