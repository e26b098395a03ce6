# sterile_core/workflows/executor.py
"""
Status Transition Engine.

advance_status / steam_sterilize / mark_unsterilized apply sterilization
steps to items and groups. Every call is all-or-nothing: subjects are
locked, validated, updated and audited inside one transaction. The single
exception is the cooling dwell-time revert, which is committed before
PreconditionNotMet is raised.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from sterile_core import permissions
from sterile_core.actors import Actor
from sterile_core.exceptions import InvalidTransition, PreconditionNotMet, ValidationError
from sterile_core.models import Item
from sterile_core.services import audit
from sterile_core.services.subjects import constituent_items, lock_subjects, resolve_subjects
from sterile_core.workflows import (
    Action,
    Location,
    STEP_ACTIONS,
    Status,
    next_status,
    normalize_status,
)

logger = logging.getLogger(__name__)


MIN_TEMPERATURE = 121
MIN_PRESSURE = 15
MIN_DURATION = 30


def cooling_minutes() -> int:
    return int(getattr(settings, "STERILE_COOLING_MINUTES", 10))


@dataclass(frozen=True)
class SterilizationParameters:
    """
    Steam cycle parameters recorded when subjects enter cooling.
    temperature in °C, pressure in PSI, duration in minutes.
    """

    temperature: float
    pressure: float
    duration: float

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "SterilizationParameters":
        if not data:
            raise ValidationError(
                "Steam sterilization parameters are required to enter cooling.",
                field="parameters",
            )
        # heat/psi are accepted as legacy client field names.
        raw = {
            "temperature": data.get("temperature", data.get("heat")),
            "pressure": data.get("pressure", data.get("psi")),
            "duration": data.get("duration"),
        }
        values: Dict[str, float] = {}
        for name, value in raw.items():
            if value is None or value == "":
                raise ValidationError(f"{name} is required.", field=name)
            try:
                values[name] = float(value)
            except (TypeError, ValueError):
                raise ValidationError(f"{name} must be a number.", field=name)
        return cls(**values)

    def validate(self) -> None:
        if self.temperature < MIN_TEMPERATURE:
            raise ValidationError(
                f"Heat must be at least {MIN_TEMPERATURE}°C",
                field="temperature",
                minimum=MIN_TEMPERATURE,
            )
        if self.pressure < MIN_PRESSURE:
            raise ValidationError(
                f"PSI must be at least {MIN_PRESSURE}",
                field="pressure",
                minimum=MIN_PRESSURE,
            )
        if self.duration < MIN_DURATION:
            raise ValidationError(
                f"Duration must be at least {MIN_DURATION} minutes",
                field="duration",
                minimum=MIN_DURATION,
            )

    def as_details(self) -> Dict[str, float]:
        return {
            "temperature": self.temperature,
            "pressure": self.pressure,
            "duration": self.duration,
        }


@dataclass
class TransitionResult:
    target: str
    changed: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def item_ids(self) -> List[str]:
        return sorted(self.changed + self.unchanged)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "changed": self.changed,
            "unchanged": self.unchanged,
            "count": len(self.changed) + len(self.unchanged),
        }


# ===============================================================
# Helpers
# ===============================================================

def _coerce_parameters(parameters) -> Optional[SterilizationParameters]:
    if parameters is None or isinstance(parameters, SterilizationParameters):
        return parameters
    return SterilizationParameters.from_mapping(parameters)


def _operation_for(target) -> str:
    # Unknown targets are reported after the role check.
    try:
        cooling = normalize_status(target) == Status.COOLING
    except ValidationError:
        cooling = False
    return permissions.STEAM_STERILIZE if cooling else permissions.ADVANCE_STATUS


def _check_step(item: Item, target: str) -> bool:
    """
    True when the item actually moves, False for a same-step re-entry.
    """
    if item.location == Location.REMOVED:
        raise InvalidTransition(
            f"Item {item.id} has been removed from inventory.",
            item_id=item.id,
        )

    current = normalize_status(item.status)
    if current == target:
        return False

    if next_status(current) != target:
        raise InvalidTransition(
            f"Invalid sterilization step for {item.id}: {current} -> {target}",
            item_id=item.id,
            current=current,
            target=target,
        )
    return True


def _remaining_cooling(items: Iterable[Item], now) -> Dict[str, int]:
    """
    Remaining whole minutes of cooling dwell per item (only items still short).
    Items without a cooling record are not held back.
    """
    dwell = timedelta(minutes=cooling_minutes())
    latest = audit.latest_records([i.id for i in items], Action.STEP_COOLING)

    out: Dict[str, int] = {}
    for item in items:
        rec = latest.get(item.id)
        if rec is None:
            continue
        elapsed = now - rec.timestamp
        if elapsed < dwell:
            remaining = (dwell - elapsed).total_seconds() / 60.0
            out[item.id] = max(1, math.ceil(remaining))
    return out


def _apply(items: List[Item], target: str) -> None:
    Item.objects.filter(id__in=[i.id for i in items]).update(
        status=target,
        updated_at=timezone.now(),
    )
    for item in items:
        item.status = target


# ===============================================================
# Public API
# ===============================================================

def advance_status(
    subject_ids: Iterable,
    target: str,
    actor: Actor,
    *,
    parameters=None,
    now=None,
) -> TransitionResult:
    """
    Move every constituent item of the named subjects to `target`.

    The target must be the successor of each item's current step, or equal
    to it (a same-step re-entry changes nothing but is still audited).
    """
    operation = _operation_for(target)
    permissions.authorize(actor, operation)

    now = now or timezone.now()
    target = normalize_status(target)

    if target == Status.NOT_STERILIZED:
        raise InvalidTransition(
            "Use mark_unsterilized to restart the sterilization pipeline.",
            target=target,
        )

    params = _coerce_parameters(parameters)
    if target == Status.COOLING:
        if params is None:
            raise ValidationError(
                "Steam sterilization parameters are required to enter cooling.",
                field="parameters",
            )
        params.validate()

    reverted: Dict[str, int] = {}

    with transaction.atomic():
        subjects = lock_subjects(subject_ids)
        items = constituent_items(subjects)

        permissions.authorize(
            actor,
            operation,
            [s.location for s in subjects] + [i.location for i in items],
        )

        moving = [i for i in items if _check_step(i, target)]
        moving_ids = {i.id for i in moving}

        if target == Status.FINISHED:
            cooling_items = [i for i in moving if i.status == Status.COOLING]
            reverted = _remaining_cooling(cooling_items, now)

            if reverted:
                back = [i for i in cooling_items if i.id in reverted]
                _apply(back, Status.STEAM_STERILIZATION)
                audit.record_many(
                    back,
                    Action.STEP_STEAM_STERILIZATION,
                    actor,
                    details={
                        "reverted_from": Status.COOLING,
                        "reason": "cooling_dwell_not_elapsed",
                    },
                    timestamp=now,
                )

        if not reverted:
            _apply(moving, target)

            details = params.as_details() if (params and target == Status.COOLING) else {}
            written = set()
            for subject in subjects:
                # One record per item, tagged with the group it moved with.
                batch = [i for i in subject.items if i.id not in written]
                written.update(i.id for i in batch)
                audit.record_many(
                    batch,
                    STEP_ACTIONS[target],
                    actor,
                    details=details,
                    group_id=subject.id if subject.kind == "group" else "",
                    timestamp=now,
                )

    if reverted:
        remaining = max(reverted.values())
        logger.info(
            "cooling dwell not elapsed for %d item(s); reverted to steam sterilization",
            len(reverted),
        )
        raise PreconditionNotMet(
            f"Must wait {cooling_minutes()} minutes after cooling. "
            f"{remaining} minutes remaining.",
            remaining_minutes=remaining,
            items=reverted,
        )

    return TransitionResult(
        target=target,
        changed=sorted(moving_ids),
        unchanged=sorted(i.id for i in items if i.id not in moving_ids),
    )


def steam_sterilize(
    subject_ids: Iterable,
    parameters,
    actor: Actor,
    *,
    now=None,
) -> TransitionResult:
    """
    Record a steam cycle and move subjects into cooling.
    """
    return advance_status(
        subject_ids,
        Status.COOLING,
        actor,
        parameters=parameters if parameters is not None else {},
        now=now,
    )


def mark_unsterilized(subject_ids: Iterable, actor: Actor, *, now=None) -> TransitionResult:
    """
    Reset every constituent item to NOT_STERILIZED, from any step and at
    any location.
    """
    permissions.authorize(actor, permissions.MARK_UNSTERILIZED)
    now = now or timezone.now()

    with transaction.atomic():
        subjects = lock_subjects(subject_ids)
        items = constituent_items(subjects)

        permissions.authorize(
            actor,
            permissions.MARK_UNSTERILIZED,
            [s.location for s in subjects] + [i.location for i in items],
        )

        changed = sorted(i.id for i in items if i.status != Status.NOT_STERILIZED)
        previous = {i.id: i.status for i in items}

        _apply(items, Status.NOT_STERILIZED)
        written = set()
        for subject in subjects:
            for item in subject.items:
                if item.id in written:
                    continue
                written.add(item.id)
                audit.record(
                    item,
                    Action.MARKED_UNSTERILIZED,
                    actor,
                    details={"previous_status": previous[item.id]},
                    group_id=subject.id if subject.kind == "group" else "",
                    timestamp=now,
                )

    return TransitionResult(
        target=Status.NOT_STERILIZED,
        changed=changed,
        unchanged=sorted(i.id for i in items if i.id not in changed),
    )


def validate_cooling(subject_ids: Iterable, *, actor: Optional[Actor] = None, now=None) -> Dict[str, Any]:
    """
    Read-only dwell check: which items may leave cooling yet. Takes no row
    locks.
    """
    if actor is not None:
        permissions.authorize(actor, permissions.LIST)
    now = now or timezone.now()

    subjects = resolve_subjects(subject_ids)
    items = [i for i in constituent_items(subjects) if i.status == Status.COOLING]
    remaining = _remaining_cooling(items, now)

    return {
        "valid": not remaining,
        "remaining_minutes": max(remaining.values()) if remaining else 0,
        "items": remaining,
    }


def cooling_ready(*, now=None) -> List[str]:
    """
    Ids of items in COOLING whose dwell time has elapsed.
    """
    now = now or timezone.now()
    cutoff = now - timedelta(minutes=cooling_minutes())

    cooling_ids = list(
        Item.objects.filter(status=Status.COOLING)
        .exclude(location=Location.REMOVED)
        .values_list("id", flat=True)
    )
    if not cooling_ids:
        return []

    latest = audit.latest_records(cooling_ids, Action.STEP_COOLING)
    ready = [
        iid
        for iid in cooling_ids
        if iid not in latest or latest[iid].timestamp <= cutoff
    ]
    return sorted(ready)


__all__ = [
    "SterilizationParameters",
    "TransitionResult",
    "advance_status",
    "steam_sterilize",
    "mark_unsterilized",
    "validate_cooling",
    "cooling_ready",
]
