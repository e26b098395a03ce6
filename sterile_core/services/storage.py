# sterile_core/services/storage.py
"""
Storage slot assignment for subjects kept at storage.

Positions are a shelf letter and a bay number ("B12"). A subject holds at
most one slot; assigning a new one supersedes the old.
"""

from __future__ import annotations

import logging
import re

from django.db import IntegrityError, transaction

from sterile_core import permissions
from sterile_core.actors import Actor
from sterile_core.exceptions import Conflict, NotFound, ValidationError
from sterile_core.models import StorageSlot
from sterile_core.services import audit
from sterile_core.services.subjects import lock_subject
from sterile_core.workflows import Action, Location

logger = logging.getLogger(__name__)


POSITION_RE = re.compile(r"^([A-Z])([1-9][0-9]?)$")


def normalize_position(position) -> str:
    value = str(position or "").strip().upper().replace("-", "").replace(" ", "")
    if not POSITION_RE.match(value):
        raise ValidationError(
            "Position must be a letter A-Z followed by a number 1-99 (e.g. B12).",
            field="position",
        )
    return value


def _slot_holder(position: str, subject_id: str):
    return (
        StorageSlot.objects.select_for_update()
        .filter(position=position)
        .exclude(subject_id=subject_id)
        .first()
    )


def assign_slot(subject_id, position, actor: Actor) -> StorageSlot:
    permissions.authorize(actor, permissions.ASSIGN_STORAGE_SLOT)
    position = normalize_position(position)

    try:
        with transaction.atomic():
            subject = lock_subject(subject_id)
            permissions.authorize(actor, permissions.ASSIGN_STORAGE_SLOT, [subject.location])

            if subject.location != Location.STORAGE:
                raise ValidationError(
                    f"Only subjects at storage can be assigned a slot ({subject.id} is at {subject.location}).",
                    field="subject_id",
                )

            taken = _slot_holder(position, subject.id)
            if taken is not None:
                raise Conflict(
                    f"Position {position} is occupied by {taken.subject_name or taken.subject_id}.",
                    field="position",
                    subject_id=taken.subject_id,
                )

            previous = StorageSlot.objects.filter(subject_id=subject.id).values_list("position", flat=True).first()
            StorageSlot.objects.filter(subject_id=subject.id).delete()

            slot = StorageSlot.objects.create(
                subject_id=subject.id,
                subject_type=subject.kind,
                subject_name=subject.name,
                position=position,
                assigned_by_id=actor.id,
                assigned_by_username=actor.username,
            )

            details = {"position": position}
            if previous and previous != position:
                details["previous_position"] = previous
            audit.record_many(
                subject.items,
                Action.STORED,
                actor,
                to_location=Location.STORAGE,
                group_id=subject.id if subject.kind == "group" else "",
                details=details,
            )
    except IntegrityError:
        raise Conflict(f"Position {position} is already occupied.", field="position")

    logger.info("%s %s stored at %s", slot.subject_type, slot.subject_id, slot.position)
    return slot


def release_slot(subject_id, actor: Actor) -> None:
    permissions.authorize(actor, permissions.RELEASE_STORAGE_SLOT)

    with transaction.atomic():
        subject = lock_subject(subject_id)
        permissions.authorize(actor, permissions.RELEASE_STORAGE_SLOT, [subject.location])

        slot = StorageSlot.objects.select_for_update().filter(subject_id=subject.id).first()
        if slot is None:
            raise NotFound(f"{subject.id} has no storage slot.", ids=[subject.id])

        audit.record_many(
            subject.items,
            Action.UNSTORED,
            actor,
            group_id=subject.id if subject.kind == "group" else "",
            details={"position": slot.position},
        )
        slot.delete()
