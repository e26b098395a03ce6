# sterile_core/services/forwarding.py
"""
Forwarding Protocol: two-phase custody handoff between locations.

    idle --create_request--> pending --accept--> idle (location = to_location)
                                     --reject--> idle (location unchanged,
                                                 or back to MSU when the
                                                 instruments were not
                                                 properly packaged)

The pending check and the resolution run under the request and subject row
locks; the partial unique constraints on ForwardingRequest back them up.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from sterile_core import permissions
from sterile_core.actors import Actor
from sterile_core.exceptions import Conflict, NotFound, ValidationError
from sterile_core.models import ForwardingRequest, InstrumentGroup, Item, StorageSlot
from sterile_core.services import audit
from sterile_core.services.subjects import Subject, group_of, lock_subject
from sterile_core.workflows import (
    Action,
    Location,
    NOT_PROPERLY_PACKAGED,
    RequestStatus,
    Status,
    normalize_location,
    normalize_reason,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------

def _lock_request(request_id) -> ForwardingRequest:
    try:
        rid = uuid.UUID(str(request_id))
    except (TypeError, ValueError):
        rid = None

    req = None
    if rid is not None:
        req = ForwardingRequest.objects.select_for_update().filter(pk=rid).first()
    if req is None:
        raise NotFound(f"Unknown forwarding request: {request_id}", ids=[str(request_id)])
    return req


def _ensure_pending(req: ForwardingRequest) -> None:
    if req.status != RequestStatus.PENDING:
        raise Conflict(
            f"Forwarding request {req.pk} is already {req.status}.",
            request_id=str(req.pk),
            status=req.status,
        )


def _move(subject: Subject, location: str, *, status: Optional[str] = None) -> None:
    """
    Set the subject's location, cascading to every member item.
    """
    now = timezone.now()
    item_fields = {"location": location, "updated_at": now}
    if status is not None:
        item_fields["status"] = status

    Item.objects.filter(id__in=[i.id for i in subject.items]).update(**item_fields)
    for item in subject.items:
        item.location = location
        if status is not None:
            item.status = status

    if subject.kind == "group":
        InstrumentGroup.objects.filter(pk=subject.obj.pk).update(location=location, updated_at=now)
        subject.obj.location = location

    if location != Location.STORAGE:
        released = StorageSlot.objects.filter(subject_id=subject.id).delete()[0]
        if released:
            logger.info("storage slot of %s released on leaving storage", subject.id)


def _resolve(req: ForwardingRequest, status: str, actor: Actor, now, reason: str = "") -> None:
    req.status = status
    req.rejection_reason = reason
    req.resolved_by_id = actor.id
    req.resolved_by_username = actor.username
    req.resolved_at = now
    req.save(
        update_fields=[
            "status",
            "rejection_reason",
            "resolved_by_id",
            "resolved_by_username",
            "resolved_at",
        ]
    )


def _has_pending(subject: Subject) -> bool:
    return ForwardingRequest.objects.filter(
        status=RequestStatus.PENDING,
        **{subject.kind: subject.obj},
    ).exists()


def _request_subject(req: ForwardingRequest) -> Subject:
    subject = lock_subject(req.subject_id)
    if subject.kind != req.subject_type:
        raise NotFound(f"Subject of request {req.pk} no longer exists.", ids=[req.subject_id])
    return subject


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def create_request(subject_id, to_location, actor: Actor) -> ForwardingRequest:
    """
    Open a pending custody transfer of a group or an ungrouped item.
    """
    permissions.authorize(actor, permissions.REQUEST_FORWARDING)
    target = normalize_location(to_location)
    if target == Location.REMOVED:
        raise ValidationError("Items cannot be forwarded to 'removed'.", field="to_location")

    try:
        with transaction.atomic():
            subject = lock_subject(subject_id)

            permissions.authorize(actor, permissions.REQUEST_FORWARDING, [subject.location])

            if subject.kind == "item":
                item = subject.obj
                if item.location == Location.REMOVED:
                    raise ValidationError(
                        f"Item {item.id} has been removed from inventory.",
                        field="subject_id",
                    )
                gid = group_of(item)
                if gid:
                    raise ValidationError(
                        f"Item {item.id} belongs to group {gid}; forward the group instead.",
                        field="subject_id",
                        group_id=gid,
                    )
            elif not subject.items:
                raise ValidationError("Cannot forward an empty group.", field="subject_id")

            if target == subject.location:
                raise ValidationError(
                    f"Subject is already at {subject.location}.",
                    field="to_location",
                )

            subject_filter = {subject.kind: subject.obj}
            if _has_pending(subject):
                raise Conflict(
                    "A forwarding request is already pending for this subject.",
                    subject_id=subject.id,
                )

            req = ForwardingRequest.objects.create(
                from_location=subject.location,
                to_location=target,
                requested_by_id=actor.id,
                requested_by_username=actor.username,
                **subject_filter,
            )

            audit.record_many(
                subject.items,
                Action.FORWARDING_REQUESTED,
                actor,
                from_location=req.from_location,
                to_location=req.to_location,
                group_id=subject.id if subject.kind == "group" else "",
                details={"request_id": str(req.pk)},
            )
    except IntegrityError:
        raise Conflict(
            "A forwarding request is already pending for this subject.",
            subject_id=str(subject_id),
        )

    logger.info(
        "forwarding requested: %s %s %s -> %s",
        req.subject_type,
        req.subject_id,
        req.from_location,
        req.to_location,
    )
    return req


def accept(request_id, actor: Actor, *, now=None) -> ForwardingRequest:
    """
    Receiving side acknowledges: the subject moves to the request's to_location.
    """
    permissions.authorize(actor, permissions.ACCEPT_FORWARDING)
    now = now or timezone.now()

    with transaction.atomic():
        req = _lock_request(request_id)
        permissions.authorize(actor, permissions.ACCEPT_FORWARDING, [req.to_location])
        _ensure_pending(req)

        subject = _request_subject(req)
        _move(subject, req.to_location)
        _resolve(req, RequestStatus.ACCEPTED, actor, now)

        audit.record_many(
            subject.items,
            Action.FORWARDED,
            actor,
            from_location=req.from_location,
            to_location=req.to_location,
            group_id=subject.id if subject.kind == "group" else "",
            details={"request_id": str(req.pk)},
            timestamp=now,
        )

    return req


def reject(request_id, actor: Actor, reason: str = "", *, now=None) -> ForwardingRequest:
    """
    Receiving side declines. Instruments that were not properly packaged
    are sent back to the MSU and must restart sterilization.
    """
    permissions.authorize(actor, permissions.REJECT_FORWARDING)
    now = now or timezone.now()
    reason = normalize_reason(reason)

    with transaction.atomic():
        req = _lock_request(request_id)
        permissions.authorize(actor, permissions.REJECT_FORWARDING, [req.to_location])
        _ensure_pending(req)

        subject = _request_subject(req)
        _resolve(req, RequestStatus.REJECTED, actor, now, reason=reason)

        group_id = subject.id if subject.kind == "group" else ""
        audit.record_many(
            subject.items,
            Action.REJECTED,
            actor,
            from_location=req.from_location,
            to_location=req.to_location,
            group_id=group_id,
            details={"request_id": str(req.pk), "reason": reason},
            timestamp=now,
        )

        if reason == NOT_PROPERLY_PACKAGED:
            previous = {i.id: i.location for i in subject.items}
            _move(subject, Location.MSU, status=Status.NOT_STERILIZED)
            for item in subject.items:
                audit.record(
                    item,
                    Action.FORWARDED,
                    actor,
                    from_location=previous[item.id],
                    to_location=Location.MSU,
                    group_id=group_id,
                    details={
                        "request_id": str(req.pk),
                        "reason": reason,
                        "forced_return": True,
                    },
                    timestamp=now,
                )
            logger.info(
                "forwarding %s rejected as not properly packaged; %d item(s) returned to MSU",
                req.pk,
                len(subject.items),
            )

    return req
