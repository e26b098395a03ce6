# sterile_core/services/audit.py
"""
Audit Logger.

Every engine writes its audit records through this module, inside the same
transaction.atomic() block as the state change. One record per affected
item, never one per batch, so per-item history stays queryable.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from django.db import transaction
from django.utils import timezone

from sterile_core.actors import Actor
from sterile_core.models import AuditRecord, Item

logger = logging.getLogger(__name__)


def _item_snapshot(item: Item) -> Dict[str, Any]:
    return {
        "subject_id": item.id,
        "subject_name": item.name,
        "company_prefix": item.company_prefix,
        "type_code": item.type_code,
    }


def _actor_snapshot(actor: Actor) -> Dict[str, Any]:
    return {
        "actor_id": actor.id,
        "actor_username": actor.username,
        "actor_role": actor.role,
    }


def record(
    item: Item,
    action: str,
    actor: Actor,
    *,
    from_location: Optional[str] = None,
    to_location: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    group_id: Any = "",
    timestamp=None,
) -> AuditRecord:
    """
    Append one audit record for `item`.

    Locations default to the item's current location.
    """
    return AuditRecord.objects.create(
        **_item_snapshot(item),
        **_actor_snapshot(actor),
        group_id=str(group_id or ""),
        action=action,
        from_location=item.location if from_location is None else from_location,
        to_location=item.location if to_location is None else to_location,
        details=details or {},
        timestamp=timestamp or timezone.now(),
    )


def record_many(
    items: Iterable[Item],
    action: str,
    actor: Actor,
    *,
    from_location: Optional[str] = None,
    to_location: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    group_id: Any = "",
    timestamp=None,
) -> List[AuditRecord]:
    """
    Append one audit record per item with a single INSERT.
    """
    ts = timestamp or timezone.now()
    actor_fields = _actor_snapshot(actor)

    rows = [
        AuditRecord(
            **_item_snapshot(item),
            **actor_fields,
            group_id=str(group_id or ""),
            action=action,
            from_location=item.location if from_location is None else from_location,
            to_location=item.location if to_location is None else to_location,
            details=dict(details or {}),
            timestamp=ts,
        )
        for item in items
    ]
    if not rows:
        return []

    created = AuditRecord.objects.bulk_create(rows)

    transaction.on_commit(
        lambda: logger.info(
            "audit: %s x%d by %s (%s)",
            action,
            len(created),
            actor.username or actor.id,
            actor.role,
        )
    )
    return created


def latest_record(subject_id: str, action: str) -> Optional[AuditRecord]:
    return (
        AuditRecord.objects.filter(subject_id=subject_id, action=action)
        .order_by("-timestamp", "-id")
        .first()
    )


def latest_records(subject_ids: Iterable[str], action: str) -> Dict[str, AuditRecord]:
    """
    Most recent record of `action` per subject id.
    """
    out: Dict[str, AuditRecord] = {}
    qs = AuditRecord.objects.filter(
        subject_id__in=list(subject_ids),
        action=action,
    ).order_by("subject_id", "-timestamp")
    for rec in qs:
        out.setdefault(rec.subject_id, rec)
    return out


def wipe() -> int:
    """
    Maintenance-only removal of the whole trail. Used by registry.clear_all.
    """
    deleted, _ = AuditRecord.objects.all().delete()
    return deleted
