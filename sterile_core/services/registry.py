# sterile_core/services/registry.py
"""
Item registration, soft removal and the maintenance wipe.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

from django.conf import settings
from django.db import transaction

from sterile_core import permissions
from sterile_core.actors import Actor
from sterile_core.exceptions import Conflict, ValidationError
from sterile_core.models import (
    ForwardingRequest,
    GroupMembership,
    InstrumentGroup,
    Item,
    SerialSequence,
    StorageSlot,
)
from sterile_core.services import audit, grouping
from sterile_core.services.subjects import lock_items, lock_requests
from sterile_core.workflows import Action, Location, RequestStatus, Status

logger = logging.getLogger(__name__)


MAX_SERIAL = 99999

PREFIX_RE = re.compile(r"^\d{6}$")
TYPE_CODE_RE = re.compile(r"^\d{3}$")

ITEM_TYPES: Dict[str, str] = {
    "001": "Surgical Scissors",
    "002": "Medical Forceps",
    "003": "Precision Scalpel",
    "004": "Arterial Clamp",
    "005": "Suture Needle",
}


def max_registration() -> int:
    return int(getattr(settings, "STERILE_MAX_REGISTRATION", 100))


def item_name(type_code: str) -> str:
    return ITEM_TYPES.get(type_code, f"Instrument {type_code}")


def make_item_id(company_prefix: str, type_code: str, serial: int) -> str:
    return f"{company_prefix}-{type_code}-{serial:05d}"


def _clean_quantity(quantity: Any) -> int:
    try:
        n = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer.", field="quantity")
    limit = max_registration()
    if n < 1 or n > limit:
        raise ValidationError(
            f"quantity must be between 1 and {limit}.",
            field="quantity",
        )
    return n


def register_items(company_prefix, type_code, quantity, actor: Actor) -> List[Item]:
    """
    Register `quantity` new items at the MSU with consecutive serials.
    """
    permissions.authorize(actor, permissions.REGISTER)

    company_prefix = str(company_prefix or "").strip()
    type_code = str(type_code or "").strip()

    if not PREFIX_RE.match(company_prefix):
        raise ValidationError("company_prefix must be 6 digits.", field="company_prefix")
    if not TYPE_CODE_RE.match(type_code):
        raise ValidationError("type_code must be 3 digits.", field="type_code")
    n = _clean_quantity(quantity)

    permissions.authorize(actor, permissions.REGISTER, [Location.MSU])

    with transaction.atomic():
        seq, _ = SerialSequence.objects.get_or_create(
            company_prefix=company_prefix,
            type_code=type_code,
        )
        seq = SerialSequence.objects.select_for_update().get(pk=seq.pk)

        first = seq.last_serial + 1
        last = seq.last_serial + n
        if last > MAX_SERIAL:
            raise Conflict(
                f"Serial numbers for {company_prefix}-{type_code} are exhausted.",
                field="quantity",
                available=max(0, MAX_SERIAL - seq.last_serial),
            )

        name = item_name(type_code)
        items = Item.objects.bulk_create(
            [
                Item(
                    id=make_item_id(company_prefix, type_code, serial),
                    company_prefix=company_prefix,
                    type_code=type_code,
                    serial_number=serial,
                    name=name,
                    location=Location.MSU,
                    status=Status.NOT_STERILIZED,
                )
                for serial in range(first, last + 1)
            ]
        )

        seq.last_serial = last
        seq.save(update_fields=["last_serial"])

        audit.record_many(
            items,
            Action.REGISTERED,
            actor,
            from_location="",
            to_location=Location.MSU,
        )

    logger.info("registered %d x %s (%s-%s)", n, name, company_prefix, type_code)
    return items


def remove_item(item_id, actor: Actor) -> Item:
    """
    Soft delete: the row stays for the audit trail, its location becomes
    'removed' and its group membership and storage slot are dropped.
    """
    permissions.authorize(actor, permissions.REMOVE_ITEM)
    iid = str(item_id or "").strip()

    with transaction.atomic():
        membership = GroupMembership.objects.filter(item_id=iid).values_list("group_id", flat=True).first()
        # requests, then the group, then the item
        lock_requests(group_ids=[membership] if membership else [], item_ids=[iid])
        if membership is not None:
            InstrumentGroup.objects.select_for_update().filter(pk=membership).first()
        item = lock_items([iid])[iid]

        if item.location == Location.REMOVED:
            raise Conflict(f"Item {item.id} is already removed.", ids=[item.id])

        permissions.authorize(actor, permissions.REMOVE_ITEM, [item.location])

        previous = item.location
        audit.record(
            item,
            Action.REMOVED_FROM_INVENTORY,
            actor,
            from_location=previous,
            to_location=Location.REMOVED,
        )

        ForwardingRequest.objects.filter(item_id=item.id, status=RequestStatus.PENDING).delete()
        StorageSlot.objects.filter(subject_id=item.id).delete()
        grouping.detach_item(item)

        Item.objects.filter(id=item.id).update(location=Location.REMOVED)
        item.location = Location.REMOVED

    logger.info("item %s removed from inventory (was at %s)", item.id, previous)
    return item


def clear_all(actor: Actor) -> Dict[str, int]:
    """
    Maintenance wipe of every table. Elevated roles only.
    """
    permissions.authorize(actor, permissions.CLEAR_ALL)

    with transaction.atomic():
        counts = {
            "forwarding_requests": ForwardingRequest.objects.all().delete()[0],
            "storage_slots": StorageSlot.objects.all().delete()[0],
            "memberships": GroupMembership.objects.all().delete()[0],
            "groups": InstrumentGroup.objects.all().delete()[0],
            "items": Item.objects.all().delete()[0],
            "serial_sequences": SerialSequence.objects.all().delete()[0],
            "audit_records": audit.wipe(),
        }

    logger.warning("maintenance wipe by %s (%s): %s", actor.username or actor.id, actor.role, counts)
    return counts
