# sterile_core/services/grouping.py
"""
Grouping Manager.

Groups bundle items that share one location and, when they join, one
normalized status. An item is in at most one group (GroupMembership.item is
one-to-one). Dissolving or emptying a group deletes it together with its
forwarding requests and storage slot; member items stay where they are.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from django.db import transaction

from sterile_core import permissions
from sterile_core.actors import Actor
from sterile_core.exceptions import Conflict, NotFound, ValidationError
from sterile_core.models import (
    ForwardingRequest,
    GroupMembership,
    InstrumentGroup,
    Item,
    StorageSlot,
)
from sterile_core.services import audit
from sterile_core.services.subjects import (
    clean_ids,
    lock_group,
    lock_items,
    lock_requests,
    member_ids,
)
from sterile_core.workflows import Action, Location, RequestStatus, normalize_status

logger = logging.getLogger(__name__)


MAX_NAME_LENGTH = 100


# ---------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------

def _clean_name(name: Any) -> str:
    value = str(name or "").strip()
    if not value:
        raise ValidationError("Group name is required.", field="name")
    if len(value) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"Group name must be at most {MAX_NAME_LENGTH} characters.",
            field="name",
        )
    return value


def _check_joinable(items: List[Item], *, location: str = None, status: str = None) -> None:
    """
    Items may join a group only when they all share one location and one
    normalized status (and match the group's, when given).
    """
    removed = [i.id for i in items if i.location == Location.REMOVED]
    if removed:
        raise ValidationError(
            "Removed items cannot be grouped.",
            field="item_ids",
            ids=removed,
        )

    locations = {i.location for i in items}
    if location is not None:
        locations.add(location)
    if len(locations) > 1:
        raise ValidationError(
            "All items must be at the same location.",
            field="item_ids",
            locations=sorted(locations),
        )

    statuses = {normalize_status(i.status) for i in items}
    if status is not None:
        statuses.add(normalize_status(status))
    if len(statuses) > 1:
        raise ValidationError(
            "All items must have the same sterilization status.",
            field="item_ids",
            statuses=sorted(statuses),
        )

    grouped = sorted(
        GroupMembership.objects.filter(item_id__in=[i.id for i in items])
        .values_list("item_id", flat=True)
    )
    if grouped:
        raise Conflict(
            "Some items already belong to a group.",
            field="item_ids",
            ids=grouped,
        )

    pending = sorted(
        ForwardingRequest.objects.filter(
            item_id__in=[i.id for i in items],
            status=RequestStatus.PENDING,
        ).values_list("item_id", flat=True)
    )
    if pending:
        raise Conflict(
            "Some items have a pending forwarding request.",
            field="item_ids",
            ids=pending,
        )


def _add_members(group: InstrumentGroup, items: List[Item], actor: Actor) -> None:
    GroupMembership.objects.bulk_create(
        [GroupMembership(group=group, item=item) for item in items]
    )
    audit.record_many(
        items,
        Action.GROUPED,
        actor,
        group_id=group.pk,
        details={"group_name": group.name},
    )


def _delete_group(group: InstrumentGroup) -> None:
    gid = str(group.pk)
    ForwardingRequest.objects.filter(group_id=group.pk).delete()
    StorageSlot.objects.filter(subject_id=gid).delete()
    GroupMembership.objects.filter(group_id=group.pk).delete()
    group.delete()
    logger.info("group %s deleted", gid)


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def create_group(name: str, item_ids: Iterable[str], actor: Actor) -> InstrumentGroup:
    """
    Bundle items into a new group at their shared location.
    """
    permissions.authorize(actor, permissions.CREATE_GROUP)
    name = _clean_name(name)
    ids = clean_ids(item_ids, field_name="item_ids")

    with transaction.atomic():
        locked = lock_items(ids)
        items = [locked[i] for i in sorted(locked)]

        permissions.authorize(actor, permissions.CREATE_GROUP, [i.location for i in items])
        _check_joinable(items)

        group = InstrumentGroup.objects.create(
            name=name,
            location=items[0].location,
            created_by_id=actor.id,
        )
        _add_members(group, items, actor)

    logger.info("group %s created with %d item(s) at %s", group.pk, len(items), group.location)
    return group


def add_items(group_id, item_ids: Iterable[str], actor: Actor) -> InstrumentGroup:
    """
    Add ungrouped items to an existing group.

    The new items must match the group's location and its members' status.
    """
    permissions.authorize(actor, permissions.ADD_TO_GROUP)
    ids = clean_ids(item_ids, field_name="item_ids")

    with transaction.atomic():
        group = lock_group(group_id)
        existing = member_ids([group.pk]).get(str(group.pk), [])
        locked = lock_items(set(ids) | set(existing))
        items = [locked[i] for i in sorted(set(ids))]

        permissions.authorize(
            actor,
            permissions.ADD_TO_GROUP,
            [group.location] + [i.location for i in items],
        )

        members = [locked[i] for i in existing]
        _check_joinable(
            items,
            location=group.location,
            status=members[0].status if members else None,
        )
        _add_members(group, items, actor)

    return group


def dissolve_group(group_id, actor: Actor) -> Dict[str, Any]:
    """
    Disband a group. Members become standalone items at the group's location.
    """
    permissions.authorize(actor, permissions.DISSOLVE_GROUP)

    with transaction.atomic():
        lock_requests(group_ids=[group_id])
        group = lock_group(group_id)
        permissions.authorize(actor, permissions.DISSOLVE_GROUP, [group.location])

        ids = member_ids([group.pk]).get(str(group.pk), [])
        locked = lock_items(ids)
        items = [locked[i] for i in ids]

        gid = str(group.pk)
        audit.record_many(
            items,
            Action.DISBANDED,
            actor,
            group_id=gid,
            details={"group_name": group.name},
        )
        _delete_group(group)

    return {"group_id": gid, "released": ids}


def remove_item(group_id, item_id, actor: Actor) -> Dict[str, Any]:
    """
    Take one item out of a group; an emptied group is deleted.
    """
    permissions.authorize(actor, permissions.REMOVE_FROM_GROUP)

    with transaction.atomic():
        iid = str(item_id or "").strip()
        # the group's requests go with it if this empties it
        lock_requests(group_ids=[group_id])
        group = lock_group(group_id)
        item = lock_items([iid])[iid]

        permissions.authorize(actor, permissions.REMOVE_FROM_GROUP, [group.location])

        membership = GroupMembership.objects.filter(group_id=group.pk, item_id=item.id).first()
        if membership is None:
            raise NotFound(
                f"Item {item.id} is not in group {group.pk}.",
                ids=[item.id],
            )

        audit.record(
            item,
            Action.REMOVED_FROM_GROUP,
            actor,
            group_id=group.pk,
            details={"group_name": group.name},
        )
        membership.delete()

        group_deleted = not GroupMembership.objects.filter(group_id=group.pk).exists()
        gid = str(group.pk)
        if group_deleted:
            _delete_group(group)

    return {"group_id": gid, "item_id": item.id, "group_deleted": group_deleted}


def detach_item(item: Item) -> bool:
    """
    Drop an item's membership without auditing it (the caller audits).
    Returns True when its group became empty and was deleted.
    """
    membership = (
        GroupMembership.objects.select_related("group")
        .filter(item_id=item.id)
        .first()
    )
    if membership is None:
        return False

    group = membership.group
    membership.delete()
    if not GroupMembership.objects.filter(group_id=group.pk).exists():
        _delete_group(group)
        return True
    return False
