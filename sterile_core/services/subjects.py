# sterile_core/services/subjects.py
"""
Subject resolution and row locking shared by the engines.

A subject is an Item or an InstrumentGroup. Engines operate on the
constituent items: the item itself, or every member of the group.

Lock order is always: forwarding request → groups (by pk) → items (by pk).
All helpers that lock must run inside transaction.atomic().
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

from django.db.models import Q

from sterile_core.exceptions import NotFound, ValidationError
from sterile_core.models import ForwardingRequest, GroupMembership, InstrumentGroup, Item


@dataclass
class Subject:
    kind: str
    obj: Union[Item, InstrumentGroup]
    items: List[Item] = field(default_factory=list)

    @property
    def id(self) -> str:
        return str(self.obj.pk)

    @property
    def name(self) -> str:
        return self.obj.name

    @property
    def location(self) -> str:
        return self.obj.location

    @property
    def group(self) -> Optional[InstrumentGroup]:
        return self.obj if self.kind == "group" else None


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _dedupe(values: Iterable) -> List[str]:
    seen = set()
    out: List[str] = []
    for v in values:
        s = str(v or "").strip()
        if s and s not in seen:
            seen.add(s)
            out.append(s)
    return out


def clean_ids(subject_ids: Iterable, *, field_name: str = "subject_ids") -> List[str]:
    if isinstance(subject_ids, (str, bytes)):
        subject_ids = [subject_ids]
    ids = _dedupe(subject_ids or [])
    if not ids:
        raise ValidationError("Provide at least one identifier.", field=field_name)
    return ids


def lock_items(item_ids: Iterable[str]) -> Dict[str, Item]:
    ids = sorted(set(item_ids))
    items = {
        i.id: i
        for i in Item.objects.select_for_update().filter(id__in=ids).order_by("id")
    }
    missing = [i for i in ids if i not in items]
    if missing:
        raise NotFound(f"Unknown item(s): {', '.join(missing)}", ids=missing)
    return items


def lock_group(group_id) -> InstrumentGroup:
    gid = _parse_uuid(group_id)
    group = None
    if gid is not None:
        group = InstrumentGroup.objects.select_for_update().filter(pk=gid).first()
    if group is None:
        raise NotFound(f"Unknown group: {group_id}", ids=[str(group_id)])
    return group


def member_ids(group_ids: Iterable) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    rows = (
        GroupMembership.objects.filter(group_id__in=list(group_ids))
        .order_by("item_id")
        .values_list("group_id", "item_id")
    )
    for gid, iid in rows:
        out.setdefault(str(gid), []).append(iid)
    return out


def lock_requests(*, group_ids: Iterable = (), item_ids: Iterable = ()) -> List[ForwardingRequest]:
    """
    Lock the forwarding requests of the given groups/items, in pk order.

    Callers that delete requests take these before any group or item lock.
    """
    gids = [g for g in (_parse_uuid(g) for g in group_ids) if g is not None]
    iids = [str(i) for i in item_ids if i]
    if not gids and not iids:
        return []
    return list(
        ForwardingRequest.objects.select_for_update()
        .filter(Q(group_id__in=gids) | Q(item_id__in=iids))
        .order_by("pk")
    )


def _load_subjects(subject_ids: Iterable, *, for_update: bool) -> List[Subject]:
    ids = clean_ids(subject_ids)

    group_qs = InstrumentGroup.objects.all()
    item_qs = Item.objects.all()
    if for_update:
        group_qs = group_qs.select_for_update()
        item_qs = item_qs.select_for_update()

    group_keys = {s: _parse_uuid(s) for s in ids}
    group_uuids = sorted({g for g in group_keys.values() if g is not None}, key=str)
    groups = {
        str(g.pk): g
        for g in group_qs.filter(pk__in=group_uuids).order_by("pk")
    }

    members = member_ids(groups.keys())

    item_ids = {s for s in ids if str(group_keys[s]) not in groups}
    for mids in members.values():
        item_ids.update(mids)

    items = {
        i.id: i
        for i in item_qs.filter(id__in=sorted(item_ids)).order_by("id")
    }

    subjects: List[Subject] = []
    missing: List[str] = []
    for s in ids:
        g = groups.get(str(group_keys[s])) if group_keys[s] is not None else None
        if g is not None:
            subjects.append(
                Subject(
                    kind="group",
                    obj=g,
                    items=[items[i] for i in members.get(str(g.pk), []) if i in items],
                )
            )
        elif s in items:
            subjects.append(Subject(kind="item", obj=items[s], items=[items[s]]))
        else:
            missing.append(s)

    if missing:
        raise NotFound(f"Unknown subject(s): {', '.join(missing)}", ids=missing)

    return subjects


def lock_subjects(subject_ids: Iterable) -> List[Subject]:
    """
    Lock and resolve every id to a Subject, preserving input order.

    Ids that are neither an item nor a group raise NotFound.
    """
    return _load_subjects(subject_ids, for_update=True)


def resolve_subjects(subject_ids: Iterable) -> List[Subject]:
    """
    Same as lock_subjects without row locks, for read-only checks.
    """
    return _load_subjects(subject_ids, for_update=False)


def lock_subject(subject_id) -> Subject:
    return lock_subjects([subject_id])[0]


def constituent_items(subjects: Iterable[Subject]) -> List[Item]:
    """
    Flatten subjects to distinct items, in id order.
    """
    seen: Dict[str, Item] = {}
    for s in subjects:
        for item in s.items:
            seen.setdefault(item.id, item)
    return [seen[k] for k in sorted(seen)]


def group_of(item: Item) -> Optional[str]:
    gid = (
        GroupMembership.objects.filter(item_id=item.id)
        .values_list("group_id", flat=True)
        .first()
    )
    return str(gid) if gid else None
