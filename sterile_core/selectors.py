# sterile_core/selectors.py
"""
Read-only query operations. Listings are filtered to the actor's home
location instead of being rejected.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Mapping, Optional

from django.core.paginator import Paginator
from django.db.models import Prefetch, Q

from sterile_core import filters, permissions
from sterile_core.actors import Actor
from sterile_core.exceptions import NotFound, ValidationError
from sterile_core.models import (
    AuditRecord,
    ForwardingRequest,
    GroupMembership,
    InstrumentGroup,
    Item,
    StorageSlot,
)
from sterile_core.workflows import Location

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _int_param(value: Any, name: str, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer.", field=name)
    if n < 1:
        raise ValidationError(f"{name} must be at least 1.", field=name)
    return n


def paginate(queryset, page=None, page_size=None) -> Dict[str, Any]:
    """
    Page dict: {count, page, page_size, results}. Pages past the end are empty.
    """
    number = _int_param(page, "page", 1)
    size = min(_int_param(page_size, "page_size", DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)

    paginator = Paginator(queryset, size)
    if number > paginator.num_pages:
        results = []
    else:
        results = list(paginator.page(number).object_list)

    return {
        "count": paginator.count,
        "page": number,
        "page_size": size,
        "results": results,
    }


def _plain(params: Optional[Mapping]) -> Dict[str, Any]:
    # QueryDict-safe: one value per key
    params = params or {}
    return {k: params[k] for k in params}


def _apply_filter(filterset_class, params: Optional[Mapping], queryset):
    # params=None: unfiltered, left to the API filter backend
    if params is None:
        return queryset
    fs = filterset_class(data=_plain(params), queryset=queryset)
    if not fs.is_valid():
        raise ValidationError(
            "Invalid filter parameters.",
            field="filters",
            errors={k: [str(e) for e in v] for k, v in fs.errors.items()},
        )
    return fs.qs


def _split(params: Optional[Mapping]):
    params = _plain(params)
    page = params.pop("page", None)
    page_size = params.pop("page_size", None)
    return params, page, page_size


def _location_scope(actor: Actor, *fields: str) -> Optional[Q]:
    """
    Q restricting any of `fields` to the actor's home locations; None when
    the actor is unrestricted.
    """
    permissions.authorize(actor, permissions.LIST)
    home = actor.home_locations()
    if home is None:
        return None
    q = Q()
    for field in fields:
        q |= Q(**{f"{field}__in": sorted(home)})
    return q


# ---------------------------------------------------------------------
# Querysets (shared with the API views)
# ---------------------------------------------------------------------

def items_queryset(actor: Actor, params: Optional[Mapping] = None):
    qs = permissions.scope_queryset(actor, Item.objects.all())
    qs = qs.select_related("membership")
    return _apply_filter(filters.ItemFilter, params, qs)


def groups_queryset(actor: Actor, params: Optional[Mapping] = None):
    qs = permissions.scope_queryset(actor, InstrumentGroup.objects.all())
    qs = qs.prefetch_related(
        Prefetch(
            "memberships",
            queryset=GroupMembership.objects.select_related("item").order_by("item_id"),
        )
    )
    return _apply_filter(filters.GroupFilter, params, qs)


def requests_queryset(actor: Actor, params: Optional[Mapping] = None):
    qs = ForwardingRequest.objects.select_related("group", "item")
    scope = _location_scope(actor, "from_location", "to_location")
    if scope is not None:
        qs = qs.filter(scope)
    return _apply_filter(filters.ForwardingRequestFilter, params, qs)


def audit_queryset(actor: Actor, params: Optional[Mapping] = None):
    qs = AuditRecord.objects.all()
    scope = _location_scope(actor, "from_location", "to_location")
    if scope is not None:
        qs = qs.filter(scope)
    return _apply_filter(filters.AuditRecordFilter, params, qs)


def storage_slots_queryset(actor: Actor, params: Optional[Mapping] = None):
    permissions.authorize(actor, permissions.LIST)
    qs = StorageSlot.objects.all()
    if not permissions.can_see_location(actor, Location.STORAGE):
        qs = qs.none()
    return _apply_filter(filters.StorageSlotFilter, params, qs)


# ---------------------------------------------------------------------
# Query operations
# ---------------------------------------------------------------------

def list_items(actor: Actor, params: Optional[Mapping] = None) -> Dict[str, Any]:
    params, page, page_size = _split(params)
    return paginate(items_queryset(actor, params), page, page_size)


def list_groups(actor: Actor, params: Optional[Mapping] = None) -> Dict[str, Any]:
    params, page, page_size = _split(params)
    return paginate(groups_queryset(actor, params), page, page_size)


def list_requests(
    actor: Actor,
    params: Optional[Mapping] = None,
    *,
    pending_only: bool = False,
) -> Dict[str, Any]:
    params, page, page_size = _split(params)
    if pending_only:
        params["pending_only"] = True
    return paginate(requests_queryset(actor, params), page, page_size)


def list_audit_records(actor: Actor, params: Optional[Mapping] = None) -> Dict[str, Any]:
    params, page, page_size = _split(params)
    return paginate(audit_queryset(actor, params), page, page_size)


def list_storage_slots(actor: Actor, params: Optional[Mapping] = None) -> Dict[str, Any]:
    params, page, page_size = _split(params)
    return paginate(storage_slots_queryset(actor, params), page, page_size)


def get_item(actor: Actor, item_id) -> Item:
    permissions.authorize(actor, permissions.LIST)
    item = Item.objects.select_related("membership").filter(id=str(item_id)).first()
    if item is None or not permissions.can_see_location(actor, item.location):
        raise NotFound(f"Unknown item: {item_id}", ids=[str(item_id)])
    return item


def get_group(actor: Actor, group_id) -> InstrumentGroup:
    try:
        gid = uuid.UUID(str(group_id))
    except (TypeError, ValueError):
        gid = None

    group = groups_queryset(actor).filter(pk=gid).first() if gid else None
    if group is None:
        raise NotFound(f"Unknown group: {group_id}", ids=[str(group_id)])
    return group


def item_history(actor: Actor, item_id, params: Optional[Mapping] = None) -> Dict[str, Any]:
    """
    Full audit trail of one item, newest first. Visibility follows the item's
    current location, so a surgery room sees its instruments' whole past.
    """
    item = get_item(actor, item_id)
    params, page, page_size = _split(params)
    params.pop("subject", None)
    qs = _apply_filter(
        filters.AuditRecordFilter,
        params,
        AuditRecord.objects.filter(subject_id=item.id),
    )
    return paginate(qs, page, page_size)
