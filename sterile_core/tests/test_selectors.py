import pytest

from sterile_core import selectors
from sterile_core.exceptions import NotFound, ValidationError
from sterile_core.services import forwarding, registry, storage
from sterile_core.workflows import Action, Location, RequestStatus, Status
from sterile_core.workflows.executor import advance_status


def _ids(page):
    return sorted(obj.id for obj in page["results"])


# ===============================================================
# Items
# ===============================================================

@pytest.mark.django_db
def test_listing_is_scoped_to_home_location(register, place, make_actor, admin_actor, surgery_actor):
    msu_items = register(2)
    room_1 = register(1)
    room_2 = register(1)
    place(room_1, location=Location.SURGERY_ROOM_1)
    place(room_2, location=Location.SURGERY_ROOM_2)

    assert selectors.list_items(admin_actor)["count"] == 4
    assert _ids(selectors.list_items(surgery_actor)) == [room_1[0].id]
    assert _ids(selectors.list_items(make_actor("msu"))) == sorted(i.id for i in msu_items)

    any_room = make_actor("surgery")
    assert _ids(selectors.list_items(any_room)) == sorted([room_1[0].id, room_2[0].id])


@pytest.mark.django_db
def test_item_filters(register, place, make_group, admin_actor):
    a, b, c = register(3)
    place([a], status=Status.COOLING)
    make_group([b, c])

    assert _ids(selectors.list_items(admin_actor, {"status": "Cooling"})) == [a.id]
    assert _ids(selectors.list_items(admin_actor, {"grouped": "true"})) == sorted([b.id, c.id])
    assert _ids(selectors.list_items(admin_actor, {"grouped": "false"})) == [a.id]
    assert selectors.list_items(admin_actor, {"name": "scissors"})["count"] == 3


@pytest.mark.django_db
def test_removed_items_are_hidden_by_default(register, admin_actor):
    a, b = register(2)
    registry.remove_item(a.id, admin_actor)

    assert _ids(selectors.list_items(admin_actor)) == [b.id]
    assert _ids(selectors.list_items(admin_actor, {"include_removed": "true"})) == sorted([a.id, b.id])
    assert _ids(selectors.list_items(admin_actor, {"location": "removed"})) == [a.id]


@pytest.mark.django_db
def test_invalid_filter_values(admin_actor):
    with pytest.raises(ValidationError):
        selectors.list_items(admin_actor, {"location": "Basement"})
    with pytest.raises(ValidationError):
        selectors.list_audit_records(admin_actor, {"action": "teleported"})


# ===============================================================
# Pagination
# ===============================================================

@pytest.mark.django_db
def test_pagination(register, admin_actor):
    register(5)

    page = selectors.list_items(admin_actor, {"page": 2, "page_size": 2})
    assert page["count"] == 5
    assert page["page"] == 2
    assert len(page["results"]) == 2

    past_end = selectors.list_items(admin_actor, {"page": 9, "page_size": 2})
    assert past_end["count"] == 5
    assert past_end["results"] == []

    capped = selectors.list_items(admin_actor, {"page_size": 10_000})
    assert capped["page_size"] == selectors.MAX_PAGE_SIZE

    with pytest.raises(ValidationError):
        selectors.list_items(admin_actor, {"page": "first"})
    with pytest.raises(ValidationError):
        selectors.list_items(admin_actor, {"page": 0})


# ===============================================================
# Groups, requests, storage
# ===============================================================

@pytest.mark.django_db
def test_get_group(register, make_group, admin_actor, surgery_actor):
    group = make_group(register(2))

    assert selectors.get_group(admin_actor, str(group.pk)).pk == group.pk
    with pytest.raises(NotFound):
        selectors.get_group(surgery_actor, group.pk)
    with pytest.raises(NotFound):
        selectors.get_group(admin_actor, "G1")


@pytest.mark.django_db
def test_requests_are_visible_to_both_ends(register, msu_actor, storage_actor, surgery_actor, admin_actor):
    a, b = register(2)
    first = forwarding.create_request(a.id, Location.STORAGE, msu_actor)
    forwarding.create_request(b.id, Location.STORAGE, msu_actor)
    forwarding.accept(first.pk, storage_actor)

    assert selectors.list_requests(msu_actor)["count"] == 2
    assert selectors.list_requests(storage_actor)["count"] == 2
    assert selectors.list_requests(surgery_actor)["count"] == 0

    pending = selectors.list_requests(admin_actor, pending_only=True)
    assert pending["count"] == 1
    assert pending["results"][0].status == RequestStatus.PENDING

    by_item = selectors.list_requests(admin_actor, {"item": a.id})
    assert [r.pk for r in by_item["results"]] == [first.pk]


@pytest.mark.django_db
def test_storage_slots_are_storage_only(register, place, storage_actor, msu_actor, admin_actor):
    (item,) = register(1)
    place([item], location=Location.STORAGE)
    storage.assign_slot(item.id, "A1", storage_actor)

    assert selectors.list_storage_slots(storage_actor)["count"] == 1
    assert selectors.list_storage_slots(admin_actor, {"position": "a"})["count"] == 1
    assert selectors.list_storage_slots(msu_actor)["count"] == 0


# ===============================================================
# Audit trail
# ===============================================================

@pytest.mark.django_db
def test_item_history_newest_first(register, place, surgery_actor, msu_actor, now, minutes):
    (item,) = register(1)
    advance_status([item.id], Status.WASHING_BY_HAND, msu_actor, now=now + minutes(1))

    history = selectors.item_history(msu_actor, item.id)
    assert [r.action for r in history["results"]] == [Action.STEP_BY_HAND, Action.REGISTERED]

    with pytest.raises(NotFound):
        selectors.item_history(surgery_actor, item.id)

    # a room sees the whole past of an instrument it now holds
    place([item], location=Location.SURGERY_ROOM_1)
    assert selectors.item_history(surgery_actor, item.id)["count"] == 2


@pytest.mark.django_db
def test_audit_records_filters_and_scope(register, msu_actor, storage_actor, admin_actor):
    a, b = register(2)
    forwarding.create_request(a.id, Location.STORAGE, msu_actor)

    assert selectors.list_audit_records(admin_actor, {"subject": a.id})["count"] == 2
    assert selectors.list_audit_records(admin_actor, {"action": Action.REGISTERED})["count"] == 2
    assert selectors.list_audit_records(admin_actor, {"actor": "msu"})["count"] == 3

    # storage only sees the records that touch storage
    visible = selectors.list_audit_records(storage_actor)
    assert [r.action for r in visible["results"]] == [Action.FORWARDING_REQUESTED]
