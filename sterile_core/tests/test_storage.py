import pytest

from sterile_core.exceptions import Conflict, Forbidden, NotFound, ValidationError
from sterile_core.models import AuditRecord, StorageSlot
from sterile_core.services import storage
from sterile_core.workflows import Action, Location


@pytest.fixture
def at_storage(register, place):
    items = register(2)
    place(items, location=Location.STORAGE)
    return items


@pytest.mark.parametrize(
    "raw,expected",
    [("b12", "B12"), ("C-3", "C3"), (" a 1 ", "A1"), ("Z99", "Z99")],
)
def test_normalize_position(raw, expected):
    assert storage.normalize_position(raw) == expected


@pytest.mark.parametrize("raw", ["", "12", "AA1", "B0", "B100", "?1"])
def test_normalize_position_rejects(raw):
    with pytest.raises(ValidationError):
        storage.normalize_position(raw)


@pytest.mark.django_db
def test_assign_slot(at_storage, storage_actor):
    item = at_storage[0]

    slot = storage.assign_slot(item.id, "b-12", storage_actor)

    assert slot.position == "B12"
    assert slot.subject_type == "item"
    assert slot.subject_name == item.name
    rec = AuditRecord.objects.get(action=Action.STORED)
    assert rec.details == {"position": "B12"}


@pytest.mark.django_db
def test_new_position_supersedes_old(at_storage, storage_actor):
    item = at_storage[0]
    storage.assign_slot(item.id, "A1", storage_actor)

    storage.assign_slot(item.id, "A2", storage_actor)

    assert list(StorageSlot.objects.values_list("position", flat=True)) == ["A2"]
    details = [r.details for r in AuditRecord.objects.filter(action=Action.STORED)]
    assert {"position": "A2", "previous_position": "A1"} in details


@pytest.mark.django_db
def test_position_holds_one_subject(at_storage, storage_actor):
    a, b = at_storage
    storage.assign_slot(a.id, "A1", storage_actor)

    with pytest.raises(Conflict) as exc:
        storage.assign_slot(b.id, "a1", storage_actor)

    assert exc.value.detail["subject_id"] == a.id


@pytest.mark.django_db
def test_group_slot_writes_one_record_per_member(register, make_group, storage_actor):
    items = register(3)
    group = make_group(items, location=Location.STORAGE)

    slot = storage.assign_slot(str(group.pk), "F7", storage_actor)

    assert slot.subject_type == "group"
    records = AuditRecord.objects.filter(action=Action.STORED)
    assert records.count() == 3
    assert {r.group_id for r in records} == {str(group.pk)}


@pytest.mark.django_db
def test_only_subjects_at_storage_get_slots(register, admin_actor, msu_actor):
    (item,) = register(1)

    with pytest.raises(ValidationError):
        storage.assign_slot(item.id, "A1", admin_actor)
    with pytest.raises(Forbidden):
        storage.assign_slot(item.id, "A1", msu_actor)


@pytest.mark.django_db
def test_release_slot(at_storage, storage_actor):
    item = at_storage[0]
    storage.assign_slot(item.id, "E5", storage_actor)

    storage.release_slot(item.id, storage_actor)

    assert not StorageSlot.objects.exists()
    rec = AuditRecord.objects.get(action=Action.UNSTORED)
    assert rec.details == {"position": "E5"}

    with pytest.raises(NotFound):
        storage.release_slot(item.id, storage_actor)


@pytest.mark.django_db
def test_role_gate_runs_before_position_checks(msu_actor):
    with pytest.raises(Forbidden):
        storage.assign_slot("123456-001-00404", "??", msu_actor)
    with pytest.raises(Forbidden):
        storage.release_slot("123456-001-00404", msu_actor)


@pytest.mark.django_db
def test_racing_slot_assignment_is_reported_as_conflict(monkeypatch, at_storage, storage_actor):
    a, b = at_storage
    storage.assign_slot(a.id, "B2", storage_actor)
    monkeypatch.setattr(storage, "_slot_holder", lambda position, subject_id: None)

    with pytest.raises(Conflict):
        storage.assign_slot(b.id, "B2", storage_actor)

    assert list(StorageSlot.objects.values_list("subject_id", flat=True)) == [a.id]
