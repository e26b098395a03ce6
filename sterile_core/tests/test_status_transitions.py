import pytest

from sterile_core.exceptions import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PreconditionNotMet,
    ValidationError,
)
from sterile_core.models import AuditRecord, Item
from sterile_core.workflows import Action, Location, Status
from sterile_core.workflows import executor
from sterile_core.workflows.executor import (
    advance_status,
    cooling_ready,
    mark_unsterilized,
    steam_sterilize,
    validate_cooling,
)

STEAM_OK = {"temperature": 121, "pressure": 15, "duration": 30}


def _walk_to_steam(item_ids, actor, now):
    for target in (Status.WASHING_BY_HAND, Status.AUTOMATIC_WASHING, Status.STEAM_STERILIZATION):
        advance_status(item_ids, target, actor, now=now)


def _status(item_id):
    return Item.objects.get(id=item_id).status


# ===============================================================
# The canonical pipeline
# ===============================================================

@pytest.mark.django_db
def test_registered_item_walks_the_pipeline_with_cooling_dwell(register, msu_actor, now, minutes):
    (item,) = register(1)
    assert item.id == "123456-001-00001"
    assert item.status == Status.NOT_STERILIZED
    assert item.location == Location.MSU

    _walk_to_steam([item.id], msu_actor, now)

    with pytest.raises(ValidationError):
        steam_sterilize([item.id], {"temperature": 120, "pressure": 15, "duration": 30}, msu_actor, now=now)
    assert _status(item.id) == Status.STEAM_STERILIZATION

    steam_sterilize([item.id], STEAM_OK, msu_actor, now=now)
    assert _status(item.id) == Status.COOLING

    with pytest.raises(PreconditionNotMet) as exc:
        advance_status([item.id], Status.FINISHED, msu_actor, now=now + minutes(1))

    assert exc.value.remaining_minutes == 9
    assert "9 minutes remaining" in exc.value.message
    assert _status(item.id) == Status.STEAM_STERILIZATION

    revert = AuditRecord.objects.filter(subject_id=item.id).first()
    assert revert.action == Action.STEP_STEAM_STERILIZATION
    assert revert.details["reverted_from"] == Status.COOLING


@pytest.mark.django_db
def test_finishing_after_dwell_succeeds(register, msu_actor, now, minutes):
    (item,) = register(1)
    _walk_to_steam([item.id], msu_actor, now)
    steam_sterilize([item.id], STEAM_OK, msu_actor, now=now)

    result = advance_status([item.id], Status.FINISHED, msu_actor, now=now + minutes(10))

    assert result.changed == [item.id]
    assert _status(item.id) == Status.FINISHED


@pytest.mark.django_db
def test_cooling_parameters_are_recorded(register, msu_actor, now):
    (item,) = register(1)
    _walk_to_steam([item.id], msu_actor, now)
    steam_sterilize([item.id], {"heat": "134", "psi": "30", "duration": 45}, msu_actor, now=now)

    rec = AuditRecord.objects.get(subject_id=item.id, action=Action.STEP_COOLING)
    assert rec.details == {"temperature": 134.0, "pressure": 30.0, "duration": 45.0}


@pytest.mark.django_db
@pytest.mark.parametrize(
    "params, field",
    [
        ({"temperature": 121, "pressure": 14, "duration": 30}, "pressure"),
        ({"temperature": 121, "pressure": 15, "duration": 29}, "duration"),
        ({"temperature": 121, "pressure": 15}, "duration"),
    ],
)
def test_cooling_parameters_below_threshold_are_rejected(register, msu_actor, now, params, field):
    (item,) = register(1)
    _walk_to_steam([item.id], msu_actor, now)

    with pytest.raises(ValidationError) as exc:
        advance_status([item.id], Status.COOLING, msu_actor, parameters=params, now=now)

    assert exc.value.field == field
    assert not AuditRecord.objects.filter(subject_id=item.id, action=Action.STEP_COOLING).exists()


@pytest.mark.django_db
def test_cooling_without_parameters_is_rejected(register, msu_actor, now):
    (item,) = register(1)
    _walk_to_steam([item.id], msu_actor, now)

    with pytest.raises(ValidationError):
        advance_status([item.id], Status.COOLING, msu_actor, now=now)


# ===============================================================
# Step ordering
# ===============================================================

@pytest.mark.django_db
def test_skipping_a_step_is_an_invalid_transition(register, msu_actor):
    (item,) = register(1)

    with pytest.raises(InvalidTransition):
        advance_status([item.id], Status.AUTOMATIC_WASHING, msu_actor)

    assert _status(item.id) == Status.NOT_STERILIZED


@pytest.mark.django_db
def test_not_sterilized_is_not_an_advance_target(register, msu_actor):
    (item,) = register(1)
    advance_status([item.id], Status.WASHING_BY_HAND, msu_actor)

    with pytest.raises(InvalidTransition):
        advance_status([item.id], Status.NOT_STERILIZED, msu_actor)


@pytest.mark.django_db
def test_same_step_is_a_noop_that_is_still_audited(register, msu_actor):
    (item,) = register(1)
    advance_status([item.id], "by_hand", msu_actor)

    result = advance_status([item.id], Status.WASHING_BY_HAND, msu_actor)

    assert result.changed == []
    assert result.unchanged == [item.id]
    assert _status(item.id) == Status.WASHING_BY_HAND
    assert AuditRecord.objects.filter(subject_id=item.id, action=Action.STEP_BY_HAND).count() == 2


@pytest.mark.django_db
def test_batch_is_all_or_nothing(register, place, msu_actor):
    a, b = register(2)
    place([b], status=Status.COOLING)

    with pytest.raises(InvalidTransition):
        advance_status([a.id, b.id], Status.WASHING_BY_HAND, msu_actor)

    assert _status(a.id) == Status.NOT_STERILIZED
    assert not AuditRecord.objects.filter(action=Action.STEP_BY_HAND).exists()


@pytest.mark.django_db
def test_unknown_subject_is_not_found(register, msu_actor):
    (item,) = register(1)

    with pytest.raises(NotFound) as exc:
        advance_status([item.id, "999999-001-00001"], Status.WASHING_BY_HAND, msu_actor)

    assert exc.value.detail["ids"] == ["999999-001-00001"]
    assert _status(item.id) == Status.NOT_STERILIZED


@pytest.mark.django_db
def test_removed_items_cannot_transition(register, place, msu_actor):
    (item,) = register(1)
    place([item], location=Location.REMOVED)

    with pytest.raises(Forbidden):
        advance_status([item.id], Status.WASHING_BY_HAND, msu_actor)


@pytest.mark.django_db
def test_removed_items_cannot_transition_for_admins(register, place, admin_actor):
    (item,) = register(1)
    place([item], location=Location.REMOVED)

    with pytest.raises(InvalidTransition):
        advance_status([item.id], Status.WASHING_BY_HAND, admin_actor)


@pytest.mark.django_db
def test_group_subject_expands_to_members(register, make_group, msu_actor):
    items = register(3)
    group = make_group(items)

    result = advance_status([str(group.pk)], Status.WASHING_BY_HAND, msu_actor)

    assert result.changed == sorted(i.id for i in items)
    records = AuditRecord.objects.filter(action=Action.STEP_BY_HAND)
    assert records.count() == 3
    assert {r.group_id for r in records} == {str(group.pk)}


@pytest.mark.django_db
def test_role_gate_runs_before_state_machine(register, place, msu_actor, surgery_actor):
    (item,) = register(1)

    with pytest.raises(Forbidden):
        advance_status([item.id], Status.FINISHED, surgery_actor)

    place([item], location=Location.STORAGE)
    with pytest.raises(Forbidden):
        advance_status([item.id], Status.WASHING_BY_HAND, msu_actor)


@pytest.mark.django_db
def test_role_gate_runs_before_parameter_checks(register, msu_actor, surgery_actor, now):
    (item,) = register(1)
    _walk_to_steam([item.id], msu_actor, now)

    with pytest.raises(Forbidden):
        steam_sterilize([item.id], {"temperature": 120, "pressure": 15, "duration": 30}, surgery_actor)
    with pytest.raises(Forbidden):
        steam_sterilize([item.id], None, surgery_actor)
    with pytest.raises(Forbidden):
        advance_status([item.id], "sterile-ish", surgery_actor)

    assert _status(item.id) == Status.STEAM_STERILIZATION


# ===============================================================
# Unsterilize
# ===============================================================

@pytest.mark.django_db
def test_mark_unsterilized_resets_from_any_step(register, place, msu_actor, now):
    items = register(3)
    place(items[:1], status=Status.FINISHED)
    place(items[1:2], status=Status.COOLING)

    result = mark_unsterilized([i.id for i in items], msu_actor, now=now)

    assert result.changed == sorted(i.id for i in items[:2])
    assert set(Item.objects.values_list("status", flat=True)) == {Status.NOT_STERILIZED}
    assert AuditRecord.objects.filter(action=Action.MARKED_UNSTERILIZED).count() == 3


@pytest.mark.django_db
def test_surgery_can_mark_unsterilized_in_its_room(register, place, surgery_actor):
    (item,) = register(1)
    place([item], location=Location.SURGERY_ROOM_1, status=Status.FINISHED)

    mark_unsterilized([item.id], surgery_actor)

    assert _status(item.id) == Status.NOT_STERILIZED


@pytest.mark.django_db
def test_mark_unsterilized_accepts_removed_items(register, place, admin_actor):
    (item,) = register(1)
    place([item], location=Location.REMOVED, status=Status.FINISHED)

    result = mark_unsterilized([item.id], admin_actor)

    assert result.changed == [item.id]
    assert _status(item.id) == Status.NOT_STERILIZED
    rec = AuditRecord.objects.get(action=Action.MARKED_UNSTERILIZED)
    assert rec.details == {"previous_status": Status.FINISHED}


@pytest.mark.django_db
def test_mark_unsterilized_tags_group_records(register, make_group, msu_actor):
    items = register(2)
    (loose,) = register(1)
    group = make_group(items, status=Status.COOLING)

    mark_unsterilized([str(group.pk), loose.id], msu_actor)

    records = {r.subject_id: r.group_id for r in AuditRecord.objects.filter(action=Action.MARKED_UNSTERILIZED)}
    assert records == {items[0].id: str(group.pk), items[1].id: str(group.pk), loose.id: ""}


@pytest.mark.django_db
def test_mark_unsterilized_unknown_id(msu_actor):
    with pytest.raises(NotFound):
        mark_unsterilized(["123456-001-00042"], msu_actor)


# ===============================================================
# Cooling checks
# ===============================================================

@pytest.mark.django_db
def test_validate_cooling_is_read_only(register, msu_actor, now, minutes):
    (item,) = register(1)
    _walk_to_steam([item.id], msu_actor, now)
    steam_sterilize([item.id], STEAM_OK, msu_actor, now=now)
    before = AuditRecord.objects.count()

    report = validate_cooling([item.id], now=now + minutes(3))

    assert report == {"valid": False, "remaining_minutes": 7, "items": {item.id: 7}}
    assert AuditRecord.objects.count() == before
    assert _status(item.id) == Status.COOLING

    assert validate_cooling([item.id], now=now + minutes(11))["valid"] is True


@pytest.mark.django_db
def test_validate_cooling_takes_no_row_locks(monkeypatch, register, msu_actor, now, minutes):
    (item,) = register(1)
    _walk_to_steam([item.id], msu_actor, now)
    steam_sterilize([item.id], STEAM_OK, msu_actor, now=now)

    def _no_locks(*args, **kwargs):
        raise AssertionError("validate_cooling must not lock rows")

    monkeypatch.setattr(executor, "lock_subjects", _no_locks)

    report = validate_cooling([item.id], actor=msu_actor, now=now + minutes(4))

    assert report["items"] == {item.id: 6}


@pytest.mark.django_db
def test_cooling_ready_lists_items_past_dwell(register, msu_actor, now, minutes):
    a, b = register(2)
    _walk_to_steam([a.id, b.id], msu_actor, now)
    steam_sterilize([a.id], STEAM_OK, msu_actor, now=now - minutes(15))
    steam_sterilize([b.id], STEAM_OK, msu_actor, now=now)

    assert cooling_ready(now=now + minutes(1)) == [a.id]


@pytest.mark.django_db
def test_dwell_time_follows_settings(settings, register, msu_actor, now, minutes):
    settings.STERILE_COOLING_MINUTES = 2
    (item,) = register(1)
    _walk_to_steam([item.id], msu_actor, now)
    steam_sterilize([item.id], STEAM_OK, msu_actor, now=now)

    advance_status([item.id], Status.FINISHED, msu_actor, now=now + minutes(2))

    assert _status(item.id) == Status.FINISHED
