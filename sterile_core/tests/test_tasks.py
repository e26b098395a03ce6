from io import StringIO

import pytest
from django.core.management import call_command

from sterile_core.tasks import scan_cooling_ready
from sterile_core.workflows import Status
from sterile_core.workflows.executor import steam_sterilize

PARAMS = {"temperature": 121, "pressure": 15, "duration": 30}


@pytest.fixture
def cooled(register, place, msu_actor, now, minutes):
    items = register(2)
    place(items, status=Status.STEAM_STERILIZATION)
    steam_sterilize([items[0].id], PARAMS, msu_actor, now=now - minutes(11))
    steam_sterilize([items[1].id], PARAMS, msu_actor, now=now - minutes(2))
    return items


@pytest.mark.django_db
def test_scan_cooling_ready_counts_cooled_items(cooled):
    assert scan_cooling_ready() == 1


@pytest.mark.django_db
def test_scan_cooling_ready_runs_as_task(cooled):
    result = scan_cooling_ready.delay()
    assert result.get() == 1


@pytest.mark.django_db
def test_check_cooling_ready_command(cooled):
    out = StringIO()

    call_command("check_cooling_ready", stdout=out)

    output = out.getvalue()
    assert cooled[0].id in output
    assert cooled[1].id not in output
    assert "1 item(s) cooled for at least 10 minutes." in output
