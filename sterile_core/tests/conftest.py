# sterile_core/tests/conftest.py

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Callable, Iterable, List, Optional

import pytest
from django.contrib.auth import authenticate, get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from sterile_core.actors import Actor
from sterile_core.models import GroupMembership, InstrumentGroup, Item, StaffProfile
from sterile_core.services import registry
from sterile_core.workflows import Location, Role


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


# ===============================================================
# Actors
# ===============================================================

@pytest.fixture
def make_actor() -> Callable[..., Actor]:
    def _make(role: str, home_location: Optional[str] = None, username: Optional[str] = None) -> Actor:
        name = username or _rand(role)
        return Actor(id=name, username=name, role=role, home_location=home_location)

    return _make


@pytest.fixture
def admin_actor(make_actor) -> Actor:
    return make_actor(Role.ADMIN, username="admin")


@pytest.fixture
def head_admin_actor(make_actor) -> Actor:
    return make_actor(Role.HEAD_ADMIN, username="head")


@pytest.fixture
def msu_actor(make_actor) -> Actor:
    return make_actor(Role.MSU, username="msu")


@pytest.fixture
def storage_actor(make_actor) -> Actor:
    return make_actor(Role.STORAGE, username="storage")


@pytest.fixture
def surgery_actor(make_actor) -> Actor:
    return make_actor(Role.SURGERY, Location.SURGERY_ROOM_1, username="surgery1")


# ===============================================================
# Entities
# ===============================================================

@pytest.fixture
def register(msu_actor) -> Callable[..., List[Item]]:
    """
    Register items through the registry, as the MSU would.
    """

    def _register(quantity: int = 1, company_prefix: str = "123456", type_code: str = "001") -> List[Item]:
        return registry.register_items(company_prefix, type_code, quantity, msu_actor)

    return _register


@pytest.fixture
def place() -> Callable[..., None]:
    """
    Put items (and optionally their group) at a location/status directly,
    skipping the workflow. Test setup only.
    """

    def _place(
        items: Iterable[Item],
        *,
        location: Optional[str] = None,
        status: Optional[str] = None,
        group: Optional[InstrumentGroup] = None,
    ) -> None:
        ids = [i.id for i in items]
        fields = {}
        if location is not None:
            fields["location"] = location
        if status is not None:
            fields["status"] = status
        Item.objects.filter(id__in=ids).update(**fields)
        if group is not None and location is not None:
            InstrumentGroup.objects.filter(pk=group.pk).update(location=location)
        for item in items:
            item.refresh_from_db()

    return _place


@pytest.fixture
def make_group(place) -> Callable[..., InstrumentGroup]:
    """
    Build a group directly (no audit records), already at `location`.
    """

    def _make(items: List[Item], *, name: str = "G1", location: str = Location.MSU, status: Optional[str] = None):
        place(items, location=location, status=status)
        group = InstrumentGroup.objects.create(name=name, location=location)
        GroupMembership.objects.bulk_create([GroupMembership(group=group, item=i) for i in items])
        return group

    return _make


@pytest.fixture
def now():
    return timezone.now()


@pytest.fixture
def minutes():
    def _minutes(n: float) -> timedelta:
        return timedelta(minutes=n)

    return _minutes


# ===============================================================
# API
# ===============================================================

class AuthAPIClient(APIClient):
    """
    Test client that uses force_authenticate for predictable DRF auth.
    """

    _user = None

    def login(self, username: str, password: str, **kwargs) -> bool:  # type: ignore[override]
        user = authenticate(username=username, password=password)
        if not user:
            return False
        self.force_authenticate(user=user)
        self._user = user
        return True


@pytest.fixture
def api_client() -> AuthAPIClient:
    return AuthAPIClient()


@pytest.fixture
def make_user(db) -> Callable[..., object]:
    User = get_user_model()

    def _make(role: Optional[str], home_location: str = "", username: Optional[str] = None, **extra):
        name = username or _rand(role or "user")
        user = User.objects.create_user(username=name, password="pass1234", **extra)
        if role:
            StaffProfile.objects.create(user=user, role=role, home_location=home_location)
        return user

    return _make


@pytest.fixture
def client_as(api_client, make_user) -> Callable[..., AuthAPIClient]:
    def _as(role: Optional[str], home_location: str = "", **extra) -> AuthAPIClient:
        user = make_user(role, home_location, **extra)
        assert api_client.login(username=user.username, password="pass1234")
        return api_client

    return _as
