# sterile_core/actors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sterile_core.exceptions import Forbidden, ValidationError
from sterile_core.workflows import (
    Location,
    Role,
    is_elevated,
    is_surgery_room,
    normalize_location,
    normalize_role,
)


@dataclass(frozen=True)
class Actor:
    """
    Resolved identity handed to the core by the transport layer.
    """

    id: str
    username: str
    role: str
    home_location: Optional[str] = None

    def __post_init__(self):
        if not str(self.id or "").strip():
            raise ValidationError("Actor id is required.", field="actor")
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "role", normalize_role(self.role))
        if self.home_location:
            object.__setattr__(self, "home_location", normalize_location(self.home_location))
        else:
            object.__setattr__(self, "home_location", None)

    @property
    def is_elevated(self) -> bool:
        return is_elevated(self.role)

    def home_locations(self) -> Optional[frozenset]:
        """
        Locations this actor may act on; None means unrestricted.
        """
        if self.is_elevated:
            return None
        if self.role == Role.MSU:
            return frozenset({Location.MSU.value})
        if self.role == Role.STORAGE:
            return frozenset({Location.STORAGE.value})
        if self.role == Role.SURGERY:
            if self.home_location and is_surgery_room(self.home_location):
                return frozenset({self.home_location})
            return frozenset(
                loc for loc in Location.values if is_surgery_room(loc)
            )
        return frozenset()

    @classmethod
    def from_user(cls, user) -> "Actor":
        """
        Build an Actor from a Django user. Superusers act as admin.
        """
        if user is None or not getattr(user, "is_authenticated", False):
            raise Forbidden("Authentication required.")

        if getattr(user, "is_superuser", False):
            return cls(id=str(user.pk), username=user.get_username(), role=Role.ADMIN)

        profile = getattr(user, "staff_profile", None)
        if profile is None:
            raise Forbidden("User has no staff role assigned.")

        return cls(
            id=str(user.pk),
            username=user.get_username(),
            role=profile.role,
            home_location=profile.home_location or None,
        )
