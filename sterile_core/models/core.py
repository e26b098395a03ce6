# sterile_core/models/core.py

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q

from sterile_core.workflows import Location, RequestStatus, Role, Status
from sterile_core.workflows.guards import WorkflowWriteGuardMixin


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Staff
# ============================================================
class StaffProfile(TimeStampedModel):
    """
    Role and home location of a user. Read by the transport layer to build
    the Actor handed to the core.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="staff_profile",
    )
    role = models.CharField(max_length=20, choices=Role.choices, db_index=True)

    # Only meaningful for surgery staff; blank means "any surgery room".
    home_location = models.CharField(
        max_length=32,
        choices=Location.choices,
        blank=True,
        default="",
    )

    def __str__(self):
        return f"{self.user.username} ({self.role})"


# ============================================================
# Item
# ============================================================
class SerialSequence(models.Model):
    """
    Last serial issued per (company prefix, item type). Locked during
    registration so concurrent registrations never reuse a serial.
    """

    company_prefix = models.CharField(max_length=10)
    type_code = models.CharField(max_length=10)
    last_serial = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["company_prefix", "type_code"],
                name="uniq_serial_sequence",
            ),
        ]

    def __str__(self):
        return f"{self.company_prefix}-{self.type_code}: {self.last_serial}"


class Item(WorkflowWriteGuardMixin, TimeStampedModel):
    id = models.CharField(primary_key=True, max_length=32)
    company_prefix = models.CharField(max_length=10, db_index=True)
    type_code = models.CharField(max_length=10, db_index=True)
    serial_number = models.PositiveIntegerField()
    name = models.CharField(max_length=100)

    location = models.CharField(
        max_length=32,
        choices=Location.choices,
        default=Location.MSU,
        db_index=True,
    )
    status = models.CharField(
        max_length=32,
        choices=Status.choices,
        default=Status.NOT_STERILIZED,
        db_index=True,
    )

    class Meta:
        ordering = ["-created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["company_prefix", "type_code", "serial_number"],
                name="uniq_item_serial",
            ),
        ]

    @property
    def is_removed(self) -> bool:
        return self.location == Location.REMOVED

    def __str__(self):
        return f"{self.id} {self.name}"


# ============================================================
# Groups
# ============================================================
class InstrumentGroup(WorkflowWriteGuardMixin, TimeStampedModel):
    WORKFLOW_FIELDS = ("location",)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100)
    location = models.CharField(
        max_length=32,
        choices=Location.choices,
        default=Location.MSU,
        db_index=True,
    )
    created_by_id = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.name} @ {self.location}"


class GroupMembership(models.Model):
    group = models.ForeignKey(
        InstrumentGroup,
        on_delete=models.CASCADE,
        related_name="memberships",
    )

    # An item belongs to at most one group at a time.
    item = models.OneToOneField(
        Item,
        on_delete=models.CASCADE,
        related_name="membership",
    )
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["item_id"]

    def __str__(self):
        return f"{self.item_id} in {self.group_id}"


# ============================================================
# Forwarding
# ============================================================
class ForwardingRequest(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    group = models.ForeignKey(
        InstrumentGroup,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="forwarding_requests",
    )
    item = models.ForeignKey(
        Item,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="forwarding_requests",
    )

    from_location = models.CharField(max_length=32, choices=Location.choices)
    to_location = models.CharField(max_length=32, choices=Location.choices, db_index=True)
    status = models.CharField(
        max_length=16,
        choices=RequestStatus.choices,
        default=RequestStatus.PENDING,
        db_index=True,
    )
    rejection_reason = models.CharField(max_length=100, blank=True, default="")

    requested_by_id = models.CharField(max_length=64)
    requested_by_username = models.CharField(max_length=150, blank=True, default="")
    resolved_by_id = models.CharField(max_length=64, blank=True, default="")
    resolved_by_username = models.CharField(max_length=150, blank=True, default="")
    resolved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(group__isnull=False, item__isnull=True)
                    | Q(group__isnull=True, item__isnull=False)
                ),
                name="fwd_exactly_one_subject",
            ),
            models.UniqueConstraint(
                fields=["group"],
                condition=Q(status="pending"),
                name="uniq_pending_fwd_group",
            ),
            models.UniqueConstraint(
                fields=["item"],
                condition=Q(status="pending"),
                name="uniq_pending_fwd_item",
            ),
        ]

    @property
    def subject_id(self) -> str:
        return str(self.group_id) if self.group_id else str(self.item_id)

    @property
    def subject_type(self) -> str:
        return "group" if self.group_id else "item"

    def __str__(self):
        return f"{self.subject_type} {self.subject_id}: {self.from_location} -> {self.to_location} ({self.status})"


# ============================================================
# Storage
# ============================================================
class StorageSlot(models.Model):
    SUBJECT_TYPES = (
        ("item", "Item"),
        ("group", "Group"),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    subject_id = models.CharField(max_length=64, unique=True)
    subject_type = models.CharField(max_length=8, choices=SUBJECT_TYPES)
    subject_name = models.CharField(max_length=100, blank=True, default="")
    position = models.CharField(max_length=8, unique=True)

    assigned_by_id = models.CharField(max_length=64)
    assigned_by_username = models.CharField(max_length=150, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["position"]

    def __str__(self):
        return f"{self.position}: {self.subject_type} {self.subject_id}"
