# sterile_core/migrations/0001_initial.py

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


LOCATION_CHOICES = [
    ("msu", "MSU"),
    ("storage", "Storage"),
    ("surgery_room_1", "Surgery Room 1"),
    ("surgery_room_2", "Surgery Room 2"),
    ("surgery_room_3", "Surgery Room 3"),
    ("surgery_room_4", "Surgery Room 4"),
    ("surgery_room_5", "Surgery Room 5"),
    ("removed", "Removed"),
]

STATUS_CHOICES = [
    ("not_sterilized", "Not Sterilized"),
    ("washing_by_hand", "Washing by Hand"),
    ("automatic_washing", "Automatic Washing"),
    ("steam_sterilization", "Steam Sterilization"),
    ("cooling", "Cooling"),
    ("finished", "Finished"),
]

ROLE_CHOICES = [
    ("head_admin", "Head Administrator"),
    ("admin", "Administrator"),
    ("msu", "MSU Personnel"),
    ("storage", "Storage Personnel"),
    ("surgery", "Surgery Personnel"),
]

REQUEST_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("accepted", "Accepted"),
    ("rejected", "Rejected"),
]

ACTION_CHOICES = [
    ("registered", "Registered"),
    ("step_by_hand", "Step: By Hand"),
    ("step_washing", "Step: Washing"),
    ("step_steam_sterilization", "Step: Steam Sterilization"),
    ("step_cooling", "Step: Cooling"),
    ("step_finished", "Step: Finished"),
    ("marked_unsterilized", "Marked Unsterilized"),
    ("grouped", "Grouped"),
    ("disbanded", "Disbanded"),
    ("removed_from_group", "Removed from Group"),
    ("forwarding_requested", "Forwarding Requested"),
    ("forwarded", "Forwarded"),
    ("rejected", "Rejected"),
    ("stored", "Stored"),
    ("unstored", "Removed from Storage Slot"),
    ("removed_from_inventory", "Removed from Inventory"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="StaffProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("role", models.CharField(choices=ROLE_CHOICES, db_index=True, max_length=20)),
                ("home_location", models.CharField(blank=True, choices=LOCATION_CHOICES, default="", max_length=32)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="staff_profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="SerialSequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("company_prefix", models.CharField(max_length=10)),
                ("type_code", models.CharField(max_length=10)),
                ("last_serial", models.PositiveIntegerField(default=0)),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("company_prefix", "type_code"), name="uniq_serial_sequence"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Item",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.CharField(max_length=32, primary_key=True, serialize=False)),
                ("company_prefix", models.CharField(db_index=True, max_length=10)),
                ("type_code", models.CharField(db_index=True, max_length=10)),
                ("serial_number", models.PositiveIntegerField()),
                ("name", models.CharField(max_length=100)),
                ("location", models.CharField(choices=LOCATION_CHOICES, db_index=True, default="msu", max_length=32)),
                ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="not_sterilized", max_length=32)),
            ],
            options={
                "ordering": ["-created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("company_prefix", "type_code", "serial_number"),
                        name="uniq_item_serial",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InstrumentGroup",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100)),
                ("location", models.CharField(choices=LOCATION_CHOICES, db_index=True, default="msu", max_length=32)),
                ("created_by_id", models.CharField(blank=True, default="", max_length=64)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="GroupMembership",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("added_at", models.DateTimeField(auto_now_add=True)),
                (
                    "group",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="sterile_core.instrumentgroup",
                    ),
                ),
                (
                    "item",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="membership",
                        to="sterile_core.item",
                    ),
                ),
            ],
            options={
                "ordering": ["item_id"],
            },
        ),
        migrations.CreateModel(
            name="ForwardingRequest",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("from_location", models.CharField(choices=LOCATION_CHOICES, max_length=32)),
                ("to_location", models.CharField(choices=LOCATION_CHOICES, db_index=True, max_length=32)),
                ("status", models.CharField(choices=REQUEST_STATUS_CHOICES, db_index=True, default="pending", max_length=16)),
                ("rejection_reason", models.CharField(blank=True, default="", max_length=100)),
                ("requested_by_id", models.CharField(max_length=64)),
                ("requested_by_username", models.CharField(blank=True, default="", max_length=150)),
                ("resolved_by_id", models.CharField(blank=True, default="", max_length=64)),
                ("resolved_by_username", models.CharField(blank=True, default="", max_length=150)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "group",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="forwarding_requests",
                        to="sterile_core.instrumentgroup",
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="forwarding_requests",
                        to="sterile_core.item",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=(
                            models.Q(("group__isnull", False), ("item__isnull", True))
                            | models.Q(("group__isnull", True), ("item__isnull", False))
                        ),
                        name="fwd_exactly_one_subject",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status", "pending")),
                        fields=("group",),
                        name="uniq_pending_fwd_group",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status", "pending")),
                        fields=("item",),
                        name="uniq_pending_fwd_item",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StorageSlot",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("subject_id", models.CharField(max_length=64, unique=True)),
                ("subject_type", models.CharField(choices=[("item", "Item"), ("group", "Group")], max_length=8)),
                ("subject_name", models.CharField(blank=True, default="", max_length=100)),
                ("position", models.CharField(max_length=8, unique=True)),
                ("assigned_by_id", models.CharField(max_length=64)),
                ("assigned_by_username", models.CharField(blank=True, default="", max_length=150)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
            ],
            options={
                "ordering": ["position"],
            },
        ),
        migrations.CreateModel(
            name="AuditRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("subject_id", models.CharField(db_index=True, max_length=64)),
                ("subject_name", models.CharField(blank=True, default="", max_length=100)),
                ("company_prefix", models.CharField(blank=True, db_index=True, default="", max_length=10)),
                ("type_code", models.CharField(blank=True, db_index=True, default="", max_length=10)),
                ("group_id", models.CharField(blank=True, default="", max_length=64)),
                ("action", models.CharField(choices=ACTION_CHOICES, db_index=True, max_length=32)),
                ("from_location", models.CharField(blank=True, default="", max_length=32)),
                ("to_location", models.CharField(blank=True, default="", max_length=32)),
                ("actor_id", models.CharField(db_index=True, max_length=64)),
                ("actor_username", models.CharField(blank=True, default="", max_length=150)),
                ("actor_role", models.CharField(blank=True, default="", max_length=20)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("timestamp", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                "ordering": ["-timestamp", "-id"],
                "indexes": [
                    models.Index(fields=["subject_id", "action", "timestamp"], name="audit_subject_action_idx"),
                ],
            },
        ),
    ]
