import uuid

from django.db import models
from django.utils import timezone

from sterile_core.exceptions import Forbidden
from sterile_core.workflows import Action


class AuditRecord(models.Model):
    """
    Immutable audit trail entry, one per committed change per item.

    Subject and actor fields are snapshots taken at write time, not foreign
    keys, so history stays readable after users or items are wiped.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    subject_id = models.CharField(max_length=64, db_index=True)
    subject_name = models.CharField(max_length=100, blank=True, default="")
    company_prefix = models.CharField(max_length=10, blank=True, default="", db_index=True)
    type_code = models.CharField(max_length=10, blank=True, default="", db_index=True)
    group_id = models.CharField(max_length=64, blank=True, default="")

    action = models.CharField(max_length=32, choices=Action.choices, db_index=True)
    from_location = models.CharField(max_length=32, blank=True, default="")
    to_location = models.CharField(max_length=32, blank=True, default="")

    actor_id = models.CharField(max_length=64, db_index=True)
    actor_username = models.CharField(max_length=150, blank=True, default="")
    actor_role = models.CharField(max_length=20, blank=True, default="")

    details = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-timestamp", "-id"]
        indexes = [
            models.Index(fields=["subject_id", "action", "timestamp"], name="audit_subject_action_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise Forbidden("Audit records are immutable.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise Forbidden("Audit records are immutable.")

    def __str__(self):
        return (
            f"{self.subject_id}: {self.action} "
            f"{self.from_location or '-'} → {self.to_location or '-'} "
            f"by {self.actor_username or self.actor_id}"
        )
