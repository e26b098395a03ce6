# sterile_core/workflows/guards.py

from django.db import models

from sterile_core.exceptions import Forbidden


class WorkflowWriteGuardMixin(models.Model):
    """
    Prevent direct modification of workflow-controlled fields outside the engines.

    Models inheriting this mixin must change status/location through the
    status transition engine, the grouping manager or the forwarding protocol.
    Direct .save() changes to any of WORKFLOW_FIELDS are blocked.

    Escape hatch:
      - pass _workflow_bypass=True to save(), OR
      - set instance._workflow_bypass = True
    Use sparingly (tests, data fixes, admin repair scripts).
    """

    WORKFLOW_FIELDS = ("status", "location")
    WORKFLOW_BYPASS_KWARG = "_workflow_bypass"

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        bypass = bool(
            kwargs.pop(self.WORKFLOW_BYPASS_KWARG, False)
            or getattr(self, "_workflow_bypass", False)
        )

        fields = [f for f in self.WORKFLOW_FIELDS if hasattr(self, f)]

        if not bypass and fields and not self._state.adding:
            old = (
                self.__class__.objects.filter(pk=self.pk)
                .values(*fields)
                .first()
            )
            if old is not None:
                changed = [f for f in fields if old[f] != getattr(self, f)]
                if changed:
                    raise Forbidden(
                        f"Direct modification of {', '.join(changed)} is forbidden. "
                        "Use the workflow services."
                    )

        return super().save(*args, **kwargs)
