# custody/workflows/guards.py

from django.core.exceptions import PermissionDenied
from django.db import models


class WorkflowWriteGuardMixin(models.Model):
    """
    Custody status of a Requirement, Sample or Analysis only moves through
    apply_transition, so every change has a WorkflowTransition row and its
    reception/analysis stamps.

    A plain .save() on a stored row whose status differs from the database
    value raises PermissionDenied. Other fields (notes, quantities, results)
    save normally. New rows are not checked; services create them in their
    initial state.

    apply_transition saves with _workflow_bypass=True. Setting the
    instance attribute of the same name has the same effect.
    """

    WORKFLOW_FIELD = "status"
    WORKFLOW_BYPASS_KWARG = "_workflow_bypass"

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        bypass = bool(
            kwargs.pop(self.WORKFLOW_BYPASS_KWARG, False)
            or getattr(self, "_workflow_bypass", False)
        )

        if not bypass and self.pk is not None and self.WORKFLOW_FIELD:
            old = (
                self.__class__.objects.filter(pk=self.pk)
                .values_list(self.WORKFLOW_FIELD, flat=True)
                .first()
            )
            new = getattr(self, self.WORKFLOW_FIELD, None)

            if old is not None and old != new:
                raise PermissionDenied(
                    f"{self.__class__.__name__} {self.WORKFLOW_FIELD} {old} -> {new} "
                    "must go through the custody workflow."
                )

        return super().save(*args, **kwargs)


class AppendOnlyModelMixin(models.Model):
    """
    Rows are written once and never changed.

    Saving an existing row or deleting one raises PermissionDenied.
    Queryset-level .update()/.delete() are not intercepted.
    """

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if self.pk is not None and self.__class__.objects.filter(pk=self.pk).exists():
            raise PermissionDenied(
                f"{self.__class__.__name__} entries are append-only."
            )
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PermissionDenied(
            f"{self.__class__.__name__} entries are append-only."
        )
