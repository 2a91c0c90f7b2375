# custody/workflows/transition_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from django.db import transaction
from django.utils import timezone

from custody.exceptions import NotFoundError
from custody.models import Analysis, Requirement, Sample, WorkflowTransition
from custody.workflows import (
    apply_entry_stamps,
    normalize_kind,
    normalize_state,
    validate_transition,
)

logger = logging.getLogger(__name__)


KIND_MODEL = {
    "requirement": Requirement,
    "sample": Sample,
    "analysis": Analysis,
}


def model_for_kind(kind: str):
    k = normalize_kind(kind)
    if k not in KIND_MODEL:
        raise ValueError(f"Unknown workflow kind: {kind}")
    return KIND_MODEL[k]


def get_workflow_object(kind: str, object_id: int):
    model = model_for_kind(kind)
    try:
        return model.objects.get(pk=object_id)
    except model.DoesNotExist:
        raise NotFoundError(f"{model.__name__} {object_id} not found.")


def apply_transition(
    *,
    kind: str,
    instance,
    target: str,
    performed_by=None,
    overrides: Optional[Mapping[str, Any]] = None,
    changes: Optional[Dict[str, Any]] = None,
    force: bool = False,
    now=None,
):
    """
    Atomically move ``instance`` to ``target``:
      1) lock the row and re-read the persisted status
      2) validate against the transition table (skipped when force=True)
      3) stamp entry timestamps, apply extra field changes
      4) save with the write guard bypassed
      5) record a WorkflowTransition row

    Returns the refreshed, locked instance. Nothing is written when
    validation fails.
    """
    now = now or timezone.now()
    k = normalize_kind(kind)
    model = model_for_kind(k)
    tgt = normalize_state(target)

    with transaction.atomic():
        obj = model.objects.select_for_update().get(pk=instance.pk)
        current = normalize_state(obj.status)

        if not force:
            validate_transition(k, current, tgt)

        update_fields = {"status", "updated_at"}

        for field, value in (changes or {}).items():
            setattr(obj, field, value)
            update_fields.add(field)

        update_fields.update(
            apply_entry_stamps(obj, k, tgt, now, overrides)
        )

        obj.status = tgt
        obj.save(update_fields=sorted(update_fields), _workflow_bypass=True)

        WorkflowTransition.objects.create(
            kind=k,
            object_id=obj.pk,
            from_status=current,
            to_status=tgt,
            performed_by=performed_by,
        )

    logger.info("%s %s: %s -> %s", k, obj.pk, current, tgt)
    return obj
