# custody/services/samples.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.db import transaction

from custody.exceptions import ConflictError, NotFoundError, ValidationError
from custody.models import Analysis, Requirement, Sample, Storage, WorkflowTransition
from custody.notifications import SAMPLE_RECEIVED, display_name, notify_after_commit
from custody.services.codes import SAMPLE_PREFIX, next_code
from custody.services.lookups import append_note, fetch
from custody.workflows import normalize_state
from custody.workflows.transition_service import apply_transition

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("sample_type", "sample_format", "quantity", "notes", "is_counter_sample")


# ===============================================================
# Creation
# ===============================================================
def create_sample(
    *,
    requirement_id: int,
    sample_type: str,
    sample_format: str = "",
    quantity: str = "",
    notes: str = "",
    is_counter_sample: bool = False,
    parent_id: Optional[int] = None,
) -> Sample:
    requirement = fetch(Requirement, requirement_id, "Requirement")
    parent = fetch(Sample, parent_id, "Parent sample") if parent_id else None

    if parent is not None and parent.requirement_id != requirement.pk:
        raise ValidationError(
            {"parent_id": f"Sample {parent.qr_code} belongs to another requirement."}
        )

    with transaction.atomic():
        sample = Sample.objects.create(
            qr_code=next_code(SAMPLE_PREFIX),
            requirement=requirement,
            parent=parent,
            sample_type=sample_type,
            sample_format=sample_format or "",
            quantity=quantity or "",
            notes=notes or "",
            is_counter_sample=bool(is_counter_sample),
            status=Sample.Status.EXPECTED,
        )

    logger.info("Sample %s registered under %s", sample.qr_code, requirement.code)
    return sample


def create_derivative(
    *,
    parent_id: int,
    sample_type: Optional[str] = None,
    sample_format: Optional[str] = None,
    quantity: str = "",
    notes: str = "",
    is_counter_sample: bool = False,
) -> Sample:
    """
    Derived or counter-sample: same requirement as the parent, type and
    format taken from the parent unless given.
    """
    parent = fetch(Sample, parent_id, "Parent sample")
    return create_sample(
        requirement_id=parent.requirement_id,
        sample_type=sample_type or parent.sample_type,
        sample_format=sample_format or parent.sample_format,
        quantity=quantity,
        notes=notes,
        is_counter_sample=is_counter_sample,
        parent_id=parent.pk,
    )


# ===============================================================
# Updates and transitions
# ===============================================================
def _ensure_analyses_completed(sample: Sample) -> None:
    open_analyses = sample.analyses.exclude(status=Analysis.Status.COMPLETED).count()
    if open_analyses:
        raise ConflictError(
            f"Sample {sample.qr_code} has {open_analyses} analysis(es) not completed."
        )


def update_sample(*, sample_id: int, data: Dict[str, Any], performed_by=None) -> Sample:
    sample = fetch(Sample, sample_id, "Sample")

    if sample.status == Sample.Status.DELETED:
        raise ConflictError(f"Sample {sample.qr_code} is DELETED and cannot be edited.")

    payload = dict(data)
    target = payload.pop("status", None)
    changes = {k: v for k, v in payload.items() if k in EDITABLE_FIELDS}

    if target and normalize_state(target) != sample.status:
        if normalize_state(target) == Sample.Status.DELETED:
            _ensure_analyses_completed(sample)
        return apply_transition(
            kind="sample",
            instance=sample,
            target=target,
            performed_by=performed_by,
            changes=changes,
        )

    for field, value in changes.items():
        setattr(sample, field, value)
    sample.save()
    return sample


def change_sample_status(
    *,
    sample_id: int,
    status: str,
    performed_by=None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Sample:
    sample = fetch(Sample, sample_id, "Sample")
    if normalize_state(status) == Sample.Status.DELETED:
        _ensure_analyses_completed(sample)
    return apply_transition(
        kind="sample",
        instance=sample,
        target=status,
        performed_by=performed_by,
        overrides=overrides,
    )


def receive_sample(
    *,
    sample_id: int,
    notes: Optional[str] = None,
    received_at=None,
    performed_by=None,
) -> Sample:
    """
    EXPECTED -> RECEIVED, appending ``notes`` to existing notes.

    The requester is notified after commit; delivery problems are logged
    and never undo the reception.
    """
    sample = fetch(
        Sample,
        sample_id,
        "Sample",
        queryset=Sample.objects.select_related("requirement__requester"),
    )

    with transaction.atomic():
        received = apply_transition(
            kind="sample",
            instance=sample,
            target=Sample.Status.RECEIVED,
            performed_by=performed_by,
            overrides={"received_at": received_at} if received_at else None,
            changes={"notes": append_note(sample.notes, notes)},
        )

        requester = sample.requirement.requester
        notify_after_commit(
            SAMPLE_RECEIVED,
            requester.email,
            {
                "name": display_name(requester),
                "qr_code": received.qr_code,
                "requirement_code": sample.requirement.code,
                "received_at": received.received_at.isoformat(),
            },
        )

    return received


def remove_sample(*, sample_id: int, performed_by=None) -> Sample:
    """
    Soft-delete to DELETED. Blocked while any analysis is not COMPLETED.
    """
    sample = fetch(Sample, sample_id, "Sample")
    _ensure_analyses_completed(sample)

    return apply_transition(
        kind="sample",
        instance=sample,
        target=Sample.Status.DELETED,
        performed_by=performed_by,
    )


# ===============================================================
# Queries
# ===============================================================
def get_sample_by_qr(qr_code: str) -> Sample:
    sample = (
        Sample.objects.select_related("requirement__requester", "parent")
        .filter(qr_code=str(qr_code).strip().upper())
        .first()
    )
    if sample is None:
        raise NotFoundError(f"Sample with QR code {qr_code} not found.")
    return sample


def sample_history(*, sample_id: int) -> Dict[str, Any]:
    """Everything that happened to one sample, oldest first."""
    sample = fetch(
        Sample,
        sample_id,
        "Sample",
        queryset=Sample.objects.select_related("requirement", "parent"),
    )

    storage = Storage.objects.filter(sample=sample).first()

    return {
        "sample": sample,
        "qr_events": sample.qr_events.select_related("actor").order_by("occurred_at", "id"),
        "analyses": sample.analyses.select_related("analysis_type", "analyst").order_by("created_at"),
        "storage": storage,
        "transitions": WorkflowTransition.objects.filter(
            kind="sample", object_id=sample.pk
        ).order_by("created_at", "id"),
        "derived_samples": sample.derived_samples.order_by("created_at"),
    }
