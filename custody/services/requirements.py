# custody/services/requirements.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from django.contrib.auth import get_user_model
from django.db import transaction

from custody.exceptions import ConflictError, ForbiddenError, NotFoundError
from custody.models import Plant, Requirement
from custody.notifications import REQUIREMENT_CREATED, display_name, notify_after_commit
from custody.services.codes import REQUIREMENT_PREFIX, next_code
from custody.services.lookups import fetch
from custody.workflows import normalize_state
from custody.workflows.transition_service import apply_transition

logger = logging.getLogger(__name__)

User = get_user_model()

EDITABLE_FIELDS = ("sample_type", "expected_quantity", "description", "attachments", "plant_id")


def create_requirement(
    *,
    requester_id: int,
    sample_type: str,
    expected_quantity: int,
    description: str = "",
    attachments: Optional[List[Any]] = None,
    plant_id: Optional[int] = None,
) -> Requirement:
    """
    Create a requirement in DRAFT and notify the requester once committed.
    """
    requester = fetch(User, requester_id, "Requester")
    plant = fetch(Plant, plant_id, "Plant") if plant_id else None

    with transaction.atomic():
        requirement = Requirement.objects.create(
            code=next_code(REQUIREMENT_PREFIX),
            requester=requester,
            plant=plant,
            sample_type=sample_type,
            expected_quantity=expected_quantity,
            description=description or "",
            attachments=list(attachments or []),
            status=Requirement.Status.DRAFT,
        )

        notify_after_commit(
            REQUIREMENT_CREATED,
            requester.email,
            {
                "name": display_name(requester),
                "code": requirement.code,
                "expected_quantity": str(requirement.expected_quantity),
            },
        )

    logger.info("Requirement %s created for user %s", requirement.code, requester.pk)
    return requirement


def update_requirement(
    *,
    requirement_id: int,
    data: Dict[str, Any],
    performed_by=None,
) -> Requirement:
    """
    Non-status fields are editable only in DRAFT. A payload holding only
    ``status`` is accepted in any state and goes through the state machine.
    Repeating the current status is a plain edit.
    """
    requirement = fetch(Requirement, requirement_id, "Requirement")

    payload = dict(data)
    target = payload.pop("status", None)
    changes = {k: v for k, v in payload.items() if k in EDITABLE_FIELDS}

    if requirement.status != Requirement.Status.DRAFT and changes:
        raise ForbiddenError(
            f"Requirement {requirement.code} is {requirement.status}; "
            "only DRAFT requirements can be edited."
        )

    if changes.get("plant_id"):
        fetch(Plant, changes["plant_id"], "Plant")

    if target and normalize_state(target) != requirement.status:
        if normalize_state(target) == Requirement.Status.CANCELLED:
            _ensure_no_samples(requirement)
        return apply_transition(
            kind="requirement",
            instance=requirement,
            target=target,
            performed_by=performed_by,
            changes=changes,
        )

    for field, value in changes.items():
        setattr(requirement, field, value)
    requirement.save()
    return requirement


def _ensure_no_samples(requirement: Requirement) -> None:
    sample_count = requirement.samples.count()
    if sample_count:
        raise ConflictError(
            f"Requirement {requirement.code} has {sample_count} sample(s) and cannot be cancelled."
        )


def change_requirement_status(*, requirement_id: int, status: str, performed_by=None) -> Requirement:
    requirement = fetch(Requirement, requirement_id, "Requirement")
    if normalize_state(status) == Requirement.Status.CANCELLED:
        _ensure_no_samples(requirement)
    return apply_transition(
        kind="requirement",
        instance=requirement,
        target=status,
        performed_by=performed_by,
    )


def remove_requirement(*, requirement_id: int, performed_by=None) -> Requirement:
    """
    Soft-delete: force CANCELLED. Blocked while any sample references it.
    """
    requirement = fetch(Requirement, requirement_id, "Requirement")
    _ensure_no_samples(requirement)

    if requirement.status == Requirement.Status.CANCELLED:
        return requirement

    return apply_transition(
        kind="requirement",
        instance=requirement,
        target=Requirement.Status.CANCELLED,
        performed_by=performed_by,
        force=True,
    )


def get_requirement_by_code(code: str) -> Requirement:
    requirement = (
        Requirement.objects.select_related("requester", "plant")
        .filter(code=str(code).strip().upper())
        .first()
    )
    if requirement is None:
        raise NotFoundError(f"Requirement with code {code} not found.")
    return requirement


def requester_history(user):
    return (
        Requirement.objects.filter(requester=user)
        .select_related("plant")
        .prefetch_related("samples")
        .order_by("-created_at")
    )
