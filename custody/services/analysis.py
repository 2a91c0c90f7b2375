# custody/services/analysis.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from custody.exceptions import ConflictError, ValidationError
from custody.models import Analysis, AnalysisType, Sample
from custody.notifications import ANALYSIS_COMPLETED, display_name, notify_after_commit
from custody.services.lookups import append_note, fetch
from custody.workflows import normalize_state
from custody.workflows.transition_service import apply_transition

logger = logging.getLogger(__name__)

User = get_user_model()

CANCELLATION_LABEL = "Cancellation reason"


def _with_owner():
    return Analysis.objects.select_related(
        "analysis_type", "sample__requirement__requester", "analyst"
    )


def create_analysis(
    *,
    sample_id: int,
    analysis_type_id: int,
    analyst_id: Optional[int] = None,
    notes: str = "",
) -> Analysis:
    sample = fetch(Sample, sample_id, "Sample")
    analysis_type = fetch(AnalysisType, analysis_type_id, "Analysis type")

    if not analysis_type.is_active:
        raise ValidationError({"analysis_type": f"Analysis type '{analysis_type.name}' is not active."})

    analyst = fetch(User, analyst_id, "Analyst") if analyst_id else None

    return Analysis.objects.create(
        sample=sample,
        analysis_type=analysis_type,
        analyst=analyst,
        notes=notes or "",
        status=Analysis.Status.PENDING,
    )


def update_analysis(*, analysis_id: int, data: Dict[str, Any], performed_by=None) -> Analysis:
    """
    Generic update. ``status`` goes through the state machine; explicit
    ``started_at``/``ended_at`` values override the automatic stamps.
    """
    analysis = fetch(Analysis, analysis_id, "Analysis")
    payload = dict(data)

    target = payload.pop("status", None)
    overrides = {}
    for field in ("started_at", "ended_at"):
        value = payload.pop(field, None)
        if value is not None:
            overrides[field] = value

    changes: Dict[str, Any] = {}
    if "analyst_id" in payload:
        analyst_id = payload["analyst_id"]
        changes["analyst"] = fetch(User, analyst_id, "Analyst") if analyst_id else None
    for field in ("notes", "results", "report_url"):
        if field in payload and payload[field] is not None:
            changes[field] = payload[field]

    if target and normalize_state(target) != analysis.status:
        return apply_transition(
            kind="analysis",
            instance=analysis,
            target=target,
            performed_by=performed_by,
            overrides=overrides,
            changes=changes,
        )

    for field, value in {**changes, **overrides}.items():
        setattr(analysis, field, value)
    analysis.save()
    return analysis


def start_analysis(*, analysis_id: int, analyst_id: Optional[int] = None, performed_by=None) -> Analysis:
    analysis = fetch(Analysis, analysis_id, "Analysis")
    changes = {}
    if analyst_id:
        changes["analyst"] = fetch(User, analyst_id, "Analyst")

    return apply_transition(
        kind="analysis",
        instance=analysis,
        target=Analysis.Status.IN_PROGRESS,
        performed_by=performed_by,
        changes=changes,
    )


def complete_analysis(
    *,
    analysis_id: int,
    results: Optional[Dict[str, Any]] = None,
    report_url: Optional[str] = None,
    notes: Optional[str] = None,
    ended_at=None,
    performed_by=None,
) -> Analysis:
    """
    IN_PROGRESS -> COMPLETED, then notify the owning requirement's requester.
    """
    analysis = fetch(Analysis, analysis_id, "Analysis", queryset=_with_owner())

    changes: Dict[str, Any] = {}
    if results is not None:
        changes["results"] = results
    if report_url is not None:
        changes["report_url"] = report_url
    if notes:
        changes["notes"] = notes

    with transaction.atomic():
        completed = apply_transition(
            kind="analysis",
            instance=analysis,
            target=Analysis.Status.COMPLETED,
            performed_by=performed_by,
            overrides={"ended_at": ended_at} if ended_at else None,
            changes=changes,
        )

        requester = analysis.sample.requirement.requester
        notify_after_commit(
            ANALYSIS_COMPLETED,
            requester.email,
            {
                "name": display_name(requester),
                "qr_code": analysis.sample.qr_code,
                "analysis_type": analysis.analysis_type.name,
                "ended_at": completed.ended_at.isoformat(),
            },
        )

    return completed


def cancel_analysis(*, analysis_id: int, reason: Optional[str] = None, performed_by=None) -> Analysis:
    analysis = fetch(Analysis, analysis_id, "Analysis")

    changes = {}
    if reason:
        changes["notes"] = append_note(analysis.notes, f"{CANCELLATION_LABEL}: {reason}")

    return apply_transition(
        kind="analysis",
        instance=analysis,
        target=Analysis.Status.CANCELLED,
        performed_by=performed_by,
        changes=changes,
    )


def upload_results(
    *,
    analysis_id: int,
    results: Optional[Dict[str, Any]] = None,
    report_url: Optional[str] = None,
    notes: Optional[str] = None,
) -> Analysis:
    """
    Merge results into a non-cancelled analysis without touching status.
    """
    analysis = fetch(Analysis, analysis_id, "Analysis")

    if analysis.status == Analysis.Status.CANCELLED:
        raise ConflictError(f"Analysis {analysis.pk} is CANCELLED; results cannot be uploaded.")

    fields = ["updated_at"]
    if results:
        analysis.results = {**(analysis.results or {}), **results}
        fields.append("results")
    if report_url:
        analysis.report_url = report_url
        fields.append("report_url")
    if notes:
        analysis.notes = notes
        fields.append("notes")

    analysis.save(update_fields=fields)
    return analysis


# ===============================================================
# Queries
# ===============================================================
def analyses_for_sample(sample_id: int):
    fetch(Sample, sample_id, "Sample")
    return (
        Analysis.objects.filter(sample_id=sample_id)
        .select_related("analysis_type", "analyst")
        .order_by("-created_at")
    )


def analyses_by_status(status: str):
    return (
        Analysis.objects.filter(status=str(status).strip().upper())
        .select_related("analysis_type", "sample", "analyst")
        .order_by("-created_at")
    )


def analysis_statistics() -> Dict[str, Any]:
    by_status = (
        Analysis.objects.values("status")
        .annotate(count=Count("id"))
        .order_by("status")
    )
    by_type = (
        Analysis.objects.values("analysis_type_id", "analysis_type__name")
        .annotate(count=Count("id"))
        .order_by("-count", "analysis_type__name")[:10]
    )
    today_start = timezone.localtime().replace(hour=0, minute=0, second=0, microsecond=0)

    return {
        "total": Analysis.objects.count(),
        "by_status": [{"status": row["status"], "count": row["count"]} for row in by_status],
        "by_type": [
            {
                "analysis_type_id": row["analysis_type_id"],
                "analysis_type_name": row["analysis_type__name"],
                "count": row["count"],
            }
            for row in by_type
        ],
        "in_progress": Analysis.objects.filter(status=Analysis.Status.IN_PROGRESS).count(),
        "pending": Analysis.objects.filter(status=Analysis.Status.PENDING).count(),
        "completed_today": Analysis.objects.filter(
            status=Analysis.Status.COMPLETED,
            ended_at__gte=today_start,
        ).count(),
    }
