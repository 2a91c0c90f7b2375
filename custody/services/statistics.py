# custody/services/statistics.py
from __future__ import annotations

from typing import Any, Dict

from django.contrib.auth import get_user_model
from django.db.models import Count

from custody.models import Analysis, Requirement, Sample, Storage

User = get_user_model()


def _count_by(model, field: str):
    rows = model.objects.values(field).annotate(count=Count("id")).order_by(field)
    return [{"status": r[field], "count": r["count"]} for r in rows]


def dashboard_overview() -> Dict[str, Any]:
    return {
        "totals": {
            "requirements": Requirement.objects.count(),
            "samples": Sample.objects.count(),
            "analyses": Analysis.objects.count(),
            "storage": Storage.objects.count(),
            "active_users": User.objects.filter(is_active=True).count(),
        },
        "pending": {
            "requirements": Requirement.objects.filter(status=Requirement.Status.DRAFT).count(),
            "samples": Sample.objects.filter(status=Sample.Status.EXPECTED).count(),
            "analyses": Analysis.objects.filter(status=Analysis.Status.PENDING).count(),
        },
    }


def requirement_statistics() -> Dict[str, Any]:
    return {
        "total": Requirement.objects.count(),
        "by_status": _count_by(Requirement, "status"),
    }


def sample_statistics() -> Dict[str, Any]:
    by_type = Sample.objects.values("sample_type").annotate(count=Count("id")).order_by("sample_type")
    return {
        "total": Sample.objects.count(),
        "by_status": _count_by(Sample, "status"),
        "by_type": [{"type": r["sample_type"], "count": r["count"]} for r in by_type],
    }
