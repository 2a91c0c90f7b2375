# custody/services/qr_events.py
from __future__ import annotations

from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.db.models import Count

from custody.exceptions import ValidationError
from custody.models import QREvent, Sample
from custody.services.lookups import fetch
from custody.services.samples import get_sample_by_qr

User = get_user_model()

RECENT_DEFAULT = 50
RECENT_MAX = 200
LISTING_LIMIT = 100


def _events():
    return QREvent.objects.select_related("sample", "actor")


def record_event(
    *,
    qr_code: str,
    event_type: str,
    actor_id: int,
    location: str = "",
    metadata: Optional[Dict[str, Any]] = None,
) -> QREvent:
    """Append one event to a sample's log, resolved by its QR code."""
    sample = get_sample_by_qr(qr_code)
    actor = fetch(User, actor_id, "User")

    event_type = str(event_type or "").strip().upper()
    if event_type not in QREvent.EventType.values:
        raise ValidationError({"event_type": f"Unknown event type: {event_type}"})

    return QREvent.objects.create(
        sample=sample,
        event_type=event_type,
        actor=actor,
        location=location or "",
        metadata=metadata or {},
    )


def events_for_qr(qr_code: str) -> Dict[str, Any]:
    sample = get_sample_by_qr(qr_code)
    events = _events().filter(sample=sample).order_by("-occurred_at", "-id")
    return {"sample": sample, "events": events}


def sample_timeline(sample_id: int):
    sample = fetch(Sample, sample_id, "Sample")
    return {
        "sample": sample,
        "events": _events().filter(sample=sample).order_by("occurred_at", "id"),
    }


def events_by_type(event_type: str):
    return _events().filter(event_type=str(event_type).strip().upper())[:LISTING_LIMIT]


def recent_events(limit: Optional[int] = None):
    limit = RECENT_DEFAULT if limit is None else max(1, min(int(limit), RECENT_MAX))
    return _events()[:limit]


def search_by_location(location: str):
    return _events().filter(location__icontains=location)[:LISTING_LIMIT]


def event_statistics() -> Dict[str, Any]:
    counts = QREvent.objects.values("event_type").annotate(count=Count("id")).order_by("event_type")
    return {
        "total": QREvent.objects.count(),
        "by_type": [{"type": r["event_type"], "count": r["count"]} for r in counts],
    }
