# custody/services/storage.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from custody.exceptions import ConflictError, NotFoundError
from custody.models import Sample, Storage
from custody.services.lookups import fetch

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("location", "shelf", "box", "position", "expires_on", "status")


# ===============================================================
# Placement
# ===============================================================
def create_storage(
    *,
    sample_id: int,
    location: str,
    shelf: str,
    box: str = "",
    position: str = "",
    expires_on=None,
    stored_at=None,
) -> Storage:
    """Place a sample in the bodega. One storage record per sample."""
    sample = fetch(Sample, sample_id, "Sample")

    if Storage.objects.filter(sample=sample).exists():
        raise ConflictError(f"Sample {sample.qr_code} already has a storage record.")

    return Storage.objects.create(
        sample=sample,
        location=location,
        shelf=shelf,
        box=box or "",
        position=position or "",
        expires_on=expires_on,
        stored_at=stored_at or timezone.now(),
        status=Storage.Status.OCCUPIED,
    )


def update_storage(*, storage_id: int, data: Dict[str, Any]) -> Storage:
    storage = fetch(Storage, storage_id, "Storage")
    for field, value in data.items():
        if field in EDITABLE_FIELDS:
            setattr(storage, field, value)
    storage.save()
    return storage


# ===============================================================
# Two-step deletion
# ===============================================================
def request_deletion(*, storage_id: int) -> Storage:
    with transaction.atomic():
        storage = fetch(Storage, storage_id, "Storage", queryset=Storage.objects.select_for_update())

        if storage.deletion_requested:
            raise ConflictError(f"Deletion already requested for storage {storage.pk}.")

        storage.deletion_requested = True
        storage.save(update_fields=["deletion_requested", "updated_at"])

    logger.info("Deletion requested for storage %s", storage.pk)
    return storage


def approve_deletion(*, storage_id: int) -> Storage:
    """Requires a prior request. Approval frees the location (AVAILABLE)."""
    with transaction.atomic():
        storage = fetch(Storage, storage_id, "Storage", queryset=Storage.objects.select_for_update())

        if not storage.deletion_requested:
            raise ConflictError(f"Deletion was not requested for storage {storage.pk}.")
        if storage.deletion_approved:
            raise ConflictError(f"Deletion already approved for storage {storage.pk}.")

        storage.deletion_approved = True
        storage.status = Storage.Status.AVAILABLE
        storage.save(update_fields=["deletion_approved", "status", "updated_at"])

    logger.info("Deletion approved for storage %s", storage.pk)
    return storage


def remove_storage(*, storage_id: int) -> None:
    with transaction.atomic():
        storage = fetch(Storage, storage_id, "Storage", queryset=Storage.objects.select_for_update())

        if not storage.deletion_approved:
            raise ConflictError(
                f"Storage {storage.pk} cannot be removed before deletion is requested and approved."
            )

        storage.delete()

    logger.info("Storage %s removed", storage_id)


# ===============================================================
# Queries
# ===============================================================
def find_by_sample(sample_id: int) -> Storage:
    storage = Storage.objects.select_related("sample").filter(sample_id=sample_id).first()
    if storage is None:
        raise NotFoundError(f"No storage record for sample {sample_id}.")
    return storage


def expiring_soon(days: Optional[int] = None, now=None):
    """OCCUPIED records whose expiry falls between now and now + days."""
    if days is None:
        days = getattr(settings, "STORAGE_EXPIRING_DEFAULT_DAYS", 30)
    now = now or timezone.now()

    return (
        Storage.objects.filter(
            status=Storage.Status.OCCUPIED,
            expires_on__gte=now,
            expires_on__lte=now + timedelta(days=days),
        )
        .select_related("sample__requirement__requester")
        .order_by("expires_on")
    )


def shelf_locations(shelf: str) -> Dict[str, Any]:
    rows = list(
        Storage.objects.filter(shelf=shelf)
        .order_by("location", "box", "position")
        .values("id", "location", "box", "position", "status")
    )
    return {
        "shelf": shelf,
        "total": len(rows),
        "available": sum(1 for r in rows if r["status"] == Storage.Status.AVAILABLE),
        "occupied": sum(1 for r in rows if r["status"] == Storage.Status.OCCUPIED),
        "locations": rows,
    }


def storage_statistics() -> Dict[str, Any]:
    by_status = Storage.objects.values("status").annotate(count=Count("id")).order_by("status")
    by_location = (
        Storage.objects.values("location")
        .annotate(count=Count("id"))
        .order_by("-count", "location")
    )
    return {
        "total": Storage.objects.count(),
        "by_status": [{"status": r["status"], "count": r["count"]} for r in by_status],
        "pending_deletion": Storage.objects.filter(
            deletion_requested=True,
            deletion_approved=False,
        ).count(),
        "by_location": [{"location": r["location"], "count": r["count"]} for r in by_location],
    }
