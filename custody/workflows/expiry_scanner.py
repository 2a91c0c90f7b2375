# custody/workflows/expiry_scanner.py
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from django.conf import settings
from django.utils import timezone

from custody.models import Storage
from custody.notifications import STORAGE_EXPIRING, display_name, notify
from custody.services.storage import expiring_soon

logger = logging.getLogger(__name__)


def _group_by_requester(records) -> "OrderedDict[str, List[Storage]]":
    grouped: "OrderedDict[str, List[Storage]]" = OrderedDict()
    for storage in records:
        requester = storage.sample.requirement.requester
        if not requester.email:
            logger.warning(
                "Requester %s has no email; skipping storage %s",
                requester.pk,
                storage.pk,
            )
            continue
        grouped.setdefault(requester.email, []).append(storage)
    return grouped


def sweep_expiring_storage(*, days: Optional[int] = None, now=None) -> Dict[str, int]:
    """
    Send one consolidated expiry notice per requester.

    Each requester is handled independently: a failed delivery is logged
    and the sweep moves on.

    Returns:
        dict: expiring, requesters, notified, failed
    """
    if days is None:
        days = getattr(settings, "STORAGE_EXPIRY_LOOKAHEAD_DAYS", 7)
    now = now or timezone.now()

    records = list(expiring_soon(days=days, now=now))
    summary = {"expiring": len(records), "requesters": 0, "notified": 0, "failed": 0}

    if not records:
        logger.info("No stored samples expiring within %s day(s)", days)
        return summary

    grouped = _group_by_requester(records)
    summary["requesters"] = len(grouped)

    for email, storages in grouped.items():
        requester = storages[0].sample.requirement.requester
        data = {
            "name": display_name(requester),
            "samples": [
                {
                    "qr_code": s.sample.qr_code,
                    "location": s.location,
                    "expires_on": s.expires_on.date().isoformat(),
                }
                for s in storages
            ],
        }
        try:
            sent = notify(STORAGE_EXPIRING, email, data)
        except Exception:
            summary["failed"] += 1
            logger.exception("Expiry notice to %s failed", email)
            continue

        if not sent:
            continue

        summary["notified"] += 1
        logger.info("Expiry notice sent to %s (%s sample(s))", email, len(storages))

    logger.info(
        "Expiry sweep done: %s expiring, %s requester(s), %s notified, %s failed",
        summary["expiring"],
        summary["requesters"],
        summary["notified"],
        summary["failed"],
    )
    return summary
