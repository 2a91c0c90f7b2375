# custody/notifications.py
"""
Notification collaborator.

Every message is a plain-text email built from JSON-friendly ``data``
(strings and lists of dicts), so it can be handed to a Celery worker
unchanged. ``notify`` raises on delivery failure; services call
``notify_after_commit``, which never does.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Tuple

from django.conf import settings
from django.core.mail import send_mail

from custody.workflows.hooks import run_after_commit

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "[LabTrack LIMS]"

REQUIREMENT_CREATED = "requirement_created"
SAMPLE_RECEIVED = "sample_received"
ANALYSIS_COMPLETED = "analysis_completed"
STORAGE_EXPIRING = "storage_expiring"


# ===============================================================
# Message builders: data -> (subject, body)
# ===============================================================
def _requirement_created(data: Dict[str, Any]) -> Tuple[str, str]:
    subject = f"{SUBJECT_PREFIX} Requirement created: {data['code']}"
    body = "\n".join(
        [
            f"Dear {data.get('name') or 'user'},",
            "",
            "Your requirement has been created.",
            "",
            f"Requirement code: {data['code']}",
            f"Expected samples: {data.get('expected_quantity', '')}",
        ]
    )
    return subject, body


def _sample_received(data: Dict[str, Any]) -> Tuple[str, str]:
    subject = f"{SUBJECT_PREFIX} Sample received: {data['qr_code']}"
    body = "\n".join(
        [
            f"Dear {data.get('name') or 'user'},",
            "",
            "Your sample has been received at the laboratory.",
            "",
            f"QR code: {data['qr_code']}",
            f"Requirement: {data.get('requirement_code', '')}",
            f"Received at: {data.get('received_at', '')}",
        ]
    )
    return subject, body


def _analysis_completed(data: Dict[str, Any]) -> Tuple[str, str]:
    subject = f"{SUBJECT_PREFIX} Analysis completed: {data['qr_code']}"
    body = "\n".join(
        [
            f"Dear {data.get('name') or 'user'},",
            "",
            "The analysis of your sample has been completed.",
            "",
            f"QR code: {data['qr_code']}",
            f"Analysis type: {data.get('analysis_type', '')}",
            f"Completed at: {data.get('ended_at', '')}",
        ]
    )
    return subject, body


def _storage_expiring(data: Dict[str, Any]) -> Tuple[str, str]:
    subject = f"{SUBJECT_PREFIX} Alert: samples close to expiry"
    lines = [
        f"Dear {data.get('name') or 'user'},",
        "",
        "The following stored samples are close to expiry:",
        "",
    ]
    for item in data.get("samples", []):
        lines.append(
            f"- {item['qr_code']} at {item.get('location', '')} "
            f"(expires {item.get('expires_on', '')})"
        )
    lines.extend(["", "Please take the necessary action."])
    return subject, "\n".join(lines)


BUILDERS: Dict[str, Callable[[Dict[str, Any]], Tuple[str, str]]] = {
    REQUIREMENT_CREATED: _requirement_created,
    SAMPLE_RECEIVED: _sample_received,
    ANALYSIS_COMPLETED: _analysis_completed,
    STORAGE_EXPIRING: _storage_expiring,
}


def build_message(kind: str, data: Dict[str, Any]) -> Tuple[str, str]:
    try:
        builder = BUILDERS[kind]
    except KeyError:
        raise ValueError(f"Unknown notification kind: {kind}")
    return builder(data)


# ===============================================================
# Delivery
# ===============================================================
def notify(kind: str, recipient: str, data: Dict[str, Any]) -> bool:
    """
    Send one notification synchronously.

    Returns False when notifications are disabled. Delivery errors
    propagate to the caller.
    """
    if not getattr(settings, "NOTIFICATIONS_ENABLED", True):
        logger.debug("Notifications disabled; dropping %s to %s", kind, recipient)
        return False

    subject, body = build_message(kind, data)
    send_mail(
        subject=subject,
        message=body,
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
        recipient_list=[recipient],
        fail_silently=False,
    )
    logger.info("Sent %s notification to %s", kind, recipient)
    return True


def _dispatch_async(kind: str, recipient: str, data: Dict[str, Any]) -> None:
    from custody.tasks import send_notification

    send_notification.delay(kind, recipient, data)


def notify_after_commit(kind: str, recipient: str | None, data: Dict[str, Any]) -> None:
    """
    Fire-and-forget: deliver after the current transaction commits.

    Failures are logged by the post-commit hook and never re-raised.
    """
    if not recipient:
        logger.warning("No recipient for %s notification; skipped", kind)
        return

    if getattr(settings, "NOTIFICATIONS_ASYNC", False):
        run_after_commit(_dispatch_async, kind, recipient, data)
    else:
        run_after_commit(notify, kind, recipient, data)


def display_name(user) -> str:
    full = user.get_full_name() if hasattr(user, "get_full_name") else ""
    return full or user.get_username()
