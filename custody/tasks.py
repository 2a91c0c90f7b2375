# custody/tasks.py
from __future__ import annotations

from celery import shared_task

from custody.notifications import notify
from custody.workflows.expiry_scanner import sweep_expiring_storage as run_expiry_sweep


@shared_task
def sweep_expiring_storage(days: int | None = None) -> dict:
    return run_expiry_sweep(days=days)


@shared_task
def send_notification(kind: str, recipient: str, data: dict) -> bool:
    return notify(kind, recipient, data)
