# custody/workflows/hooks.py
from __future__ import annotations

import logging
from typing import Any, Callable

from django.db import transaction

logger = logging.getLogger(__name__)


def run_after_commit(callback: Callable[..., Any], *args, **kwargs) -> None:
    """
    Run ``callback`` once the surrounding transaction commits.

    Outside a transaction it runs immediately. Failures are logged and
    never reach the caller; the state change has already committed.
    """

    def _safe():
        try:
            callback(*args, **kwargs)
        except Exception:
            logger.exception(
                "Post-commit hook %s failed",
                getattr(callback, "__name__", repr(callback)),
            )

    transaction.on_commit(_safe)
