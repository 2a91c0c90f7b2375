# custody/services/lookups.py
from __future__ import annotations

from custody.exceptions import NotFoundError


def fetch(model, pk, label: str | None = None, queryset=None):
    """Load ``model`` by primary key or raise NotFoundError."""
    qs = queryset if queryset is not None else model.objects.all()
    try:
        return qs.get(pk=pk)
    except (model.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"{label or model.__name__} {pk} not found.")


def append_note(existing: str, note: str | None) -> str:
    """Append ``note`` on a new line, keeping what was already written."""
    if not note:
        return existing or ""
    return f"{existing}\n{note}" if existing else note
