# custody/services/codes.py
from __future__ import annotations

import re
from typing import Optional, Tuple

from django.db import transaction
from django.utils import timezone

from custody.models import CodeSequence, Requirement, Sample


REQUIREMENT_PREFIX = "REQ"
SAMPLE_PREFIX = "QR"
COUNTER_WIDTH = 6

# prefix -> (model, code field) used to seed a fresh sequence
_ISSUED_CODES = {
    REQUIREMENT_PREFIX: (Requirement, "code"),
    SAMPLE_PREFIX: (Sample, "qr_code"),
}

_CODE_RE = re.compile(r"^([A-Z]+)-(\d{4})-(\d{%d,})$" % COUNTER_WIDTH)


def format_code(prefix: str, year: int, counter: int) -> str:
    return f"{prefix}-{year}-{counter:0{COUNTER_WIDTH}d}"


def parse_code(code: str) -> Optional[Tuple[str, int, int]]:
    """Return (prefix, year, counter) or None if ``code`` is not well formed."""
    match = _CODE_RE.match(str(code or "").strip())
    if not match:
        return None
    prefix, year, counter = match.groups()
    return prefix, int(year), int(counter)


def _highest_issued(prefix: str, year: int) -> int:
    entry = _ISSUED_CODES.get(prefix)
    if entry is None:
        return 0

    model, field = entry
    last = (
        model.objects.filter(**{f"{field}__startswith": f"{prefix}-{year}-"})
        .order_by(f"-{field}")
        .values_list(field, flat=True)
        .first()
    )
    parsed = parse_code(last) if last else None
    return parsed[2] if parsed else 0


def next_code(prefix: str, year: Optional[int] = None) -> str:
    """
    Issue the next ``PREFIX-YYYY-NNNNNN`` code.

    The per-(prefix, year) counter row is locked for the duration of the
    transaction, so concurrent callers serialize instead of reading the
    same last code. Gaps are tolerated; codes are never reused.
    """
    year = year or timezone.localdate().year

    with transaction.atomic():
        seq, _ = CodeSequence.objects.select_for_update().get_or_create(
            prefix=prefix,
            year=year,
        )
        seq.last_value = max(seq.last_value, _highest_issued(prefix, year)) + 1
        seq.save(update_fields=["last_value"])

    return format_code(prefix, year, seq.last_value)
