# custody/workflows/__init__.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set

from custody.exceptions import InvalidTransitionError, ValidationError


# ===============================================================
# Canonical workflow definitions
# ===============================================================

REQUIREMENT_STATES: Set[str] = {
    "DRAFT",
    "SUBMITTED",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
}

REQUIREMENT_TRANSITIONS: Dict[str, Set[str]] = {
    "DRAFT": {"SUBMITTED", "CANCELLED"},
    "SUBMITTED": {"IN_PROGRESS", "CANCELLED"},
    "IN_PROGRESS": {"COMPLETED", "CANCELLED"},
    "COMPLETED": set(),
    "CANCELLED": set(),
}

SAMPLE_STATES: Set[str] = {
    "EXPECTED",
    "RECEIVED",
    "IN_ANALYSIS",
    "ANALYSIS_COMPLETE",
    "STORED",
    "DELETED",
}

SAMPLE_TRANSITIONS: Dict[str, Set[str]] = {
    "EXPECTED": {"RECEIVED", "DELETED"},
    "RECEIVED": {"IN_ANALYSIS", "STORED", "DELETED"},
    "IN_ANALYSIS": {"ANALYSIS_COMPLETE", "DELETED"},
    "ANALYSIS_COMPLETE": {"STORED", "DELETED"},
    "STORED": {"DELETED"},
    "DELETED": set(),
}

ANALYSIS_STATES: Set[str] = {
    "PENDING",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
}

ANALYSIS_TRANSITIONS: Dict[str, Set[str]] = {
    "PENDING": {"IN_PROGRESS", "CANCELLED"},
    "IN_PROGRESS": {"COMPLETED", "CANCELLED"},
    "COMPLETED": set(),
    "CANCELLED": set(),
}

WORKFLOW_KINDS = ("requirement", "sample", "analysis")

_TRANSITIONS: Dict[str, Dict[str, Set[str]]] = {
    "requirement": REQUIREMENT_TRANSITIONS,
    "sample": SAMPLE_TRANSITIONS,
    "analysis": ANALYSIS_TRANSITIONS,
}

_STATES: Dict[str, Set[str]] = {
    "requirement": REQUIREMENT_STATES,
    "sample": SAMPLE_STATES,
    "analysis": ANALYSIS_STATES,
}


# ===============================================================
# Entry stamps: target state -> timestamp field set on entry
# ===============================================================

STAMP_FIELDS: Dict[str, Dict[str, str]] = {
    "requirement": {},
    "sample": {
        "RECEIVED": "received_at",
        "IN_ANALYSIS": "analysis_started_at",
        "ANALYSIS_COMPLETE": "analysis_ended_at",
    },
    "analysis": {
        "IN_PROGRESS": "started_at",
        "COMPLETED": "ended_at",
    },
}


def normalize_state(value: Any) -> str:
    return str(value or "").strip().upper()


def normalize_kind(value: Any) -> str:
    return str(value or "").strip().lower()


def _transitions_for_kind(kind: str) -> Dict[str, Set[str]]:
    return _TRANSITIONS.get(normalize_kind(kind), {})


def _states_for_kind(kind: str) -> Set[str]:
    return _STATES.get(normalize_kind(kind), set())


# ===============================================================
# Public workflow API
# ===============================================================

def can_transition(kind: str, current: str, target: str) -> bool:
    """True when target is an allowed successor of current for kind."""
    trans = _transitions_for_kind(kind)
    return normalize_state(target) in trans.get(normalize_state(current), set())


def validate_transition(kind: str, current: str, target: str) -> None:
    """
    Raises InvalidTransitionError if current -> target is not in the table.

    Unknown kinds raise ValueError; that is a programming error, not a
    client error.
    """
    k = normalize_kind(kind)
    cur = normalize_state(current)
    tgt = normalize_state(target)

    states = _states_for_kind(k)
    if not states:
        raise ValueError(f"Unknown workflow kind: {kind}")

    if tgt not in states:
        raise InvalidTransitionError(
            k, cur, tgt, message=f"Unknown {k} state: {tgt}"
        )

    if not can_transition(k, cur, tgt):
        raise InvalidTransitionError(k, cur, tgt)


def allowed_next_states(kind: str, current: str) -> List[str]:
    trans = _transitions_for_kind(kind)
    return sorted(trans.get(normalize_state(current), set()))


def is_terminal(kind: str, state: str) -> bool:
    trans = _transitions_for_kind(kind)
    return not trans.get(normalize_state(state), set())


def allowed_transitions(kind: str) -> Dict[str, List[str]]:
    trans = _transitions_for_kind(kind)
    return {state: sorted(nxt) for state, nxt in trans.items()}


def workflow_definition(kind: Optional[str] = None) -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for clients.
    """
    def _one(k: str) -> Dict[str, Any]:
        kk = normalize_kind(k)
        if kk not in _TRANSITIONS:
            raise ValueError(f"Unsupported workflow kind: {k}")
        return {
            "kind": kk,
            "states": sorted(_STATES[kk]),
            "transitions": allowed_transitions(kk),
            "terminal": sorted(s for s in _STATES[kk] if is_terminal(kk, s)),
            "stamps": dict(STAMP_FIELDS[kk]),
        }

    if kind is None:
        return {k: _one(k) for k in WORKFLOW_KINDS}
    return _one(kind)


def apply_entry_stamps(
    instance: Any,
    kind: str,
    target: str,
    now: datetime,
    overrides: Optional[Mapping[str, Optional[datetime]]] = None,
) -> List[str]:
    """
    Stamp timestamp fields for entering ``target``.

    Rules:
      - an explicit override for any stamp field of this kind always wins
      - otherwise the field for ``target`` is set to ``now`` only if unset

    Returns the list of fields written.
    """
    k = normalize_kind(kind)
    stamps = STAMP_FIELDS.get(k, {})
    overrides = dict(overrides or {})

    unknown = set(overrides) - set(stamps.values())
    if unknown:
        raise ValidationError(
            {field: f"Not a {k} timestamp field." for field in sorted(unknown)}
        )

    written: List[str] = []

    for field, value in overrides.items():
        if value is None:
            continue
        setattr(instance, field, value)
        written.append(field)

    field = stamps.get(normalize_state(target))
    if field and field not in written and getattr(instance, field, None) is None:
        setattr(instance, field, now)
        written.append(field)

    return written


__all__ = [
    "REQUIREMENT_STATES",
    "REQUIREMENT_TRANSITIONS",
    "SAMPLE_STATES",
    "SAMPLE_TRANSITIONS",
    "ANALYSIS_STATES",
    "ANALYSIS_TRANSITIONS",
    "STAMP_FIELDS",
    "WORKFLOW_KINDS",
    "normalize_state",
    "normalize_kind",
    "can_transition",
    "validate_transition",
    "allowed_next_states",
    "is_terminal",
    "allowed_transitions",
    "workflow_definition",
    "apply_entry_stamps",
]
