# custody/tests/test_workflow_tables.py

from datetime import datetime, timezone as dt_timezone
from types import SimpleNamespace

import pytest

from custody.exceptions import InvalidTransitionError, ValidationError
from custody.workflows import (
    allowed_next_states,
    apply_entry_stamps,
    can_transition,
    is_terminal,
    validate_transition,
    workflow_definition,
)


EXPECTED_TABLES = {
    "requirement": {
        "DRAFT": {"SUBMITTED", "CANCELLED"},
        "SUBMITTED": {"IN_PROGRESS", "CANCELLED"},
        "IN_PROGRESS": {"COMPLETED", "CANCELLED"},
        "COMPLETED": set(),
        "CANCELLED": set(),
    },
    "sample": {
        "EXPECTED": {"RECEIVED", "DELETED"},
        "RECEIVED": {"IN_ANALYSIS", "STORED", "DELETED"},
        "IN_ANALYSIS": {"ANALYSIS_COMPLETE", "DELETED"},
        "ANALYSIS_COMPLETE": {"STORED", "DELETED"},
        "STORED": {"DELETED"},
        "DELETED": set(),
    },
    "analysis": {
        "PENDING": {"IN_PROGRESS", "CANCELLED"},
        "IN_PROGRESS": {"COMPLETED", "CANCELLED"},
        "COMPLETED": set(),
        "CANCELLED": set(),
    },
}


def _all_pairs():
    for kind, table in EXPECTED_TABLES.items():
        for current in table:
            for target in table:
                yield kind, current, target, target in table[current]


@pytest.mark.parametrize("kind,current,target,allowed", list(_all_pairs()))
def test_transition_table_is_exact(kind, current, target, allowed):
    assert can_transition(kind, current, target) is allowed

    if allowed:
        validate_transition(kind, current, target)
    else:
        with pytest.raises(InvalidTransitionError):
            validate_transition(kind, current, target)


def test_rejection_reports_current_and_target():
    with pytest.raises(InvalidTransitionError) as exc:
        validate_transition("requirement", "IN_PROGRESS", "DRAFT")

    detail = exc.value.detail
    assert detail["current"] == "IN_PROGRESS"
    assert detail["target"] == "DRAFT"
    assert detail["kind"] == "requirement"
    assert detail["status"] == "Invalid requirement transition: IN_PROGRESS -> DRAFT"
    assert exc.value.status_code == 400


def test_unknown_target_state_is_named():
    with pytest.raises(InvalidTransitionError) as exc:
        validate_transition("sample", "expected", "lost")

    assert exc.value.detail["status"] == "Unknown sample state: LOST"
    assert exc.value.detail["current"] == "EXPECTED"


def test_unknown_kind_is_programming_error():
    with pytest.raises(ValueError):
        validate_transition("invoice", "DRAFT", "SUBMITTED")


def test_lookups_normalize_case_and_whitespace():
    assert can_transition(" Sample ", "received", "stored ") is True
    assert allowed_next_states("sample", "received") == ["DELETED", "IN_ANALYSIS", "STORED"]


def test_terminal_states():
    assert is_terminal("requirement", "COMPLETED")
    assert is_terminal("requirement", "CANCELLED")
    assert is_terminal("sample", "DELETED")
    assert not is_terminal("sample", "STORED")
    assert is_terminal("analysis", "CANCELLED")
    assert not is_terminal("analysis", "PENDING")


def test_workflow_definition_is_serializable_shape():
    definition = workflow_definition("sample")

    assert definition["kind"] == "sample"
    assert definition["terminal"] == ["DELETED"]
    assert definition["transitions"]["STORED"] == ["DELETED"]
    assert definition["stamps"]["RECEIVED"] == "received_at"

    everything = workflow_definition()
    assert set(everything) == {"requirement", "sample", "analysis"}


def test_workflow_definition_rejects_unknown_kind():
    with pytest.raises(ValueError):
        workflow_definition("invoice")


# ---------------------------------------------------------
# Entry stamps
# ---------------------------------------------------------
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)
EARLIER = datetime(2026, 2, 1, 9, 30, tzinfo=dt_timezone.utc)
LATER = datetime(2026, 3, 5, 8, 0, tzinfo=dt_timezone.utc)


def _sample_like(**values):
    base = {"received_at": None, "analysis_started_at": None, "analysis_ended_at": None}
    base.update(values)
    return SimpleNamespace(**base)


def test_stamp_set_on_first_entry():
    obj = _sample_like()

    written = apply_entry_stamps(obj, "sample", "RECEIVED", NOW)

    assert written == ["received_at"]
    assert obj.received_at == NOW


def test_stamp_first_write_wins():
    obj = _sample_like(received_at=EARLIER)

    written = apply_entry_stamps(obj, "sample", "RECEIVED", NOW)

    assert written == []
    assert obj.received_at == EARLIER


def test_explicit_override_always_wins():
    obj = _sample_like(received_at=EARLIER)

    written = apply_entry_stamps(obj, "sample", "RECEIVED", NOW, {"received_at": LATER})

    assert written == ["received_at"]
    assert obj.received_at == LATER


def test_none_override_is_ignored():
    obj = _sample_like()

    apply_entry_stamps(obj, "sample", "RECEIVED", NOW, {"received_at": None})

    assert obj.received_at == NOW


def test_override_for_other_field_of_same_kind():
    obj = SimpleNamespace(started_at=None, ended_at=None)

    written = apply_entry_stamps(obj, "analysis", "COMPLETED", NOW, {"started_at": EARLIER})

    assert obj.started_at == EARLIER
    assert obj.ended_at == NOW
    assert sorted(written) == ["ended_at", "started_at"]


def test_unknown_override_field_rejected():
    obj = _sample_like()

    with pytest.raises(ValidationError):
        apply_entry_stamps(obj, "sample", "RECEIVED", NOW, {"ended_at": LATER})


def test_states_without_stamp_write_nothing():
    obj = _sample_like()

    assert apply_entry_stamps(obj, "sample", "STORED", NOW) == []
    assert apply_entry_stamps(SimpleNamespace(), "requirement", "SUBMITTED", NOW) == []
