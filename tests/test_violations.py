"""Tests for anti-cheating violation logging and warning counts."""

import pytest

from exam_engine.errors import AttemptTerminal, BadRequest, NotFound
from exam_engine.models import AttemptStatus, ViolationType
from exam_engine.services import attempt_service


@pytest.fixture
def attempt(session, student_id, mixed_exam):
    return attempt_service.create_attempt(session, mixed_exam.exam_id, student_id)


def test_third_violation_recommends_auto_submit(session, attempt):
    first = attempt_service.add_violation(session, attempt.id, "tab_switch", "Switched to another tab")
    assert first["warning_count"] == 1
    assert first["remaining_warnings"] == 2
    assert first["should_auto_submit"] is False

    attempt_service.add_violation(session, attempt.id, "right_click", "Right click on question")
    third = attempt_service.add_violation(
        session, attempt.id, ViolationType.DEVTOOLS_ACCESS.value, "Opened devtools", {"key": "F12"}
    )

    assert third["warning_count"] == 3
    assert third["remaining_warnings"] == 0
    assert third["should_auto_submit"] is True
    assert [v["type"] for v in third["violations"]] == ["tab_switch", "right_click", "devtools_access"]
    assert third["violations"][2]["metadata"] == {"key": "F12"}

    # Recording violations never submits the attempt on its own
    assert attempt_service.get_attempt(session, attempt.id).status == AttemptStatus.IN_PROGRESS


def test_violations_are_persisted(session, attempt):
    attempt_service.add_violation(session, attempt.id, "page_refresh", "Reloaded the page")

    warnings = attempt_service.get_cheating_warnings(session, attempt.id)
    assert warnings["attempt_id"] == attempt.id
    assert warnings["warning_count"] == 1
    assert warnings["max_warnings"] == 3
    assert len(warnings["violations"]) == 1
    assert warnings["violations"][0]["description"] == "Reloaded the page"
    assert warnings["violations"][0]["timestamp"]


def test_description_is_sanitized(session, attempt):
    payload = attempt_service.add_violation(
        session, attempt.id, "keyboard_shortcut", "<b>Pressed</b> <i>Ctrl+C</i>"
    )
    assert payload["violations"][0]["description"] == "Pressed Ctrl+C"


def test_markup_only_description_is_rejected(session, attempt):
    with pytest.raises(BadRequest):
        attempt_service.add_violation(session, attempt.id, "tab_switch", "<b></b>")


def test_unknown_type_is_rejected(session, attempt):
    with pytest.raises(BadRequest, match="Unknown violation type"):
        attempt_service.add_violation(session, attempt.id, "screenshot", "Took a screenshot")


def test_metadata_must_be_an_object(session, attempt):
    with pytest.raises(BadRequest):
        attempt_service.add_violation(session, attempt.id, "tab_switch", "Switched", ["not", "a", "dict"])


def test_finished_attempt_rejects_violations(session, attempt, result_builder):
    attempt_service.submit_attempt(session, attempt.id, result_builder)
    with pytest.raises(AttemptTerminal):
        attempt_service.add_violation(session, attempt.id, "tab_close", "Closed the tab")


def test_unknown_attempt(session):
    with pytest.raises(NotFound):
        attempt_service.add_violation(session, 5555, "tab_switch", "Switched")
    with pytest.raises(NotFound):
        attempt_service.get_cheating_warnings(session, 5555)


def test_reset_clears_count_and_log(session, attempt):
    attempt_service.add_violation(session, attempt.id, "tab_switch", "Switched")
    attempt_service.add_violation(session, attempt.id, "right_click", "Right click")

    payload = attempt_service.reset_cheating_warnings(session, attempt.id)

    assert payload["warning_count"] == 0
    assert payload["remaining_warnings"] == 3
    assert payload["should_auto_submit"] is False
    assert payload["violations"] == []
    assert attempt_service.get_cheating_warnings(session, attempt.id)["violations"] == []

    # Counting starts over after a reset
    again = attempt_service.add_violation(session, attempt.id, "tab_close", "Closed")
    assert again["warning_count"] == 1


def test_reset_on_finished_attempt_is_rejected(session, attempt, result_builder):
    attempt_service.submit_attempt(session, attempt.id, result_builder)
    with pytest.raises(AttemptTerminal):
        attempt_service.reset_cheating_warnings(session, attempt.id)


def test_reset_unknown_attempt(session):
    with pytest.raises(NotFound):
        attempt_service.reset_cheating_warnings(session, 5555)
