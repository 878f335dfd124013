"""Tests for saving answers, unanswered-question lookup and answer formatting."""

import pytest

from exam_engine.errors import AttemptTerminal, BadRequest, InvalidTransition, NotFound
from exam_engine.models import Answer
from exam_engine.services import attempt_service, store
from exam_engine.services.question_bank import ObjectiveQuestion, SimilarityQuestion
from exam_engine.services.result_service import question_breakdown
from tests.conftest import MCQ_QUESTION, create_exam, create_student, test_engine


@pytest.fixture
def attempt(session, student_id, mixed_exam):
    return attempt_service.create_attempt(session, mixed_exam.exam_id, student_id)


class TestSaveAnswer:
    def test_upsert_keeps_one_row_per_question(self, session, attempt, mixed_exam):
        first = store.save_answer(session, attempt.id, mixed_exam.question_ids[0], answer_text="B")
        second = store.save_answer(session, attempt.id, mixed_exam.question_ids[0], answer_text="A")

        assert first.id == second.id
        assert second.answer_text == "A"
        assert second.max_score == 5
        assert len(store.list_answers(session, attempt.id)) == 1
        assert attempt_service.get_attempt(session, attempt.id).questions_answered == 1

    def test_paused_attempt_rejects_answers(self, session, attempt, mixed_exam):
        attempt_service.pause_attempt(session, attempt.id)
        with pytest.raises(InvalidTransition):
            store.save_answer(session, attempt.id, mixed_exam.question_ids[0], answer_text="A")

    def test_finished_attempt_rejects_answers(self, session, attempt, mixed_exam, result_builder):
        attempt_service.submit_attempt(session, attempt.id, result_builder)
        with pytest.raises(AttemptTerminal):
            store.save_answer(session, attempt.id, mixed_exam.question_ids[0], answer_text="A")

    def test_question_from_other_exam(self, session, attempt):
        other = create_exam(test_engine, [MCQ_QUESTION], title="History Quiz")
        with pytest.raises(BadRequest):
            store.save_answer(session, attempt.id, other.question_ids[0], answer_text="A")

    def test_missing_question(self, session, attempt):
        with pytest.raises(NotFound):
            store.save_answer(session, attempt.id, 123456, answer_text="A")


class TestUnansweredQuestions:
    def test_lists_questions_without_answers_in_exam_order(self, session, attempt, mixed_exam):
        unanswered = store.get_unanswered_questions(session, attempt.id)
        assert [q.id for q in unanswered] == mixed_exam.question_ids
        assert isinstance(unanswered[0], ObjectiveQuestion)
        assert isinstance(unanswered[1], SimilarityQuestion)

        store.save_answer(session, attempt.id, mixed_exam.question_ids[0], answer_text="A")

        assert [q.id for q in store.get_unanswered_questions(session, attempt.id)] == [mixed_exam.question_ids[1]]

    def test_other_students_attempt_is_not_found(self, session, attempt):
        intruder = create_student(test_engine, name="Eve Intruder")
        with pytest.raises(NotFound):
            store.get_unanswered_questions(session, attempt.id, student_id=intruder)


class TestFormattedAnswer:
    def test_text_wins_over_selected_options(self):
        answer = Answer(
            attempt_id=1, question_id=1, student_id=1, answer_text="A", selected_options=["B"], max_score=1
        )
        assert answer.formatted_answer == "A"

    def test_selected_options_are_joined(self):
        answer = Answer(attempt_id=1, question_id=1, student_id=1, selected_options=["B", "C"], max_score=1)
        assert answer.formatted_answer == "B, C"

    def test_breakdown_shows_the_scored_answer(self, session, attempt, mixed_exam, result_builder):
        store.save_answer(
            session, attempt.id, mixed_exam.question_ids[0], answer_text="A", selected_options=["B"]
        )
        attempt_service.submit_attempt(session, attempt.id, result_builder)

        row = question_breakdown(session, attempt.id)[0]

        assert row["student_answer"] == "A"
        assert row["is_correct"] is True
        assert row["confidence"] == 1.0


class TestRowLocking:
    @pytest.fixture
    def get_calls(self, session, monkeypatch):
        calls = []
        original = session.get

        def recording_get(entity, ident, **kwargs):
            calls.append(kwargs.get("with_for_update"))
            return original(entity, ident, **kwargs)

        monkeypatch.setattr(session, "get", recording_get)
        return calls

    def test_reads_do_not_lock_the_row(self, session, attempt, get_calls):
        attempt_service.get_attempt(session, attempt.id)
        attempt_service.get_cheating_warnings(session, attempt.id)
        store.get_unanswered_questions(session, attempt.id)
        assert get_calls and not any(get_calls)

    def test_transitions_lock_the_row(self, session, attempt, get_calls):
        attempt_service.pause_attempt(session, attempt.id)
        assert True in get_calls
