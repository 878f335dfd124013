"""Tests for the read-only exam projection and question variant resolution."""

import pytest

from exam_engine.errors import BadRequest, NotFound
from exam_engine.models import ExamStatus, Question, QuestionType
from exam_engine.services.question_bank import (
    ObjectiveQuestion,
    SimilarityQuestion,
    get_exam_id_for_question,
    get_exam_with_questions,
    get_question,
    to_variant,
)
from tests.conftest import ESSAY_QUESTION, MCQ_QUESTION, create_exam, test_engine


def test_exam_view_orders_sections_and_questions(session):
    seeded = create_exam(
        test_engine,
        [
            {**MCQ_QUESTION, "section": 1, "question_text": "Second section MCQ"},
            {**ESSAY_QUESTION, "section": 0},
            {"type": QuestionType.TRUE_FALSE, "correct_answer": "True", "marks": 2, "section": 1},
        ],
    )

    exam = get_exam_with_questions(session, seeded.exam_id)

    assert [s.id for s in exam.sections] == seeded.section_ids
    assert [q.id for q in exam.sections[1].questions] == [seeded.question_ids[0], seeded.question_ids[2]]
    assert exam.total_questions == 3
    assert exam.total_marks == 12
    assert exam.duration_seconds == 3600
    assert set(exam.question_map()) == set(seeded.question_ids)


def test_types_resolve_to_variants(session):
    seeded = create_exam(test_engine, [MCQ_QUESTION, ESSAY_QUESTION])

    mcq = get_question(session, seeded.question_ids[0])
    essay = get_question(session, seeded.question_ids[1])

    assert isinstance(mcq, ObjectiveQuestion)
    assert mcq.options == ("A", "B", "C", "D")
    assert isinstance(essay, SimilarityQuestion)
    assert essay.rubric == ESSAY_QUESTION["explanation"]


def test_unknown_type_is_rejected():
    question = Question(
        id=99, section_id=1, question_text="?", type="matching", correct_answer="x", marks=1
    )
    with pytest.raises(BadRequest):
        to_variant(question)


@pytest.mark.parametrize(
    "status, is_active, expected",
    [
        (ExamStatus.PUBLISHED, True, True),
        (ExamStatus.PUBLISHED, False, False),
        (ExamStatus.DRAFT, True, False),
        (ExamStatus.CLOSED, True, False),
    ],
)
def test_exam_open_for_attempts(session, status, is_active, expected):
    seeded = create_exam(test_engine, [MCQ_QUESTION], status=status, is_active=is_active)
    assert get_exam_with_questions(session, seeded.exam_id).is_open_for_attempts is expected


def test_missing_exam_and_question(session):
    with pytest.raises(NotFound):
        get_exam_with_questions(session, 12345)
    with pytest.raises(NotFound):
        get_question(session, 12345)
    with pytest.raises(NotFound):
        get_exam_id_for_question(session, 12345)


def test_exam_id_for_question(session):
    seeded = create_exam(test_engine, [MCQ_QUESTION])
    assert get_exam_id_for_question(session, seeded.question_ids[0]) == seeded.exam_id
