"""Persistence helpers for attempts and the answers they own."""

import logging
from typing import List, Optional

from sqlmodel import Session, func, select

from exam_engine.errors import AttemptTerminal, BadRequest, InvalidTransition, NotFound
from exam_engine.models import Answer, AttemptStatus, ExamAttempt, Question
from exam_engine.services.locks import attempt_lock
from exam_engine.services.question_bank import QuestionVariant, get_exam_id_for_question, get_exam_with_questions
from exam_engine.utils import utcnow

logger = logging.getLogger(__name__)


def load_attempt(
    session: Session,
    attempt_id: int,
    student_id: Optional[int] = None,
    for_update: bool = False,
) -> ExamAttempt:
    """Load an attempt fresh from the database.

    The row is re-read even if the session already holds it, so callers that
    have just taken the attempt lock see what the previous holder committed.
    Transitions pass for_update to also take the row lock; plain reads don't.
    A student_id that does not own the attempt is treated as not found.
    """
    attempt = session.get(ExamAttempt, attempt_id, populate_existing=True, with_for_update=for_update)
    if not attempt or (student_id is not None and attempt.student_id != student_id):
        raise NotFound("Exam attempt not found")
    return attempt


def list_answers(session: Session, attempt_id: int) -> List[Answer]:
    return session.exec(
        select(Answer)
        .where(Answer.attempt_id == attempt_id)
        .order_by(Answer.id)
        .execution_options(populate_existing=True)
    ).all()


def save_answer(
    session: Session,
    attempt_id: int,
    question_id: int,
    answer_text: Optional[str] = None,
    selected_options: Optional[List[str]] = None,
    student_id: Optional[int] = None,
) -> Answer:
    """Create or update the answer to one question of an in-progress attempt.

    Raises:
        NotFound: attempt or question missing
        AttemptTerminal: attempt already submitted, timed out or disqualified
        InvalidTransition: attempt is paused
        BadRequest: question belongs to another exam
    """
    with attempt_lock(attempt_id):
        attempt = load_attempt(session, attempt_id, student_id, for_update=True)
        if attempt.is_terminal:
            raise AttemptTerminal("Cannot save answers to a finished attempt")
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise InvalidTransition("Answers can only be saved while the attempt is in progress")

        question = session.get(Question, question_id)
        if not question:
            raise NotFound(f"Question with id={question_id} does not exist")
        if get_exam_id_for_question(session, question_id) != attempt.exam_id:
            raise BadRequest("Question does not belong to the same exam")

        answer = session.exec(
            select(Answer).where(
                (Answer.attempt_id == attempt_id) & (Answer.question_id == question_id)
            )
        ).first()
        if answer:
            answer.answer_text = answer_text
            answer.selected_options = list(selected_options) if selected_options is not None else None
            answer.updated_at = utcnow()
        else:
            answer = Answer(
                attempt_id=attempt_id,
                question_id=question_id,
                student_id=attempt.student_id,
                answer_text=answer_text,
                selected_options=list(selected_options) if selected_options is not None else None,
                max_score=question.marks,
            )
        session.add(answer)
        session.commit()

        # Keep the attempt's progress counter in step with the answer rows
        attempt.questions_answered = session.exec(
            select(func.count()).select_from(Answer).where(Answer.attempt_id == attempt_id)
        ).one()
        attempt.updated_at = utcnow()
        session.add(attempt)
        session.commit()

        session.refresh(answer)
        return answer


def get_unanswered_questions(
    session: Session, attempt_id: int, student_id: Optional[int] = None
) -> List[QuestionVariant]:
    """Questions of the attempt's exam that have no saved answer yet, in exam order."""
    attempt = load_attempt(session, attempt_id, student_id)
    answered = {a.question_id for a in list_answers(session, attempt_id)}
    exam = get_exam_with_questions(session, attempt.exam_id)
    return [q for q in exam.questions if q.id not in answered]
