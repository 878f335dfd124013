"""Result builder: turns a scored, terminal attempt into an immutable Result."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from exam_engine.config import Settings
from exam_engine.errors import BadRequest, NotFound
from exam_engine.models import Answer, AttemptStatus, ExamAttempt, Grade, Result
from exam_engine.services.locks import attempt_lock
from exam_engine.services.question_bank import get_exam_with_questions
from exam_engine.services.scoring_service import ScoringEngine
from exam_engine.services.store import list_answers, load_attempt
from exam_engine.utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_GRADE_BANDS: Tuple[Tuple[float, Grade], ...] = (
    (95, Grade.A_PLUS),
    (90, Grade.A),
    (85, Grade.B_PLUS),
    (80, Grade.B),
    (75, Grade.C_PLUS),
    (70, Grade.C),
    (60, Grade.D),
)


@dataclass(frozen=True)
class GradingPolicy:
    pass_percentage: float = 50.0
    grade_bands: Tuple[Tuple[float, Grade], ...] = DEFAULT_GRADE_BANDS
    failing_grade: Grade = Grade.F
    auto_publish: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "GradingPolicy":
        return cls(
            pass_percentage=settings.PASS_PERCENTAGE,
            auto_publish=settings.AUTO_PUBLISH_RESULTS,
        )

    def grade_for(self, percentage: float) -> Grade:
        for minimum, grade in self.grade_bands:
            if percentage >= minimum:
                return grade
        return self.failing_grade

    def is_passed(self, percentage: float) -> bool:
        return percentage >= self.pass_percentage


def find_result_for_attempt(session: Session, attempt_id: int) -> Optional[Result]:
    return session.exec(select(Result).where(Result.attempt_id == attempt_id)).first()


def calculate_rank(session: Session, exam_id: int, score: float) -> int:
    """1 + number of results for the exam with a strictly higher score; ties share a rank."""
    better = session.exec(
        select(func.count()).select_from(Result).where((Result.exam_id == exam_id) & (Result.score > score))
    ).one()
    return better + 1


def count_submitted_students(session: Session, exam_id: int) -> int:
    return session.exec(
        select(func.count(func.distinct(ExamAttempt.student_id))).where(
            (ExamAttempt.exam_id == exam_id) & (ExamAttempt.status == AttemptStatus.SUBMITTED)
        )
    ).one()


class ResultBuilder:
    def __init__(self, scoring_engine: ScoringEngine, policy: GradingPolicy):
        self.scoring_engine = scoring_engine
        self.policy = policy

    def generate_result(self, session: Session, attempt_id: int) -> Result:
        """Build the attempt's Result once; later calls return the stored one.

        Raises:
            NotFound: attempt missing
            BadRequest: attempt is not terminal
        """
        with attempt_lock(attempt_id):
            existing = find_result_for_attempt(session, attempt_id)
            if existing:
                return existing

            attempt = load_attempt(session, attempt_id, for_update=True)
            if not attempt.is_terminal:
                raise BadRequest("Cannot generate result for non-submitted attempt")

            scoring = self.scoring_engine.score_exam(session, attempt_id)
            exam = get_exam_with_questions(session, attempt.exam_id)

            graded = scoring.graded_answers
            questions_answered = len(graded)
            correct_answers = sum(1 for a in graded if a.is_correct)

            is_passed = self.policy.is_passed(scoring.percentage)
            if attempt.status == AttemptStatus.DISQUALIFIED:
                is_passed = False

            now = utcnow()
            result = Result(
                attempt_id=attempt.id,
                student_id=attempt.student_id,
                exam_id=attempt.exam_id,
                score=scoring.total_score,
                total_marks=scoring.total_marks,
                percentage=scoring.percentage,
                grade=self.policy.grade_for(scoring.percentage),
                rank=calculate_rank(session, attempt.exam_id, scoring.total_score),
                total_students=count_submitted_students(session, attempt.exam_id),
                questions_answered=questions_answered,
                total_questions=exam.total_questions,
                correct_answers=correct_answers,
                wrong_answers=questions_answered - correct_answers,
                time_spent=attempt.time_spent,
                is_passed=is_passed,
                pass_percentage=self.policy.pass_percentage,
                is_published=self.policy.auto_publish,
                published_at=now if self.policy.auto_publish else None,
            )
            session.add(result)
            try:
                session.commit()
            except IntegrityError:
                # Another process created it first
                session.rollback()
                existing = find_result_for_attempt(session, attempt_id)
                if existing is None:
                    raise
                return existing

            session.refresh(result)
            logger.info(
                "Generated result %s for attempt %s: grade %s, rank %s",
                result.id,
                attempt_id,
                result.grade.value,
                result.rank,
            )
            return result


def question_breakdown(session: Session, attempt_id: int) -> List[dict]:
    """Per-question review rows for every graded answer, in exam order."""
    attempt = load_attempt(session, attempt_id)
    exam = get_exam_with_questions(session, attempt.exam_id)
    answers = {a.question_id: a for a in list_answers(session, attempt_id) if a.is_graded}

    rows = []
    for question in exam.questions:
        answer: Optional[Answer] = answers.get(question.id)
        if answer is None:
            continue
        rows.append(
            {
                "question_id": question.id,
                "question_text": question.question_text,
                "student_answer": answer.formatted_answer or "No answer provided",
                "correct_answer": question.correct_answer or "No correct answer available",
                "is_correct": bool(answer.is_correct),
                "marks_obtained": answer.score or 0,
                "total_marks": answer.max_score,
                "explanation": question.explanation or answer.feedback,
                "feedback": answer.feedback,
                "confidence": answer.confidence,
            }
        )
    return rows


def get_result(session: Session, result_id: int) -> Result:
    result = session.get(Result, result_id)
    if not result:
        raise NotFound("Result not found")
    return result


def get_result_for_attempt(session: Session, attempt_id: int) -> Result:
    result = find_result_for_attempt(session, attempt_id)
    if not result:
        raise NotFound("Result not found")
    return result


def publish_result(session: Session, result_id: int) -> Result:
    result = get_result(session, result_id)
    if not result.is_published:
        result.is_published = True
        result.published_at = utcnow()
        session.add(result)
        session.commit()
        session.refresh(result)
    return result


def list_exam_results(session: Session, exam_id: int) -> List[Result]:
    """Published results for an exam, highest score first."""
    return session.exec(
        select(Result)
        .where((Result.exam_id == exam_id) & (Result.is_published == True))  # noqa: E712
        .order_by(Result.score.desc(), Result.id)
    ).all()
