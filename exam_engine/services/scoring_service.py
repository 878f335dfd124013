"""Scoring engine: scores every answer of a terminal attempt and aggregates.

The aggregate is taken against the marks of the whole exam by default, so an
unanswered question counts against the student. Each graded answer is
committed before the aggregate, and answers already graded are skipped, which
makes a retry after a crash resume where scoring stopped.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlmodel import Session

from exam_engine.errors import BadRequest, NotFound
from exam_engine.models import Answer, ExamAttempt
from exam_engine.services.locks import attempt_lock
from exam_engine.services.question_bank import (
    ObjectiveQuestion,
    QuestionVariant,
    SimilarityQuestion,
    get_exam_with_questions,
    get_question,
)
from exam_engine.services.scorers import ObjectiveScorer, ScoreOutcome, SimilarityScorer
from exam_engine.services.store import list_answers, load_attempt
from exam_engine.utils import sanitize_text, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ScoringResult:
    attempt_id: int
    total_score: float
    total_marks: float
    percentage: float
    graded_answers: List[Answer] = field(default_factory=list)


def compute_percentage(total_score: float, total_marks: float) -> float:
    return (total_score / total_marks * 100) if total_marks > 0 else 0.0


class ScoringEngine:
    def __init__(
        self,
        similarity_scorer: SimilarityScorer,
        objective_scorer: Optional[ObjectiveScorer] = None,
        score_against_all_questions: bool = True,
    ):
        self.similarity_scorer = similarity_scorer
        self.objective_scorer = objective_scorer or ObjectiveScorer()
        self.score_against_all_questions = score_against_all_questions

    def score_answer(self, answer: Answer, question: QuestionVariant) -> ScoreOutcome:
        """Score one answer against its question, by question variant."""
        if isinstance(question, ObjectiveQuestion):
            submitted = answer.answer_text or ", ".join(answer.selected_options or [])
            return self.objective_scorer.score(question, submitted, answer.max_score)
        if isinstance(question, SimilarityQuestion):
            return self.similarity_scorer.score(question, answer.answer_text, answer.max_score)
        raise BadRequest(f"Unsupported question variant for question {answer.question_id}")

    def _grade(self, session: Session, answer: Answer, question: QuestionVariant) -> Answer:
        outcome = self.score_answer(answer, question)
        answer.score = outcome.score
        answer.is_correct = outcome.is_correct
        answer.feedback = outcome.feedback
        answer.confidence = outcome.confidence
        answer.is_graded = True
        answer.updated_at = utcnow()
        session.add(answer)
        session.commit()
        session.refresh(answer)
        return answer

    def score_exam(self, session: Session, attempt_id: int) -> ScoringResult:
        """Score a terminal attempt; returns the stored aggregate if already graded.

        Raises:
            NotFound: attempt missing, or an answer references a missing question
            BadRequest: attempt is not terminal yet
        """
        with attempt_lock(attempt_id):
            attempt = load_attempt(session, attempt_id, for_update=True)
            if not attempt.is_terminal:
                raise BadRequest("Cannot score an attempt that has not been submitted")

            answers = list_answers(session, attempt_id)
            if attempt.is_graded:
                return self._cached(attempt, answers)

            exam = get_exam_with_questions(session, attempt.exam_id)
            questions: Dict[int, QuestionVariant] = exam.question_map()

            for answer in answers:
                if answer.is_graded:
                    continue
                question = questions.get(answer.question_id)
                if question is None:
                    raise NotFound(
                        f"Question {answer.question_id} referenced by answer {answer.id} is not part of exam {exam.id}"
                    )
                self._grade(session, answer, question)

            graded = [a for a in answers if a.is_graded]
            total_score = sum(a.score for a in graded)
            if self.score_against_all_questions:
                total_marks = exam.total_marks
            else:
                total_marks = sum(a.max_score for a in answers)
            percentage = compute_percentage(total_score, total_marks)

            attempt.score = total_score
            attempt.total_marks = total_marks
            attempt.percentage = percentage
            attempt.is_graded = True
            attempt.updated_at = utcnow()
            session.add(attempt)
            session.commit()

            logger.info(
                "Scored attempt %s: %s/%s (%.2f%%)", attempt_id, total_score, total_marks, percentage
            )
            return ScoringResult(
                attempt_id=attempt_id,
                total_score=total_score,
                total_marks=total_marks,
                percentage=percentage,
                graded_answers=graded,
            )

    @staticmethod
    def _cached(attempt: ExamAttempt, answers: List[Answer]) -> ScoringResult:
        return ScoringResult(
            attempt_id=attempt.id,
            total_score=attempt.score,
            total_marks=attempt.total_marks,
            percentage=attempt.percentage,
            graded_answers=[a for a in answers if a.is_graded],
        )

    def regrade_answer(self, session: Session, answer_id: int) -> Answer:
        """Reset one answer's grading fields and score it again.

        A graded attempt's score and percentage are recomputed from its graded
        answers; an existing Result keeps its values.
        """
        answer = session.get(Answer, answer_id)
        if not answer:
            raise NotFound("Answer not found")

        with attempt_lock(answer.attempt_id):
            attempt = load_attempt(session, answer.attempt_id, for_update=True)
            if not attempt.is_terminal:
                raise BadRequest("Cannot regrade an answer of an attempt that has not been submitted")

            session.refresh(answer)
            question = get_question(session, answer.question_id)

            answer.is_graded = False
            answer.score = 0
            answer.feedback = None
            answer.is_correct = None
            answer.confidence = None
            logger.info("Regrading answer %s of attempt %s", answer_id, attempt.id)
            answer = self._grade(session, answer, question)
            _refresh_attempt_aggregate(session, attempt)
            return answer


def _refresh_attempt_aggregate(session: Session, attempt: ExamAttempt) -> None:
    # total_marks is fixed at scoring time; only the earned side moves
    if not attempt.is_graded:
        return
    attempt.score = sum(a.score for a in list_answers(session, attempt.id) if a.is_graded)
    attempt.percentage = compute_percentage(attempt.score, attempt.total_marks)
    attempt.updated_at = utcnow()
    session.add(attempt)
    session.commit()
    session.refresh(attempt)


def mark_answer(session: Session, answer_id: int, score: float, feedback: Optional[str] = None) -> Answer:
    """Manually set an answer's score and feedback, overriding the scorer.

    Raises:
        NotFound: answer missing
        BadRequest: attempt not terminal, or score outside [0, max_score]
    """
    answer = session.get(Answer, answer_id)
    if not answer:
        raise NotFound("Answer not found")

    with attempt_lock(answer.attempt_id):
        attempt = load_attempt(session, answer.attempt_id, for_update=True)
        if not attempt.is_terminal:
            raise BadRequest("Cannot mark an answer of an attempt that has not been submitted")

        session.refresh(answer)
        if score < 0 or score > answer.max_score:
            raise BadRequest(f"Score must be between 0 and {answer.max_score}")

        answer.score = float(score)
        answer.is_correct = score > 0
        answer.is_graded = True
        answer.feedback = sanitize_text(feedback) if feedback else None
        answer.confidence = 1.0
        answer.updated_at = utcnow()
        session.add(answer)
        session.commit()
        session.refresh(answer)
        logger.info("Manually marked answer %s of attempt %s: %s/%s", answer_id, attempt.id, score, answer.max_score)

        _refresh_attempt_aggregate(session, attempt)
        return answer


def get_scoring_progress(session: Session, attempt_id: int) -> dict:
    """Total vs. graded answer counts, for progress displays."""
    load_attempt(session, attempt_id)
    answers = list_answers(session, attempt_id)
    graded = sum(1 for a in answers if a.is_graded)
    return {
        "attempt_id": attempt_id,
        "total_answers": len(answers),
        "graded_answers": graded,
        "progress_percentage": (graded / len(answers) * 100) if answers else 0,
    }
