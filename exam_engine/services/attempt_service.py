"""Exam attempt lifecycle: create, pause/resume, submit, timeout, disqualify.

Every transition runs under the attempt's lock and re-reads the attempt after
taking it. Terminal transitions commit first and then score the attempt and
build its result; a failure in that second step is logged and leaves the
attempt terminal, to be retried with rescore_attempt.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from exam_engine.errors import (
    AlreadySubmitted,
    AttemptTerminal,
    BadRequest,
    DuplicateAttempt,
    InvalidTransition,
    NotFound,
)
from exam_engine.models import AttemptStatus, Exam, ExamAttempt, Result, Student, ViolationType
from exam_engine.services.locks import attempt_lock
from exam_engine.services.question_bank import get_exam_with_questions
from exam_engine.services.result_service import ResultBuilder
from exam_engine.services.store import load_attempt
from exam_engine.utils import sanitize_text, seconds_between, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHEATING_WARNINGS = 3


def create_attempt(
    session: Session,
    exam_id: int,
    student_id: int,
    max_cheating_warnings: int = DEFAULT_MAX_CHEATING_WARNINGS,
) -> ExamAttempt:
    exam = get_exam_with_questions(session, exam_id)
    if not exam.is_open_for_attempts:
        raise BadRequest("Exam is not available for attempts")

    if not session.get(Student, student_id):
        raise NotFound("Student not found")

    existing = session.exec(
        select(ExamAttempt).where(
            (ExamAttempt.exam_id == exam_id) & (ExamAttempt.student_id == student_id)
        )
    ).first()
    if existing:
        if existing.status == AttemptStatus.SUBMITTED:
            raise AlreadySubmitted("Student has already submitted this exam and cannot retake it")
        raise DuplicateAttempt("Student already has an attempt for this exam")

    now = utcnow()
    attempt = ExamAttempt(
        exam_id=exam_id,
        student_id=student_id,
        status=AttemptStatus.IN_PROGRESS,
        started_at=now,
        total_questions=exam.total_questions,
        max_cheating_warnings=max_cheating_warnings,
    )
    session.add(attempt)
    try:
        session.commit()
    except IntegrityError:
        # A concurrent request created the attempt between the check and the insert
        session.rollback()
        raise DuplicateAttempt("Student already has an attempt for this exam")

    session.refresh(attempt)
    logger.info("Student %s started attempt %s on exam %s", student_id, attempt.id, exam_id)
    return attempt


def get_attempt(session: Session, attempt_id: int, student_id: Optional[int] = None) -> ExamAttempt:
    return load_attempt(session, attempt_id, student_id)


def get_current_attempt(session: Session, student_id: int, exam_id: int) -> Optional[ExamAttempt]:
    """The student's non-terminal attempt on the exam, if any."""
    return session.exec(
        select(ExamAttempt).where(
            (ExamAttempt.exam_id == exam_id)
            & (ExamAttempt.student_id == student_id)
            & (ExamAttempt.status.in_([AttemptStatus.IN_PROGRESS, AttemptStatus.PAUSED]))
        )
    ).first()


def _accrue_running_time(attempt: ExamAttempt, now) -> None:
    # Only an in-progress attempt has a running clock; a paused one already banked its time
    if attempt.status == AttemptStatus.IN_PROGRESS and attempt.started_at:
        attempt.time_spent += seconds_between(attempt.started_at, now)


def _finalize(session: Session, attempt: ExamAttempt, status: AttemptStatus) -> ExamAttempt:
    now = utcnow()
    _accrue_running_time(attempt, now)
    attempt.status = status
    attempt.submitted_at = now
    attempt.updated_at = now
    session.add(attempt)
    session.commit()
    session.refresh(attempt)
    return attempt


def _trigger_automatic_scoring(
    session: Session, attempt_id: int, result_builder: ResultBuilder
) -> Optional[Result]:
    try:
        return result_builder.generate_result(session, attempt_id)
    except Exception:
        # The submission already stands; scoring is retried via rescore_attempt
        session.rollback()
        logger.exception("Automatic scoring failed for attempt %s", attempt_id)
        return None


def pause_attempt(session: Session, attempt_id: int, student_id: Optional[int] = None) -> ExamAttempt:
    with attempt_lock(attempt_id):
        attempt = load_attempt(session, attempt_id, student_id, for_update=True)
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise InvalidTransition("Only in-progress attempts can be paused")

        now = utcnow()
        _accrue_running_time(attempt, now)
        attempt.status = AttemptStatus.PAUSED
        attempt.paused_at = now
        attempt.updated_at = now
        session.add(attempt)
        session.commit()
        session.refresh(attempt)
        logger.info("Paused attempt %s after %ss", attempt_id, attempt.time_spent)
        return attempt


def resume_attempt(session: Session, attempt_id: int, student_id: Optional[int] = None) -> ExamAttempt:
    with attempt_lock(attempt_id):
        attempt = load_attempt(session, attempt_id, student_id, for_update=True)
        if attempt.status != AttemptStatus.PAUSED:
            raise InvalidTransition("Only paused attempts can be resumed")

        now = utcnow()
        attempt.status = AttemptStatus.IN_PROGRESS
        attempt.resumed_at = now
        # Reset the reference point; time already spent stays in time_spent
        attempt.started_at = now
        attempt.updated_at = now
        session.add(attempt)
        session.commit()
        session.refresh(attempt)
        logger.info("Resumed attempt %s", attempt_id)
        return attempt


def submit_attempt(
    session: Session,
    attempt_id: int,
    result_builder: ResultBuilder,
    student_id: Optional[int] = None,
) -> ExamAttempt:
    with attempt_lock(attempt_id):
        attempt = load_attempt(session, attempt_id, student_id, for_update=True)
        if attempt.is_terminal:
            raise AlreadySubmitted("Attempt already submitted")

        attempt = _finalize(session, attempt, AttemptStatus.SUBMITTED)
        logger.info("Submitted attempt %s (time spent %ss)", attempt_id, attempt.time_spent)

        _trigger_automatic_scoring(session, attempt_id, result_builder)
        return load_attempt(session, attempt_id)


def check_time_remaining(
    session: Session,
    attempt_id: int,
    result_builder: ResultBuilder,
    student_id: Optional[int] = None,
) -> int:
    """Seconds left on the attempt; times the attempt out once none are left."""
    with attempt_lock(attempt_id):
        attempt = load_attempt(session, attempt_id, student_id, for_update=True)
        if attempt.is_terminal:
            return 0

        exam = session.get(Exam, attempt.exam_id)
        if not exam:
            raise NotFound("Exam not found")

        elapsed = 0
        if attempt.status == AttemptStatus.IN_PROGRESS and attempt.started_at:
            elapsed = seconds_between(attempt.started_at, utcnow())
        remaining = max(0, exam.duration_minutes * 60 - elapsed - attempt.time_spent)

        if remaining == 0 and attempt.status == AttemptStatus.IN_PROGRESS:
            _finalize(session, attempt, AttemptStatus.TIMED_OUT)
            logger.info("Attempt %s timed out", attempt_id)
            _trigger_automatic_scoring(session, attempt_id, result_builder)

        return remaining


def disqualify_attempt(
    session: Session,
    attempt_id: int,
    result_builder: ResultBuilder,
    reason: Optional[str] = None,
) -> ExamAttempt:
    with attempt_lock(attempt_id):
        attempt = load_attempt(session, attempt_id, for_update=True)
        if attempt.is_terminal:
            raise AttemptTerminal("Attempt is already finished")

        attempt = _finalize(session, attempt, AttemptStatus.DISQUALIFIED)
        logger.warning("Disqualified attempt %s: %s", attempt_id, reason or "no reason given")

        _trigger_automatic_scoring(session, attempt_id, result_builder)
        return load_attempt(session, attempt_id)


def rescore_attempt(session: Session, attempt_id: int, result_builder: ResultBuilder) -> Result:
    """Retry scoring and result creation for a terminal attempt. Idempotent."""
    return result_builder.generate_result(session, attempt_id)


# --- Anti-cheating ---


def _warning_payload(attempt: ExamAttempt) -> Dict[str, Any]:
    return {
        "attempt_id": attempt.id,
        "warning_count": attempt.cheating_warnings,
        "max_warnings": attempt.max_cheating_warnings,
        "remaining_warnings": attempt.remaining_cheating_warnings,
        "should_auto_submit": attempt.should_auto_submit,
        "violations": list(attempt.cheating_violations or []),
    }


def add_violation(
    session: Session,
    attempt_id: int,
    violation_type: str,
    description: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Record a violation and report whether the caller should force a submit.

    Logging a violation never submits the attempt itself; should_auto_submit
    is advisory and the caller issues the submit.
    """
    try:
        vtype = ViolationType(violation_type)
    except ValueError:
        raise BadRequest(f"Unknown violation type '{violation_type}'")
    if metadata is not None and not isinstance(metadata, dict):
        raise BadRequest("Violation metadata must be an object")
    clean_description = sanitize_text(description)
    if not clean_description:
        raise BadRequest("Violation description cannot be empty")

    with attempt_lock(attempt_id):
        attempt = load_attempt(session, attempt_id, for_update=True)
        if attempt.is_terminal:
            raise AttemptTerminal("Cannot add violations to a finished attempt")

        now = utcnow()
        violation = {
            "type": vtype.value,
            "description": clean_description,
            "timestamp": now.isoformat(),
            "metadata": metadata or {},
        }
        # Assign a new list so the JSON column is flagged dirty
        attempt.cheating_violations = list(attempt.cheating_violations or []) + [violation]
        attempt.cheating_warnings += 1
        attempt.updated_at = now
        session.add(attempt)
        session.commit()
        session.refresh(attempt)

        logger.warning(
            "Violation '%s' on attempt %s (%s/%s warnings)",
            vtype.value,
            attempt_id,
            attempt.cheating_warnings,
            attempt.max_cheating_warnings,
        )
        return _warning_payload(attempt)


def get_cheating_warnings(session: Session, attempt_id: int) -> Dict[str, Any]:
    return _warning_payload(load_attempt(session, attempt_id))


def reset_cheating_warnings(session: Session, attempt_id: int) -> Dict[str, Any]:
    """Clear an attempt's warning count and violation log (proctor override)."""
    with attempt_lock(attempt_id):
        attempt = load_attempt(session, attempt_id, for_update=True)
        if attempt.is_terminal:
            raise AttemptTerminal("Cannot reset warnings of a finished attempt")

        cleared = attempt.cheating_warnings
        attempt.cheating_warnings = 0
        attempt.cheating_violations = []
        attempt.updated_at = utcnow()
        session.add(attempt)
        session.commit()
        session.refresh(attempt)

        logger.info("Reset %s cheating warnings on attempt %s", cleared, attempt_id)
        return _warning_payload(attempt)
