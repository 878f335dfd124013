"""API endpoints for the exam attempt lifecycle and anti-cheating warnings."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field
from sqlmodel import Session

from exam_engine.config import Settings, get_settings
from exam_engine.database import get_session
from exam_engine.deps import get_result_builder
from exam_engine.models import ExamAttempt, ViolationType
from exam_engine.services import attempt_service
from exam_engine.services.result_service import ResultBuilder, find_result_for_attempt

router = APIRouter()


class CreateAttemptIn(BaseModel):
    exam_id: int


class ViolationIn(BaseModel):
    type: ViolationType
    description: str = Field(min_length=1, max_length=1000)
    metadata: Optional[Dict[str, Any]] = None


class DisqualifyIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


def attempt_payload(attempt: ExamAttempt) -> dict:
    return {
        "attempt_id": attempt.id,
        "exam_id": attempt.exam_id,
        "student_id": attempt.student_id,
        "status": attempt.status,
        "started_at": attempt.started_at,
        "paused_at": attempt.paused_at,
        "resumed_at": attempt.resumed_at,
        "submitted_at": attempt.submitted_at,
        "time_spent": attempt.time_spent,
        "formatted_time_spent": attempt.formatted_time_spent,
        "questions_answered": attempt.questions_answered,
        "total_questions": attempt.total_questions,
        "progress_percentage": attempt.progress_percentage,
        "is_graded": attempt.is_graded,
        "score": attempt.score,
        "total_marks": attempt.total_marks,
        "percentage": attempt.percentage,
        "cheating_warnings": attempt.cheating_warnings,
    }


@router.post("/", status_code=201)
def api_create_attempt(
    payload: CreateAttemptIn = Body(...),
    student_id: int = Query(...),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    attempt = attempt_service.create_attempt(
        session,
        exam_id=payload.exam_id,
        student_id=student_id,
        max_cheating_warnings=settings.MAX_CHEATING_WARNINGS,
    )
    return attempt_payload(attempt)


@router.get("/current/{exam_id}")
def api_current_attempt(
    exam_id: int,
    student_id: int = Query(...),
    session: Session = Depends(get_session),
):
    attempt = attempt_service.get_current_attempt(session, student_id, exam_id)
    return attempt_payload(attempt) if attempt else None


@router.get("/{attempt_id}")
def api_get_attempt(
    attempt_id: int,
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    return attempt_payload(attempt_service.get_attempt(session, attempt_id, student_id))


@router.patch("/{attempt_id}/pause")
def api_pause(
    attempt_id: int,
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    return attempt_payload(attempt_service.pause_attempt(session, attempt_id, student_id))


@router.patch("/{attempt_id}/resume")
def api_resume(
    attempt_id: int,
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    return attempt_payload(attempt_service.resume_attempt(session, attempt_id, student_id))


@router.patch("/{attempt_id}/submit")
def api_submit(
    attempt_id: int,
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    result_builder: ResultBuilder = Depends(get_result_builder),
):
    attempt = attempt_service.submit_attempt(session, attempt_id, result_builder, student_id)
    result = find_result_for_attempt(session, attempt_id)
    return {**attempt_payload(attempt), "result_id": result.id if result else None}


@router.get("/{attempt_id}/time-remaining")
def api_time_remaining(
    attempt_id: int,
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    result_builder: ResultBuilder = Depends(get_result_builder),
):
    remaining = attempt_service.check_time_remaining(session, attempt_id, result_builder, student_id)
    attempt = attempt_service.get_attempt(session, attempt_id)
    return {"attempt_id": attempt_id, "time_remaining": remaining, "status": attempt.status}


@router.post("/{attempt_id}/violations")
def api_add_violation(
    attempt_id: int,
    payload: ViolationIn = Body(...),
    session: Session = Depends(get_session),
):
    return attempt_service.add_violation(
        session,
        attempt_id,
        violation_type=payload.type.value,
        description=payload.description,
        metadata=payload.metadata,
    )


@router.get("/{attempt_id}/violations")
def api_get_violations(attempt_id: int, session: Session = Depends(get_session)):
    return attempt_service.get_cheating_warnings(session, attempt_id)


@router.post("/{attempt_id}/disqualify")
def api_disqualify(
    attempt_id: int,
    payload: Optional[DisqualifyIn] = Body(None),
    session: Session = Depends(get_session),
    result_builder: ResultBuilder = Depends(get_result_builder),
):
    reason = payload.reason if payload else None
    attempt = attempt_service.disqualify_attempt(session, attempt_id, result_builder, reason)
    return attempt_payload(attempt)


@router.delete("/{attempt_id}/violations")
def api_reset_violations(attempt_id: int, session: Session = Depends(get_session)):
    return attempt_service.reset_cheating_warnings(session, attempt_id)
