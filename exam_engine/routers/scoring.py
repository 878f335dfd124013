"""API endpoints for scoring, scoring progress and administrative re-scoring."""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from exam_engine.database import get_session
from exam_engine.deps import get_result_builder, get_scoring_engine
from exam_engine.routers.answers import answer_payload
from exam_engine.routers.results import result_payload
from exam_engine.services import attempt_service
from exam_engine.services.result_service import ResultBuilder
from exam_engine.services.scoring_service import ScoringEngine, get_scoring_progress, mark_answer

router = APIRouter()


class MarkAnswerIn(BaseModel):
    score: float = Field(ge=0)
    feedback: Optional[str] = Field(default=None, max_length=5000)


@router.post("/score-exam/{attempt_id}")
def api_score_exam(
    attempt_id: int,
    session: Session = Depends(get_session),
    scoring_engine: ScoringEngine = Depends(get_scoring_engine),
):
    scoring = scoring_engine.score_exam(session, attempt_id)
    return {
        "attempt_id": scoring.attempt_id,
        "total_score": scoring.total_score,
        "total_marks": scoring.total_marks,
        "percentage": scoring.percentage,
        "graded_answers": [answer_payload(a) for a in scoring.graded_answers],
    }


@router.get("/progress/{attempt_id}")
def api_scoring_progress(attempt_id: int, session: Session = Depends(get_session)):
    return get_scoring_progress(session, attempt_id)


@router.post("/regrade-answer/{answer_id}")
def api_regrade_answer(
    answer_id: int,
    session: Session = Depends(get_session),
    scoring_engine: ScoringEngine = Depends(get_scoring_engine),
):
    return answer_payload(scoring_engine.regrade_answer(session, answer_id))


@router.post("/rescore/{attempt_id}")
def api_rescore_attempt(
    attempt_id: int,
    session: Session = Depends(get_session),
    result_builder: ResultBuilder = Depends(get_result_builder),
):
    return result_payload(attempt_service.rescore_attempt(session, attempt_id, result_builder))


@router.patch("/mark-answer/{answer_id}")
def api_mark_answer(
    answer_id: int,
    payload: MarkAnswerIn = Body(...),
    session: Session = Depends(get_session),
):
    return answer_payload(mark_answer(session, answer_id, payload.score, payload.feedback))
