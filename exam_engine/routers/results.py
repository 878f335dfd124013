"""API endpoints for exam results."""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from exam_engine.database import get_session
from exam_engine.deps import get_result_builder
from exam_engine.models import Result
from exam_engine.services import result_service
from exam_engine.services.result_service import ResultBuilder

router = APIRouter()


def result_payload(result: Result) -> dict:
    return {
        **result.model_dump(),
        "formatted_percentage": result.formatted_percentage,
        "accuracy_percentage": result.accuracy_percentage,
    }


@router.post("/generate/{attempt_id}")
def api_generate_result(
    attempt_id: int,
    session: Session = Depends(get_session),
    result_builder: ResultBuilder = Depends(get_result_builder),
):
    result = result_builder.generate_result(session, attempt_id)
    return {
        **result_payload(result),
        "question_results": result_service.question_breakdown(session, attempt_id),
    }


@router.get("/attempt/{attempt_id}")
def api_result_for_attempt(attempt_id: int, session: Session = Depends(get_session)):
    return result_payload(result_service.get_result_for_attempt(session, attempt_id))


@router.get("/exam/{exam_id}")
def api_exam_results(exam_id: int, session: Session = Depends(get_session)):
    return [result_payload(r) for r in result_service.list_exam_results(session, exam_id)]


@router.get("/{result_id}")
def api_get_result(result_id: int, session: Session = Depends(get_session)):
    result = result_service.get_result(session, result_id)
    return {
        **result_payload(result),
        "question_results": result_service.question_breakdown(session, result.attempt_id),
    }


@router.patch("/{result_id}/publish")
def api_publish_result(result_id: int, session: Session = Depends(get_session)):
    return result_payload(result_service.publish_result(session, result_id))
