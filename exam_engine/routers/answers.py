"""API endpoints for saving answers during an attempt."""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field
from sqlmodel import Session

from exam_engine.database import get_session
from exam_engine.models import Answer
from exam_engine.services import store

router = APIRouter()


class AnswerIn(BaseModel):
    attempt_id: int
    question_id: int
    answer_text: Optional[str] = Field(default=None, max_length=50000)
    selected_options: Optional[List[str]] = None


def answer_payload(answer: Answer) -> dict:
    return {
        "answer_id": answer.id,
        "attempt_id": answer.attempt_id,
        "question_id": answer.question_id,
        "answer_text": answer.answer_text,
        "selected_options": answer.selected_options,
        "max_score": answer.max_score,
        "score": answer.score,
        "is_correct": answer.is_correct,
        "is_graded": answer.is_graded,
        "feedback": answer.feedback,
        "confidence": answer.confidence,
    }


@router.post("/")
def api_save_answer(
    payload: AnswerIn = Body(...),
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    answer = store.save_answer(
        session,
        attempt_id=payload.attempt_id,
        question_id=payload.question_id,
        answer_text=payload.answer_text,
        selected_options=payload.selected_options,
        student_id=student_id,
    )
    return answer_payload(answer)


@router.get("/attempt/{attempt_id}")
def api_list_answers(
    attempt_id: int,
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    store.load_attempt(session, attempt_id, student_id)
    return [answer_payload(a) for a in store.list_answers(session, attempt_id)]


@router.get("/attempt/{attempt_id}/unanswered")
def api_unanswered_questions(
    attempt_id: int,
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    return [
        {
            "question_id": q.id,
            "question_text": q.question_text,
            "type": q.type,
            "marks": q.marks,
            "order": q.order,
        }
        for q in store.get_unanswered_questions(session, attempt_id, student_id)
    ]
