import math
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, text


def _ensure_app_on_path():
    repo_root = Path(__file__).resolve().parent.parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    return repo_root


_ensure_app_on_path()

from exam_engine import models  # noqa: E402,F401
from exam_engine.errors import ScoringProviderError  # noqa: E402
from exam_engine.models import (  # noqa: E402
    Exam,
    ExamStatus,
    Question,
    QuestionType,
    Section,
    Student,
)
from exam_engine.services.result_service import GradingPolicy, ResultBuilder  # noqa: E402
from exam_engine.services.scorers import SimilarityScorer  # noqa: E402
from exam_engine.services.scoring_service import ScoringEngine  # noqa: E402

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # all connections share the same in-memory database
)

CLEANUP_ORDER = ["result", "answer", "examattempt", "question", "section", "exam", "student"]


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield
    # FK-safe order
    with Session(test_engine) as session:
        for table in CLEANUP_ORDER:
            session.exec(text(f"DELETE FROM {table}"))
        session.commit()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


# ============================================================================
# EMBEDDING PROVIDER STUBS
# ============================================================================


class FixedSimilarityProvider:
    """Embeds so that each (correct, student) pair has the given cosine similarity.

    Calls alternate: the context of the correct answer comes first, then the
    student's.
    """

    def __init__(self, similarity: float):
        self.similarity = similarity
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if len(self.calls) % 2 == 1:
            return [1.0, 0.0]
        s = self.similarity
        return [s, math.sqrt(max(0.0, 1 - s * s))]


class FailingProvider:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error or ScoringProviderError("Embedding request timed out")
        self.calls = 0

    def embed(self, text: str) -> List[float]:
        self.calls += 1
        raise self.error


def make_result_builder(provider=None, policy: Optional[GradingPolicy] = None, score_against_all_questions=True):
    engine = ScoringEngine(
        SimilarityScorer(provider),
        score_against_all_questions=score_against_all_questions,
    )
    return ResultBuilder(engine, policy or GradingPolicy())


@pytest.fixture
def result_builder():
    """Result builder with no embedding provider: free text uses the keyword fallback."""
    return make_result_builder()


# ============================================================================
# CLOCK
# ============================================================================


class FrozenClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int = 0, minutes: int = 0) -> None:
        self.now += timedelta(seconds=seconds, minutes=minutes)


@pytest.fixture
def clock(monkeypatch):
    """Freeze the attempt lifecycle's notion of 'now'."""
    frozen = FrozenClock(datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc))
    monkeypatch.setattr("exam_engine.services.attempt_service.utcnow", frozen)
    return frozen


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


@dataclass
class SeededExam:
    exam_id: int
    question_ids: List[int]
    section_ids: List[int]


def create_student(engine, name: str = "Alice Student", email: Optional[str] = None) -> int:
    with Session(engine) as session:
        student = Student(
            name=name,
            email=email or f"{name.lower().replace(' ', '.')}@example.com",
        )
        session.add(student)
        session.commit()
        session.refresh(student)
        return student.id


def create_exam(
    engine,
    questions: List[Dict],
    duration_minutes: int = 60,
    status: ExamStatus = ExamStatus.PUBLISHED,
    is_active: bool = True,
    title: str = "Biology Midterm",
) -> SeededExam:
    """Create an exam; each question dict may carry a 'section' index (default 0)."""
    with Session(engine) as session:
        exam = Exam(title=title, duration_minutes=duration_minutes, status=status, is_active=is_active)
        session.add(exam)
        session.commit()
        session.refresh(exam)

        section_count = max([q.get("section", 0) for q in questions], default=0) + 1
        sections = []
        for i in range(section_count):
            section = Section(exam_id=exam.id, title=f"Section {i + 1}", order=i)
            session.add(section)
            session.commit()
            session.refresh(section)
            sections.append(section)

        question_ids = []
        for order, item in enumerate(questions):
            question = Question(
                section_id=sections[item.get("section", 0)].id,
                question_text=item.get("question_text", f"Question {order + 1}?"),
                type=item["type"],
                correct_answer=item["correct_answer"],
                options=item.get("options"),
                marks=item.get("marks", 5),
                order=order,
                explanation=item.get("explanation"),
            )
            session.add(question)
            session.commit()
            session.refresh(question)
            question_ids.append(question.id)

        return SeededExam(
            exam_id=exam.id,
            question_ids=question_ids,
            section_ids=[s.id for s in sections],
        )


MCQ_QUESTION = {
    "type": QuestionType.MULTIPLE_CHOICE,
    "question_text": "Which organelle produces ATP?",
    "correct_answer": "A",
    "options": ["A", "B", "C", "D"],
    "marks": 5,
}

ESSAY_QUESTION = {
    "type": QuestionType.ESSAY,
    "question_text": "Explain photosynthesis.",
    "correct_answer": "Plants convert light energy into chemical energy stored in glucose",
    "marks": 5,
    "explanation": "Mention light energy, chemical energy and glucose",
}


@pytest.fixture
def student_id():
    return create_student(test_engine)


@pytest.fixture
def mixed_exam():
    """Two questions: a 5-mark MCQ (answer 'A') and a 5-mark essay."""
    return create_exam(test_engine, [MCQ_QUESTION, ESSAY_QUESTION], duration_minutes=30)
