"""Read-only projection of an exam's sections and questions.

Question type strings are resolved here, once, into one of two variants:
ObjectiveQuestion (exact match) or SimilarityQuestion (free text). Everything
downstream dispatches on the variant, never on the raw type string.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from sqlmodel import Session, select

from exam_engine.errors import BadRequest, NotFound
from exam_engine.models import Exam, ExamStatus, Question, QuestionType, Section

OBJECTIVE_TYPES = frozenset({QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE})
SIMILARITY_TYPES = frozenset({QuestionType.SHORT_ANSWER, QuestionType.ESSAY})


@dataclass(frozen=True)
class ObjectiveQuestion:
    id: int
    type: QuestionType
    question_text: str
    correct_answer: str
    options: Tuple[str, ...]
    marks: float
    order: int
    explanation: Optional[str] = None


@dataclass(frozen=True)
class SimilarityQuestion:
    id: int
    type: QuestionType
    question_text: str
    correct_answer: str
    marks: float
    order: int
    explanation: Optional[str] = None

    @property
    def rubric(self) -> Optional[str]:
        return self.explanation


QuestionVariant = Union[ObjectiveQuestion, SimilarityQuestion]


@dataclass(frozen=True)
class SectionView:
    id: int
    title: str
    order: int
    questions: Tuple[QuestionVariant, ...]


@dataclass(frozen=True)
class ExamView:
    id: int
    title: str
    duration_minutes: int
    status: ExamStatus
    is_active: bool
    sections: Tuple[SectionView, ...]

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    @property
    def is_open_for_attempts(self) -> bool:
        return self.status == ExamStatus.PUBLISHED and self.is_active

    @property
    def questions(self) -> Tuple[QuestionVariant, ...]:
        """Every question of the exam, the union over all sections."""
        return tuple(q for section in self.sections for q in section.questions)

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def total_marks(self) -> float:
        return sum(q.marks for q in self.questions)

    def question_map(self) -> Dict[int, QuestionVariant]:
        return {q.id: q for q in self.questions}


def to_variant(question: Question) -> QuestionVariant:
    """Resolve a stored question into its scoring variant."""
    try:
        qtype = QuestionType(question.type)
    except ValueError:
        raise BadRequest(f"Unsupported question type '{question.type}' on question {question.id}")

    if qtype in OBJECTIVE_TYPES:
        return ObjectiveQuestion(
            id=question.id,
            type=qtype,
            question_text=question.question_text,
            correct_answer=question.correct_answer,
            options=tuple(question.options or ()),
            marks=float(question.marks),
            order=question.order,
            explanation=question.explanation,
        )
    if qtype in SIMILARITY_TYPES:
        return SimilarityQuestion(
            id=question.id,
            type=qtype,
            question_text=question.question_text,
            correct_answer=question.correct_answer,
            marks=float(question.marks),
            order=question.order,
            explanation=question.explanation,
        )
    raise BadRequest(f"Unsupported question type '{question.type}' on question {question.id}")


def get_exam_with_questions(session: Session, exam_id: int) -> ExamView:
    exam = session.get(Exam, exam_id)
    if not exam:
        raise NotFound(f"Exam with id={exam_id} does not exist")

    sections = session.exec(
        select(Section).where(Section.exam_id == exam_id).order_by(Section.order, Section.id)
    ).all()

    section_views = []
    for section in sections:
        questions = session.exec(
            select(Question)
            .where(Question.section_id == section.id)
            .order_by(Question.order, Question.id)
        ).all()
        section_views.append(
            SectionView(
                id=section.id,
                title=section.title,
                order=section.order,
                questions=tuple(to_variant(q) for q in questions),
            )
        )

    return ExamView(
        id=exam.id,
        title=exam.title,
        duration_minutes=exam.duration_minutes,
        status=ExamStatus(exam.status),
        is_active=exam.is_active,
        sections=tuple(section_views),
    )


def get_question(session: Session, question_id: int) -> QuestionVariant:
    question = session.get(Question, question_id)
    if not question:
        raise NotFound(f"Question with id={question_id} does not exist")
    return to_variant(question)


def get_exam_id_for_question(session: Session, question_id: int) -> int:
    question = session.get(Question, question_id)
    if not question:
        raise NotFound(f"Question with id={question_id} does not exist")
    section = session.get(Section, question.section_id)
    if not section:
        raise NotFound(f"Section with id={question.section_id} does not exist")
    return section.exam_id
