"""SQLModel models for exam attempts, answers and results.

Exam, Section and Question are owned by the authoring subsystem; the attempt
and scoring services only ever read them.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

from exam_engine.utils import as_utc, format_duration, utcnow


class ExamStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    SUBMITTED = "submitted"
    TIMED_OUT = "timed_out"
    DISQUALIFIED = "disqualified"


TERMINAL_STATUSES = frozenset(
    {AttemptStatus.SUBMITTED, AttemptStatus.TIMED_OUT, AttemptStatus.DISQUALIFIED}
)


class ViolationType(str, Enum):
    PAGE_REFRESH = "page_refresh"
    TAB_SWITCH = "tab_switch"
    TAB_CLOSE = "tab_close"
    DEVTOOLS_ACCESS = "devtools_access"
    RIGHT_CLICK = "right_click"
    VIEW_SOURCE = "view_source"
    KEYBOARD_SHORTCUT = "keyboard_shortcut"


class Grade(str, Enum):
    A_PLUS = "A+"
    A = "A"
    B_PLUS = "B+"
    B = "B"
    C_PLUS = "C+"
    C = "C"
    D = "D"
    F = "F"


class UTCDateTime(TypeDecorator):
    """Stores UTC as a plain DATETIME and always hands back aware UTC values."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return as_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        return as_utc(value)


class Student(SQLModel, table=True):
    """Basic student record; managed by the roster subsystem."""

    __table_args__ = (UniqueConstraint("email", name="uq_student_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str
    matric_no: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# --- Question bank (read-only to the core) ---


class Exam(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    duration_minutes: int
    status: ExamStatus = Field(default=ExamStatus.DRAFT)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Section(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    title: str
    order: int = Field(default=0)


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    section_id: int = Field(foreign_key="section.id", index=True)
    question_text: str
    type: QuestionType
    correct_answer: str
    options: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    marks: float
    order: int = Field(default=0)
    # Doubles as the grading rubric for free-text questions
    explanation: Optional[str] = None


# --- Attempt lifecycle ---


class ExamAttempt(SQLModel, table=True):
    """One student's session against one exam."""

    __table_args__ = (
        UniqueConstraint("student_id", "exam_id", name="uq_attempt_student_exam"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    student_id: int = Field(foreign_key="student.id", index=True)
    status: AttemptStatus = Field(default=AttemptStatus.IN_PROGRESS)

    # started_at is the wall-clock reference point; it is reset on resume
    started_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    paused_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    resumed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    submitted_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    time_spent: int = Field(default=0)  # seconds

    questions_answered: int = Field(default=0)
    total_questions: int = Field(default=0)

    # Written at scoring time, refreshed when an answer is regraded or marked
    score: float = Field(default=0)
    total_marks: float = Field(default=0)
    percentage: float = Field(default=0)
    is_graded: bool = Field(default=False)

    cheating_warnings: int = Field(default=0)
    max_cheating_warnings: int = Field(default=3)
    cheating_violations: List[dict] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def remaining_cheating_warnings(self) -> int:
        return max(0, self.max_cheating_warnings - self.cheating_warnings)

    @property
    def should_auto_submit(self) -> bool:
        return self.cheating_warnings >= self.max_cheating_warnings

    @property
    def progress_percentage(self) -> int:
        if not self.total_questions:
            return 0
        return round(self.questions_answered / self.total_questions * 100)

    @property
    def formatted_time_spent(self) -> str:
        return format_duration(self.time_spent)


class Answer(SQLModel, table=True):
    """Answer to one question within an attempt."""

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key="examattempt.id", index=True)
    question_id: int = Field(foreign_key="question.id")
    student_id: int = Field(foreign_key="student.id")
    answer_text: Optional[str] = None
    selected_options: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))

    # Captured from the question's marks when the answer is first saved
    max_score: float
    score: float = Field(default=0)
    is_correct: Optional[bool] = None
    is_graded: bool = Field(default=False)
    feedback: Optional[str] = None
    # 1.0 for objective and manual marks, the similarity for free text, 0.5 on fallback
    confidence: Optional[float] = None

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def formatted_answer(self) -> str:
        """The submitted answer as scored: typed text first, else the selected options."""
        if self.answer_text:
            return self.answer_text
        return ", ".join(self.selected_options or [])


# --- Results ---


class Result(SQLModel, table=True):
    """The durable, student-visible outcome of one attempt."""

    __table_args__ = (UniqueConstraint("attempt_id", name="uq_result_attempt"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key="examattempt.id")
    student_id: int = Field(foreign_key="student.id", index=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)

    score: float
    total_marks: float
    percentage: float
    grade: Grade
    rank: int
    total_students: int

    questions_answered: int
    total_questions: int
    correct_answers: int
    wrong_answers: int
    time_spent: int

    is_passed: bool = Field(default=False)
    pass_percentage: float
    is_published: bool = Field(default=False)
    published_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def formatted_percentage(self) -> str:
        return f"{self.percentage:.2f}%"

    @property
    def accuracy_percentage(self) -> int:
        if not self.questions_answered:
            return 0
        return round(self.correct_answers / self.questions_answered * 100)
