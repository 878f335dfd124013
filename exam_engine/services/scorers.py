"""Per-answer scorers.

ObjectiveScorer handles multiple-choice and true/false questions by normalized
exact match. SimilarityScorer handles short-answer and essay questions by
embedding similarity mapped onto discrete mark bands, and degrades to a local
keyword-overlap heuristic whenever the embedding provider fails.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from exam_engine.errors import ScoringProviderError
from exam_engine.services.embedding_client import EmbeddingProvider
from exam_engine.services.question_bank import ObjectiveQuestion, SimilarityQuestion
from exam_engine.utils import normalize_answer, round_half_up

logger = logging.getLogger(__name__)

# (minimum similarity, fraction of marks awarded), highest band first
SIMILARITY_BANDS: Tuple[Tuple[float, float], ...] = (
    (0.90, 1.0),
    (0.80, 0.8),
    (0.65, 0.6),
    (0.50, 0.4),
    (0.35, 0.2),
)

NO_ANSWER_FEEDBACK = "No answer provided."
FALLBACK_CONFIDENCE = 0.5


@dataclass(frozen=True)
class ScoreOutcome:
    score: float
    is_correct: bool
    feedback: str
    confidence: float
    used_fallback: bool = False


class ObjectiveScorer:
    def score(self, question: ObjectiveQuestion, submitted: str, max_marks: float) -> ScoreOutcome:
        is_correct = normalize_answer(question.correct_answer) == normalize_answer(submitted)
        return ScoreOutcome(
            score=float(max_marks) if is_correct else 0.0,
            is_correct=is_correct,
            feedback="Correct answer!" if is_correct else "Incorrect answer.",
            confidence=1.0,
        )


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    a = np.asarray(vector_a, dtype=float)
    b = np.asarray(vector_b, dtype=float)
    if a.shape != b.shape:
        raise ScoringProviderError("Embedding vectors must have the same length")

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def band_fraction(similarity: float, bands: Sequence[Tuple[float, float]] = SIMILARITY_BANDS) -> float:
    for threshold, fraction in bands:
        if similarity >= threshold:
            return fraction
    return 0.0


def similarity_feedback(similarity: float) -> str:
    percentage = similarity * 100
    if percentage >= 90:
        return "Excellent answer! Very close to the expected response."
    if percentage >= 75:
        return "Good answer! Shows strong understanding of the topic."
    if percentage >= 60:
        return "Fair answer. Some key points are covered but could be improved."
    if percentage >= 40:
        return "Partial answer. Some relevant points mentioned but missing key concepts."
    if percentage >= 20:
        return "Limited answer. Very few relevant points covered."
    return "Insufficient answer. Does not adequately address the question."


def _keywords(text: str):
    return [word for word in (text or "").lower().split() if len(word) > 2]


def keyword_overlap_score(correct_answer: str, student_answer: str, max_marks: float) -> ScoreOutcome:
    """Local fallback: share of expected keywords the student's answer touches."""
    correct_keywords = _keywords(correct_answer)
    student_keywords = _keywords(student_answer)

    matching = [
        keyword
        for keyword in correct_keywords
        if any(word in keyword or keyword in word for word in student_keywords)
    ]
    ratio = len(matching) / len(correct_keywords) if correct_keywords else 0.0
    score = float(min(round_half_up(max_marks * ratio), max_marks))

    if ratio >= 0.8:
        feedback = "Good answer with most key points covered."
    elif ratio >= 0.5:
        feedback = "Partial answer with some key points covered."
    elif ratio > 0:
        feedback = "Answer partially correct but missing key points."
    else:
        feedback = "Answer does not match the expected response."

    return ScoreOutcome(
        score=score,
        is_correct=score > 0,
        feedback=feedback,
        confidence=FALLBACK_CONFIDENCE,
        used_fallback=True,
    )


class SimilarityScorer:
    """Scores free-text answers; never raises on provider failure."""

    def __init__(
        self,
        provider: Optional[EmbeddingProvider],
        bands: Sequence[Tuple[float, float]] = SIMILARITY_BANDS,
    ):
        self.provider = provider
        self.bands = tuple(bands)

    def score(self, question: SimilarityQuestion, answer_text: Optional[str], max_marks: float) -> ScoreOutcome:
        if not answer_text or not answer_text.strip():
            return ScoreOutcome(score=0.0, is_correct=False, feedback=NO_ANSWER_FEEDBACK, confidence=1.0)

        try:
            similarity = self.similarity(question, answer_text)
        except Exception as e:
            # Timeouts, auth errors, quota or a misbehaving provider all land here
            logger.warning(
                "Similarity provider failed for question %s, using keyword fallback: %s",
                question.id,
                e,
            )
            return keyword_overlap_score(question.correct_answer, answer_text, max_marks)

        fraction = band_fraction(similarity, self.bands)
        score = float(min(round_half_up(max_marks * fraction), max_marks))
        return ScoreOutcome(
            score=score,
            is_correct=score > 0,
            feedback=similarity_feedback(similarity),
            confidence=similarity,
        )

    def similarity(self, question: SimilarityQuestion, answer_text: str) -> float:
        """Cosine similarity of the contextualized texts, clamped to [0, 1]."""
        if self.provider is None:
            raise ScoringProviderError("No embedding provider available")

        parts = [question.question_text, question.correct_answer]
        if question.rubric:
            parts.append(question.rubric)
        context_correct = " ".join(parts)
        context_student = f"{question.question_text} {answer_text}"

        raw = cosine_similarity(
            self.provider.embed(context_correct),
            self.provider.embed(context_student),
        )
        return min(1.0, max(0.0, raw))
