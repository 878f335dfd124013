"""Shared FastAPI dependencies wiring the scoring pipeline together."""

from functools import lru_cache

from fastapi import Depends

from exam_engine.config import Settings, get_settings
from exam_engine.services.embedding_client import EmbeddingClient
from exam_engine.services.result_service import GradingPolicy, ResultBuilder
from exam_engine.services.scorers import SimilarityScorer
from exam_engine.services.scoring_service import ScoringEngine


@lru_cache
def get_embedding_client() -> EmbeddingClient:
    """One pooled HTTP client per process."""
    return EmbeddingClient.from_settings(get_settings())


def close_embedding_client() -> None:
    """Close the pooled HTTP client, if one was created, and forget it."""
    if get_embedding_client.cache_info().currsize:
        get_embedding_client().close()
    get_embedding_client.cache_clear()


def get_similarity_scorer() -> SimilarityScorer:
    return SimilarityScorer(get_embedding_client())


def get_scoring_engine(
    similarity_scorer: SimilarityScorer = Depends(get_similarity_scorer),
    settings: Settings = Depends(get_settings),
) -> ScoringEngine:
    return ScoringEngine(
        similarity_scorer,
        score_against_all_questions=settings.SCORE_AGAINST_ALL_QUESTIONS,
    )


def get_grading_policy(settings: Settings = Depends(get_settings)) -> GradingPolicy:
    return GradingPolicy.from_settings(settings)


def get_result_builder(
    scoring_engine: ScoringEngine = Depends(get_scoring_engine),
    policy: GradingPolicy = Depends(get_grading_policy),
) -> ResultBuilder:
    return ResultBuilder(scoring_engine, policy)
