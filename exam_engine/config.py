"""Application settings loaded from the environment (and an optional .env file)."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    APP_NAME: str = "Online Exam Attempt & Scoring Service"

    # Database
    DATABASE_URL: str = "sqlite:///./online_exam.db"
    DATABASE_ECHO: bool = False  # toggle for debugging

    # Logging
    LOG_LEVEL: str = "INFO"

    # Embedding provider (OpenAI-compatible). No key means every
    # similarity call falls back to keyword overlap.
    EMBEDDING_API_URL: str = "https://api.openai.com/v1"
    EMBEDDING_API_KEY: Optional[str] = None
    EMBEDDING_MODEL: str = "text-embedding-ada-002"
    EMBEDDING_TIMEOUT_SECONDS: float = Field(default=20.0, gt=0)

    # Attempt rules
    MAX_CHEATING_WARNINGS: int = Field(default=3, ge=1)

    # Grading policy
    PASS_PERCENTAGE: float = Field(default=50.0, ge=0, le=100)
    AUTO_PUBLISH_RESULTS: bool = True
    SCORE_AGAINST_ALL_QUESTIONS: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
