"""HTTP client for an OpenAI-compatible embeddings endpoint."""

import logging
from typing import List, Optional, Protocol

import httpx

from exam_engine.config import Settings
from exam_engine.errors import ScoringProviderError

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> List[float]: ...


class EmbeddingClient:
    """Fetches embedding vectors; every failure is raised as ScoringProviderError."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        model: str,
        timeout_seconds: float,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self._client = httpx.Client(base_url=api_url, timeout=timeout_seconds, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmbeddingClient":
        return cls(
            api_url=settings.EMBEDDING_API_URL,
            api_key=settings.EMBEDDING_API_KEY,
            model=settings.EMBEDDING_MODEL,
            timeout_seconds=settings.EMBEDDING_TIMEOUT_SECONDS,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def embed(self, text: str) -> List[float]:
        if not self.is_configured:
            raise ScoringProviderError("Embedding provider is not configured")

        try:
            response = self._client.post(
                "/embeddings",
                json={"model": self.model, "input": text},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            embedding = response.json()["data"][0]["embedding"]
            return [float(value) for value in embedding]
        except httpx.TimeoutException as e:
            raise ScoringProviderError("Embedding request timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                reason = "invalid API credentials"
            elif status == 429:
                reason = "rate limit exceeded"
            else:
                reason = f"HTTP {status}"
            raise ScoringProviderError(f"Embedding request failed: {reason}") from e
        except httpx.HTTPError as e:
            raise ScoringProviderError(f"Embedding request failed: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ScoringProviderError("Malformed embedding response") from e

    def close(self) -> None:
        self._client.close()
