"""Gateway between the pipeline and the configured embedding provider."""
from __future__ import annotations

import asyncio
import logging
import time
from functools import lru_cache
from typing import List, Sequence

from docsearch.cache import TTLCache
from docsearch.config import get_settings
from docsearch.errors import EmbeddingError
from docsearch.providers import EmbeddingProvider, get_embedding_provider
from docsearch.telemetry import emit_embeddings_event

LOGGER = logging.getLogger(__name__)


class EmbedderGateway:
    """Turn text into vectors with a timeout, error wrapping and a query cache.

    ``embed`` and ``embed_many`` always call the provider, once per text.
    ``embed_query`` answers repeated queries from a TTL cache keyed on the
    exact query string.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        timeout_seconds: float | None = 30.0,
        query_cache: TTLCache[str, List[float]] | None = None,
        query_cache_ttl_seconds: float = 300.0,
    ) -> None:
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.query_cache: TTLCache[str, List[float]] = query_cache or TTLCache(query_cache_ttl_seconds)

    @property
    def model_name(self) -> str:
        return getattr(self.provider, "model_name", type(self.provider).__name__)

    async def embed(self, text: str) -> List[float]:
        started = time.perf_counter()
        try:
            call = self.provider.embed(text)
            if self.timeout_seconds is not None:
                vector = await asyncio.wait_for(call, timeout=self.timeout_seconds)
            else:
                vector = await call
        except asyncio.TimeoutError as error:
            self._report(started, 1, errors=["timeout"])
            raise EmbeddingError(
                f"Embedding request timed out after {self.timeout_seconds}s",
                retryable=True,
                cause=error,
            ) from error
        except EmbeddingError:
            self._report(started, 1, errors=["embedding_error"])
            raise
        except Exception as error:
            self._report(started, 1, errors=[str(error)])
            raise EmbeddingError(f"Embedding request failed: {error}", cause=error) from error

        if not vector:
            self._report(started, 1, errors=["empty_vector"])
            raise EmbeddingError("Embedding provider returned an empty vector")
        self._report(started, 1)
        return [float(value) for value in vector]

    async def embed_query(self, query: str) -> List[float]:
        cached = self.query_cache.get(query)
        if cached is not None:
            emit_embeddings_event(model=self.model_name, count=1, duration_ms=0.0, cached=True)
            return list(cached)
        vector = await self.embed(query)
        self.query_cache.set(query, vector)
        return list(vector)

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed every text concurrently; the first failure fails the batch."""

        if not texts:
            return []
        return list(await asyncio.gather(*(self.embed(text) for text in texts)))

    def _report(self, started: float, count: int, *, errors: list[str] | None = None) -> None:
        emit_embeddings_event(
            model=self.model_name,
            count=count,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            errors=errors,
        )


@lru_cache(maxsize=1)
def get_embedder() -> EmbedderGateway:
    settings = get_settings()
    return EmbedderGateway(
        get_embedding_provider(),
        timeout_seconds=settings.provider_timeout_seconds,
        query_cache_ttl_seconds=settings.query_cache_ttl_seconds,
    )


def reset_embedder_cache() -> None:
    get_embedder.cache_clear()


__all__ = ["EmbedderGateway", "get_embedder", "reset_embedder_cache"]
