import asyncio

import pytest

from docsearch.cache import TTLCache
from docsearch.embeddings import EmbedderGateway
from docsearch.errors import EmbeddingError
from docsearch.providers import EmbeddingProvider, MockEmbeddingProvider
from docsearch.ranking import cosine_similarity


class FailingProvider(EmbeddingProvider):
    model_name = "failing"

    async def embed(self, text: str) -> list[float]:
        raise RuntimeError("quota exceeded")


class SlowProvider(EmbeddingProvider):
    model_name = "slow"

    async def embed(self, text: str) -> list[float]:
        await asyncio.sleep(1)
        return [1.0]


class EmptyProvider(EmbeddingProvider):
    async def embed(self, text: str) -> list[float]:
        return []


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_mock_provider_is_deterministic_and_vocabulary_sensitive():
    provider = MockEmbeddingProvider(dimension=256)
    first = provider.embed_sync("brick cheese blend")
    assert first == provider.embed_sync("brick cheese blend")
    assert len(first) == 256

    related = cosine_similarity(first, provider.embed_sync("brick cheese on pizza"))
    unrelated = cosine_similarity(first, provider.embed_sync("delivery driver schedule"))
    assert related > unrelated


def test_mock_provider_rejects_invalid_dimension():
    with pytest.raises(ValueError):
        MockEmbeddingProvider(dimension=0)


@pytest.mark.anyio
async def test_embed_query_is_cached_until_ttl_expires():
    provider = MockEmbeddingProvider(dimension=8)
    clock = Clock()
    gateway = EmbedderGateway(provider, query_cache=TTLCache(300, clock=clock))

    first = await gateway.embed_query("late delivery")
    second = await gateway.embed_query("late delivery")
    assert first == second
    assert provider.calls == ["late delivery"]

    clock.now = 301
    await gateway.embed_query("late delivery")
    assert provider.calls == ["late delivery", "late delivery"]


@pytest.mark.anyio
async def test_embed_many_calls_provider_once_per_text():
    provider = MockEmbeddingProvider(dimension=8)
    gateway = EmbedderGateway(provider)

    vectors = await gateway.embed_many(["a text", "b text", "a text"])

    assert len(vectors) == 3
    assert sorted(provider.calls) == ["a text", "a text", "b text"]
    assert await gateway.embed_many([]) == []


@pytest.mark.anyio
async def test_provider_failure_is_wrapped():
    gateway = EmbedderGateway(FailingProvider())

    with pytest.raises(EmbeddingError, match="quota exceeded") as excinfo:
        await gateway.embed("text")
    assert not excinfo.value.retryable
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.anyio
async def test_timeout_is_retryable_embedding_error():
    gateway = EmbedderGateway(SlowProvider(), timeout_seconds=0.01)

    with pytest.raises(EmbeddingError) as excinfo:
        await gateway.embed("text")
    assert excinfo.value.retryable


@pytest.mark.anyio
async def test_empty_vector_is_an_error():
    with pytest.raises(EmbeddingError):
        await EmbedderGateway(EmptyProvider()).embed("text")
