"""Embedding and text-generation providers plus their cached factories."""
from __future__ import annotations

import logging
from functools import lru_cache

from docsearch.config import get_settings

from .base import ChatMessage, CompletionOptions, CompletionProvider, EmbeddingProvider
from .mock_embedding import MockEmbeddingProvider
from .mock_llm import MockCompletionProvider

LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_embedding_provider() -> EmbeddingProvider:
    """Return the embedding provider selected by ``EMBEDDING_PROVIDER``."""

    settings = get_settings()
    name = settings.embedding_provider
    if name == "openai":
        from .openai_provider import OpenAIEmbeddingProvider

        return OpenAIEmbeddingProvider(settings.embedding_model, api_key=settings.openai_api_key)
    if name in {"sentence-transformers", "local"}:
        from .sentence_transformers_provider import SentenceTransformerEmbeddingProvider

        return SentenceTransformerEmbeddingProvider(settings.local_embedding_model)
    if name != "mock":
        raise ValueError(f"Unknown embedding provider: {name}")
    LOGGER.info("Using deterministic mock embeddings")
    return MockEmbeddingProvider()


@lru_cache(maxsize=1)
def get_completion_provider() -> CompletionProvider:
    """Return the text-generation provider selected by ``COMPLETION_PROVIDER``."""

    settings = get_settings()
    name = settings.completion_provider
    if name == "openai":
        from .openai_provider import OpenAICompletionProvider

        return OpenAICompletionProvider(settings.completion_model, api_key=settings.openai_api_key)
    if name != "mock":
        raise ValueError(f"Unknown completion provider: {name}")
    LOGGER.info("Using mock completion provider")
    return MockCompletionProvider()


def reset_provider_cache() -> None:
    get_embedding_provider.cache_clear()
    get_completion_provider.cache_clear()


__all__ = [
    "ChatMessage",
    "CompletionOptions",
    "CompletionProvider",
    "EmbeddingProvider",
    "MockCompletionProvider",
    "MockEmbeddingProvider",
    "get_completion_provider",
    "get_embedding_provider",
    "reset_provider_cache",
]
