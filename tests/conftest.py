"""Shared fixtures for the docsearch test suite."""
from __future__ import annotations

import pytest

from docsearch.config import Settings, reset_settings_cache
from docsearch.embeddings import EmbedderGateway, reset_embedder_cache
from docsearch.providers import MockCompletionProvider, MockEmbeddingProvider, reset_provider_cache
from docsearch.service import SearchService, reset_search_service_cache
from docsearch.storage import FileStorage
from docsearch.store import InMemoryDocumentStore, InMemoryGradeStore, reset_store_cache


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_caches():
    reset_settings_cache()
    reset_provider_cache()
    reset_embedder_cache()
    reset_store_cache()
    reset_search_service_cache()
    yield
    reset_settings_cache()
    reset_provider_cache()
    reset_embedder_cache()
    reset_store_cache()
    reset_search_service_cache()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        storage_dir=tmp_path / "data",
        chroma_persist_dir=tmp_path / "chroma",
        log_dir=tmp_path / "logs",
        provider_timeout_seconds=5.0,
    )


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider(dimension=32)


@pytest.fixture
def embedder(embedding_provider) -> EmbedderGateway:
    return EmbedderGateway(embedding_provider, timeout_seconds=5.0)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def completion_provider() -> MockCompletionProvider:
    return MockCompletionProvider()


@pytest.fixture
def service(settings, store, embedder, completion_provider) -> SearchService:
    return SearchService(
        store=store,
        embedder=embedder,
        completion_provider=completion_provider,
        grade_store=InMemoryGradeStore(),
        file_storage=FileStorage(settings.storage_dir),
        settings=settings,
    )
