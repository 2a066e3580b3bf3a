"""Document and grade stores with pluggable backends."""
from __future__ import annotations

from functools import lru_cache

from docsearch.config import get_settings

from .base import DEFAULT_CANDIDATE_LIMIT, DocumentStore
from .grades import GradeStore, InMemoryGradeStore, JsonlGradeStore
from .memory import InMemoryDocumentStore


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStore:
    """Return the document store selected by ``DOCUMENT_STORE``."""

    settings = get_settings()
    backend = settings.document_store
    if backend == "chroma":
        from .chroma_store import ChromaDocumentStore

        return ChromaDocumentStore(settings.chroma_persist_dir)
    if backend != "memory":
        raise ValueError(f"Unknown document store backend: {backend}")
    return InMemoryDocumentStore()


@lru_cache(maxsize=1)
def get_grade_store() -> GradeStore:
    settings = get_settings()
    if settings.grades_path is not None:
        return JsonlGradeStore(settings.grades_path)
    return InMemoryGradeStore()


def reset_store_cache() -> None:
    get_document_store.cache_clear()
    get_grade_store.cache_clear()


__all__ = [
    "DEFAULT_CANDIDATE_LIMIT",
    "DocumentStore",
    "GradeStore",
    "InMemoryDocumentStore",
    "InMemoryGradeStore",
    "JsonlGradeStore",
    "get_document_store",
    "get_grade_store",
    "reset_store_cache",
]
