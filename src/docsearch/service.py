"""Caller-facing search, upload and deletion operations."""
from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence

from docsearch.config import Settings, get_settings
from docsearch.embeddings import EmbedderGateway, get_embedder
from docsearch.errors import InputValidationError
from docsearch.evaluation import EvaluationHarness, QueryGenerator
from docsearch.ingest import PDF_MIME_TYPE, IngestPipeline, IngestResult
from docsearch.models import SearchAnswer, SourceFile, Turn
from docsearch.providers import CompletionProvider, get_completion_provider
from docsearch.ranking import SimilarityRanker
from docsearch.storage import FileStorage
from docsearch.store import (
    DocumentStore,
    GradeStore,
    InMemoryGradeStore,
    get_document_store,
    get_grade_store,
)
from docsearch.synthesis import AnswerSynthesizer
from docsearch.telemetry import emit_exception, log_event

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger("docsearch.ingest.audit")


@dataclass(slots=True)
class UploadOutcome:
    """Result of an upload; the stored object survives an ingestion failure."""

    storage_path: str
    result: Optional[IngestResult] = None
    error: Optional[BaseException] = None

    @property
    def ingested(self) -> bool:
        return self.result is not None


class SearchService:
    """Compose the embedder, store, ranker and synthesizer into one pipeline."""

    def __init__(
        self,
        *,
        store: DocumentStore,
        embedder: EmbedderGateway,
        completion_provider: Optional[CompletionProvider] = None,
        grade_store: Optional[GradeStore] = None,
        file_storage: Optional[FileStorage] = None,
        settings: Optional[Settings] = None,
        ranker: Optional[SimilarityRanker] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.embedder = embedder
        self.completion_provider = completion_provider
        self.file_storage = file_storage or FileStorage(self.settings.storage_dir)
        self._rank_executor: Optional[ThreadPoolExecutor] = None
        if ranker is None and self.settings.rank_offload:
            self._rank_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="docsearch-rank")
        self.ranker = ranker or SimilarityRanker(top_k=self.settings.rank_top_k, executor=self._rank_executor)
        default_mode = self.settings.answer_mode if completion_provider is not None else "extractive"
        self.synthesizer = AnswerSynthesizer(
            completion_provider,
            default_mode=default_mode,
            cache_ttl_seconds=self.settings.query_cache_ttl_seconds,
            timeout_seconds=self.settings.provider_timeout_seconds,
        )
        self.pipeline = IngestPipeline(store, embedder, settings=self.settings)

        self.grade_store = grade_store or InMemoryGradeStore()
        generator = (
            QueryGenerator(store, self.grade_store, completion_provider, settings=self.settings)
            if completion_provider is not None
            else None
        )
        self.harness = EvaluationHarness(self._search_for_harness, store, self.grade_store, generator)

    async def search(
        self,
        query: str,
        organization_id: str,
        conversation_history: Sequence[Turn] | None = None,
        *,
        mode: str | None = None,
    ) -> SearchAnswer:
        """Answer ``query`` from the organization's documents.

        Returns the no-match sentinel when nothing relevant is found. Embedding,
        store and generation failures propagate to the caller.
        """

        if not query or not query.strip():
            raise InputValidationError("Query is required")
        if not organization_id:
            raise InputValidationError("Organization ID is required")

        req_id = uuid.uuid4().hex
        started = time.perf_counter()
        try:
            query_embedding = await self.embedder.embed_query(query)
            candidates = self.store.fetch_candidates(organization_id, self.settings.candidate_limit)
            ranked = await self.ranker.arank(query_embedding, query, candidates)
            answer = await self.synthesizer.synthesize(query, ranked, conversation_history, mode)
        except Exception as error:
            emit_exception(module=__name__, error=error, req_id=req_id, organization_id=organization_id)
            raise

        log_event(
            LOGGER,
            "search.complete",
            req_id=req_id,
            organization_id=organization_id,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            candidates=len(candidates),
            ranked=len(ranked),
            no_match=answer.is_no_match,
        )
        AUDIT_LOGGER.info(
            {
                "event": "query",
                "organization_id": organization_id,
                "req_id": req_id,
                "similarity": round(answer.similarity, 4),
                "no_match": answer.is_no_match,
            }
        )
        return answer

    async def _search_for_harness(self, query: str, organization_id: str) -> SearchAnswer:
        return await self.search(query, organization_id)

    async def upload_file(
        self,
        organization_id: str,
        file_name: str,
        data: bytes,
        mime_type: str | None,
    ) -> UploadOutcome:
        """Store the upload, then ingest it.

        Validation happens before anything is written. An ingestion failure
        after the object is stored is reported in the outcome and the stored
        object is kept.
        """

        if not data:
            raise InputValidationError("File is required")
        if not organization_id:
            raise InputValidationError("Organization ID is required")
        if mime_type != PDF_MIME_TYPE:
            raise InputValidationError("Invalid file type. Only PDF files are supported.")

        storage_path = self.file_storage.save(organization_id, file_name, data)
        try:
            result = await self.pipeline.ingest(
                organization_id,
                file_name,
                storage_path,
                data,
                mime_type,
                file_size=len(data),
            )
        except Exception as error:
            emit_exception(
                module=__name__,
                error=error,
                organization_id=organization_id,
                suggestion="Upload kept in storage; re-run ingestion once the failure is resolved.",
            )
            return UploadOutcome(storage_path=storage_path, error=error)
        return UploadOutcome(storage_path=storage_path, result=result)

    def list_files(self, organization_id: str) -> list[SourceFile]:
        return self.store.list_files(organization_id)

    def delete_file(self, file_id: str, storage_path: str) -> int:
        """Remove the stored object, then the file record and its chunks."""

        if not storage_path:
            raise InputValidationError("File path is required")
        self.file_storage.delete(storage_path)
        removed = self.store.delete_file(file_id, storage_path)
        AUDIT_LOGGER.info({"event": "delete", "file_id": file_id, "storage_path": storage_path, "chunks": removed})
        return removed

    def close(self) -> None:
        """Release the ranking worker thread when this service created one."""

        if self._rank_executor is not None:
            self.ranker.executor = None
            self._rank_executor.shutdown(wait=False)
            self._rank_executor = None


@lru_cache(maxsize=1)
def get_search_service() -> SearchService:
    settings = get_settings()
    return SearchService(
        store=get_document_store(),
        embedder=get_embedder(),
        completion_provider=get_completion_provider(),
        grade_store=get_grade_store(),
        settings=settings,
    )


def reset_search_service_cache() -> None:
    if get_search_service.cache_info().currsize:
        get_search_service().close()
    get_search_service.cache_clear()


__all__ = ["SearchService", "UploadOutcome", "get_search_service", "reset_search_service_cache"]
