"""Ingestion pipeline: validate, extract, chunk, embed and store a PDF."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from docsearch.config import Settings, get_settings
from docsearch.embeddings import EmbedderGateway
from docsearch.errors import InputValidationError
from docsearch.models import DocumentChunk, SourceFile
from docsearch.store import DocumentStore
from docsearch.telemetry import emit_ingest_event, traced_duration

from .chunking import chunk_text
from .extractors import PDFExtractor

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger("docsearch.ingest.audit")

PDF_MIME_TYPE = "application/pdf"


@dataclass(slots=True)
class IngestResult:
    source_file: SourceFile
    chunk_count: int
    page_count: int
    duration_seconds: float


def validate_upload(
    organization_id: str | None,
    storage_path: str | None,
    data: bytes | None,
    mime_type: str | None,
) -> None:
    """Reject an upload before any external call is made."""

    if not data:
        raise InputValidationError("File is required")
    if not organization_id:
        raise InputValidationError("Organization ID is required")
    if not storage_path:
        raise InputValidationError("File path is required")
    if mime_type != PDF_MIME_TYPE:
        raise InputValidationError("Invalid file type. Only PDF files are supported.")


class IngestPipeline:
    """Turn an uploaded PDF into embedded, organization-scoped chunks."""

    def __init__(
        self,
        store: DocumentStore,
        embedder: EmbedderGateway,
        *,
        extractor: PDFExtractor | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.extractor = extractor or PDFExtractor()
        self.settings = settings or get_settings()

    async def ingest(
        self,
        organization_id: str,
        file_name: str,
        storage_path: str,
        data: bytes,
        mime_type: str | None,
        *,
        file_size: Optional[int] = None,
    ) -> IngestResult:
        validate_upload(organization_id, storage_path, data, mime_type)
        started = time.perf_counter()
        size = file_size if file_size is not None else len(data)
        emit_ingest_event("ingest.start", file_name=file_name, organization_id=organization_id, size_bytes=size)

        with traced_duration("ingest.extract", logger=LOGGER, file=file_name):
            document = self.extractor.extract(data)
        return await self.ingest_text(
            organization_id,
            file_name,
            storage_path,
            document.text,
            page_count=document.page_count,
            file_size=size,
            mime_type=mime_type or PDF_MIME_TYPE,
            started=started,
        )

    async def ingest_text(
        self,
        organization_id: str,
        file_name: str,
        storage_path: str,
        text: str,
        *,
        page_count: int = 1,
        file_size: int = 0,
        mime_type: str = PDF_MIME_TYPE,
        started: float | None = None,
    ) -> IngestResult:
        """Chunk, embed and store already-extracted text.

        The file record stays ``has_embeddings=False`` unless every chunk is
        stored; an embedding failure inserts nothing for this file.
        """

        started = started if started is not None else time.perf_counter()
        drafts = chunk_text(text, self.settings.max_chunk_size)
        source_file = self.store.create_file(
            SourceFile(
                organization_id=organization_id,
                file_name=file_name,
                storage_path=storage_path,
                file_type=mime_type,
                file_size=file_size,
                has_embeddings=False,
            )
        )

        try:
            embeddings = await self.embedder.embed_many([draft.text for draft in drafts])
        except Exception as error:
            self._audit(organization_id, file_name, storage_path, status="error", chunks=len(drafts), error=error)
            raise

        chunks: List[DocumentChunk] = [
            DocumentChunk(
                content=draft.text,
                embedding=embedding,
                organization_id=organization_id,
                source_file_name=file_name,
                storage_path=storage_path,
                chunk_index=draft.chunk_index,
                total_chunks=draft.total_chunks,
                page_count=page_count,
            )
            for draft, embedding in zip(drafts, embeddings)
        ]
        self.store.insert_chunks(chunks)
        source_file = self.store.mark_ingested(storage_path)

        duration = time.perf_counter() - started
        emit_ingest_event(
            "ingest.complete",
            file_name=file_name,
            organization_id=organization_id,
            size_bytes=file_size,
            duration_ms=duration * 1000.0,
            pages=page_count,
            chunks=len(chunks),
        )
        self._audit(organization_id, file_name, storage_path, status="ok", chunks=len(chunks))
        return IngestResult(
            source_file=source_file,
            chunk_count=len(chunks),
            page_count=page_count,
            duration_seconds=duration,
        )

    @staticmethod
    def _audit(
        organization_id: str,
        file_name: str,
        storage_path: str,
        *,
        status: str,
        chunks: int,
        error: BaseException | None = None,
    ) -> None:
        record = {
            "event": "ingest",
            "organization_id": organization_id,
            "file": file_name,
            "storage_path": storage_path,
            "status": status,
            "chunks": chunks,
        }
        if error is not None:
            record["error"] = str(error)
            AUDIT_LOGGER.warning(record)
        else:
            AUDIT_LOGGER.info(record)


__all__ = ["IngestPipeline", "IngestResult", "PDF_MIME_TYPE", "validate_upload"]
