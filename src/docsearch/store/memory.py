"""In-memory document store with optional JSON persistence."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from docsearch.errors import StoreError
from docsearch.models import DocumentChunk, SourceFile
from docsearch.telemetry import emit_store_event

from .base import (
    DEFAULT_CANDIDATE_LIMIT,
    DocumentStore,
    check_dimension,
    file_from_record,
    file_to_record,
    stale_positions,
    write_json_atomic,
)

LOGGER = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Keep chunks and file records in dictionaries.

    When ``persist_path`` is given the state is loaded from and written back to
    a JSON file after every mutation.
    """

    backend_name = "memory"

    def __init__(self, persist_path: str | Path | None = None) -> None:
        self._chunks: Dict[str, DocumentChunk] = {}
        self._files: Dict[str, SourceFile] = {}
        self._dimension: int | None = None
        self._persist_path = Path(persist_path) if persist_path else None
        if self._persist_path is not None:
            self._load()

    def fetch_candidates(self, organization_id: str, limit: int = DEFAULT_CANDIDATE_LIMIT) -> List[DocumentChunk]:
        if limit <= 0:
            return []
        candidates: List[DocumentChunk] = []
        for chunk in self._chunks.values():
            if chunk.organization_id != organization_id:
                continue
            candidates.append(chunk)
            if len(candidates) >= limit:
                break
        emit_store_event(
            "store.fetch_candidates",
            backend=self.backend_name,
            organization_id=organization_id,
            count=len(candidates),
        )
        return candidates

    def fetch_file_chunks(
        self, organization_id: str, file_name: str, limit: int | None = None
    ) -> List[DocumentChunk]:
        chunks = sorted(
            (
                chunk
                for chunk in self._chunks.values()
                if chunk.organization_id == organization_id and chunk.source_file_name == file_name
            ),
            key=lambda chunk: chunk.chunk_index,
        )
        return chunks if limit is None else chunks[:limit]

    def insert_chunks(self, chunks: Sequence[DocumentChunk]) -> List[str]:
        if not chunks:
            return []
        self._dimension = check_dimension(chunks, self._dimension)

        for (organization_id, file_name), total in stale_positions(chunks).items():
            stale = [
                chunk_id
                for chunk_id, chunk in self._chunks.items()
                if chunk.organization_id == organization_id
                and chunk.source_file_name == file_name
                and chunk.chunk_index > total
            ]
            for chunk_id in stale:
                del self._chunks[chunk_id]

        ids: List[str] = []
        for chunk in chunks:
            self._chunks[chunk.id] = chunk
            ids.append(chunk.id)
        self._save()
        emit_store_event(
            "store.insert_chunks",
            backend=self.backend_name,
            organization_id=chunks[0].organization_id,
            count=len(ids),
        )
        return ids

    def create_file(self, source_file: SourceFile) -> SourceFile:
        existing = self.get_file_by_path(source_file.storage_path)
        if existing is not None:
            existing.has_embeddings = False
            existing.file_size = source_file.file_size
            self._save()
            return existing
        self._files[source_file.id] = source_file
        self._save()
        return source_file

    def get_file_by_path(self, storage_path: str) -> Optional[SourceFile]:
        for source_file in self._files.values():
            if source_file.storage_path == storage_path:
                return source_file
        return None

    def list_files(
        self,
        organization_id: str,
        *,
        file_type: str | None = None,
        ingested_only: bool = False,
    ) -> List[SourceFile]:
        files = [
            source_file
            for source_file in self._files.values()
            if source_file.organization_id == organization_id
            and (file_type is None or source_file.file_type == file_type)
            and (not ingested_only or source_file.has_embeddings)
        ]
        return sorted(files, key=lambda source_file: source_file.created_at, reverse=True)

    def mark_ingested(self, storage_path: str) -> SourceFile:
        source_file = self.get_file_by_path(storage_path)
        if source_file is None:
            raise StoreError(f"No file record for storage path {storage_path}")
        source_file.has_embeddings = True
        self._save()
        return source_file

    def delete_file(self, file_id: str, storage_path: str) -> int:
        removed = [
            chunk_id for chunk_id, chunk in self._chunks.items() if chunk.storage_path == storage_path
        ]
        for chunk_id in removed:
            del self._chunks[chunk_id]
        self._files = {
            key: source_file
            for key, source_file in self._files.items()
            if key != file_id and source_file.storage_path != storage_path
        }
        if not self._chunks:
            self._dimension = None
        self._save()
        emit_store_event("store.delete_file", backend=self.backend_name, count=len(removed))
        return len(removed)

    def _load(self) -> None:
        if self._persist_path is None or not self._persist_path.exists():
            return
        try:
            payload = json.loads(self._persist_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StoreError(f"Corrupt document store file {self._persist_path}", cause=exc) from exc

        for record in payload.get("files", []):
            source_file = file_from_record(record)
            self._files[source_file.id] = source_file
        for record in payload.get("chunks", []):
            chunk = DocumentChunk(**record)
            self._chunks[chunk.id] = chunk
        self._dimension = payload.get("dimension")
        LOGGER.info("Loaded %s chunk(s) from %s", len(self._chunks), self._persist_path)

    def _save(self) -> None:
        if self._persist_path is None:
            return
        payload = {
            "dimension": self._dimension,
            "files": [file_to_record(source_file) for source_file in self._files.values()],
            "chunks": [asdict(chunk) for chunk in self._chunks.values()],
        }
        write_json_atomic(self._persist_path, payload)


__all__ = ["InMemoryDocumentStore"]
