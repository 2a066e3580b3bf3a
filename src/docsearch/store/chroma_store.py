"""Document store backed by a persistent Chroma collection."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import chromadb

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

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from chromadb.api import ClientAPI
    from chromadb.api.models.Collection import Collection

LOGGER = logging.getLogger(__name__)

DEFAULT_COLLECTION_NAME = "document_chunks"
_INCLUDE = ["documents", "metadatas", "embeddings"]


def _chunk_metadata(chunk: DocumentChunk) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "organization_id": chunk.organization_id,
        "source_file_name": chunk.source_file_name,
        "storage_path": chunk.storage_path,
        "chunk_index": chunk.chunk_index,
        "total_chunks": chunk.total_chunks,
    }
    # Chroma rejects None metadata values.
    if chunk.page_count is not None:
        metadata["page_count"] = chunk.page_count
    return metadata


def _rows(result: Dict[str, Any]) -> List[tuple[str, str, Dict[str, Any], Sequence[float]]]:
    ids = result.get("ids") or []
    documents = result.get("documents") or [""] * len(ids)
    metadatas = result.get("metadatas") or [{}] * len(ids)
    embeddings = result.get("embeddings")
    if embeddings is None:
        embeddings = [[] for _ in ids]
    return list(zip(ids, documents, metadatas, embeddings))


def _chunk_from_row(row: tuple[str, str, Dict[str, Any], Sequence[float]]) -> DocumentChunk:
    chunk_id, document, metadata, embedding = row
    metadata = metadata or {}
    page_count = metadata.get("page_count")
    return DocumentChunk(
        id=str(chunk_id),
        content=document or "",
        embedding=[float(value) for value in embedding],
        organization_id=str(metadata.get("organization_id", "")),
        source_file_name=str(metadata.get("source_file_name", "")),
        storage_path=str(metadata.get("storage_path", "")),
        chunk_index=int(metadata.get("chunk_index", 0)),
        total_chunks=int(metadata.get("total_chunks", 0)),
        page_count=int(page_count) if page_count is not None else None,
    )


class ChromaDocumentStore(DocumentStore):
    """Store chunks in Chroma and file records in a JSON sidecar file."""

    backend_name = "chroma"

    def __init__(
        self,
        persist_dir: str | Path,
        *,
        collection_name: str = DEFAULT_COLLECTION_NAME,
        client: Optional["ClientAPI"] = None,
    ) -> None:
        self.persist_dir = Path(persist_dir)
        self.persist_dir.mkdir(parents=True, exist_ok=True)
        self.collection_name = collection_name
        self._files_path = self.persist_dir / "source_files.json"
        try:
            self._client = client or chromadb.PersistentClient(path=str(self.persist_dir))
            self._collection: "Collection" = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        except Exception as exc:  # pragma: no cover - depends on chromadb runtime
            raise StoreError("Failed to initialise Chroma collection", cause=exc) from exc
        self._files: Dict[str, SourceFile] = self._load_files()

    def fetch_candidates(self, organization_id: str, limit: int = DEFAULT_CANDIDATE_LIMIT) -> List[DocumentChunk]:
        if limit <= 0:
            return []
        result = self._get(where={"organization_id": organization_id}, limit=limit)
        candidates = [_chunk_from_row(row) for row in _rows(result)]
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
        result = self._get(
            where={
                "$and": [
                    {"organization_id": organization_id},
                    {"source_file_name": file_name},
                ]
            }
        )
        chunks = sorted((_chunk_from_row(row) for row in _rows(result)), key=lambda chunk: chunk.chunk_index)
        return chunks if limit is None else chunks[:limit]

    def insert_chunks(self, chunks: Sequence[DocumentChunk]) -> List[str]:
        if not chunks:
            return []
        check_dimension(chunks, self._existing_dimension())

        try:
            for (organization_id, file_name), total in stale_positions(chunks).items():
                self._collection.delete(
                    where={
                        "$and": [
                            {"organization_id": organization_id},
                            {"source_file_name": file_name},
                            {"chunk_index": {"$gt": total}},
                        ]
                    }
                )
            self._collection.upsert(
                ids=[chunk.id for chunk in chunks],
                embeddings=[[float(value) for value in chunk.embedding] for chunk in chunks],
                documents=[chunk.content for chunk in chunks],
                metadatas=[_chunk_metadata(chunk) for chunk in chunks],
            )
        except Exception as exc:
            emit_store_event("store.insert_chunks", backend=self.backend_name, count=len(chunks), error=exc)
            raise StoreError("Failed to upsert chunks into Chroma", cause=exc) from exc

        emit_store_event(
            "store.insert_chunks",
            backend=self.backend_name,
            organization_id=chunks[0].organization_id,
            count=len(chunks),
        )
        return [chunk.id for chunk in chunks]

    def create_file(self, source_file: SourceFile) -> SourceFile:
        existing = self.get_file_by_path(source_file.storage_path)
        if existing is not None:
            existing.has_embeddings = False
            existing.file_size = source_file.file_size
            self._save_files()
            return existing
        self._files[source_file.id] = source_file
        self._save_files()
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
        self._save_files()
        return source_file

    def delete_file(self, file_id: str, storage_path: str) -> int:
        existing = self._get(where={"storage_path": storage_path}, include=[])
        ids = list(existing.get("ids") or [])
        try:
            if ids:
                self._collection.delete(ids=ids)
        except Exception as exc:
            raise StoreError("Failed to delete chunks from Chroma", cause=exc) from exc
        self._files = {
            key: source_file
            for key, source_file in self._files.items()
            if key != file_id and source_file.storage_path != storage_path
        }
        self._save_files()
        emit_store_event("store.delete_file", backend=self.backend_name, count=len(ids))
        return len(ids)

    def _get(self, *, where: Dict[str, Any], limit: int | None = None, include: list[str] | None = None) -> Dict[str, Any]:
        try:
            return self._collection.get(
                where=where,
                limit=limit,
                include=_INCLUDE if include is None else include,
            )
        except Exception as exc:
            emit_store_event("store.get", backend=self.backend_name, error=exc)
            raise StoreError("Chroma query failed", cause=exc) from exc

    def _existing_dimension(self) -> int | None:
        result = self._collection.get(limit=1, include=["embeddings"])
        embeddings = result.get("embeddings")
        if embeddings is None or len(embeddings) == 0:
            return None
        return len(embeddings[0])

    def _load_files(self) -> Dict[str, SourceFile]:
        if not self._files_path.exists():
            return {}
        try:
            records = json.loads(self._files_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StoreError(f"Corrupt file registry {self._files_path}", cause=exc) from exc
        files = [file_from_record(record) for record in records]
        return {source_file.id: source_file for source_file in files}

    def _save_files(self) -> None:
        write_json_atomic(self._files_path, [file_to_record(item) for item in self._files.values()])


__all__ = ["ChromaDocumentStore", "DEFAULT_COLLECTION_NAME"]
