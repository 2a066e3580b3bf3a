"""Document store interface and helpers shared by its backends."""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from docsearch.errors import StoreError
from docsearch.models import DocumentChunk, SourceFile

DEFAULT_CANDIDATE_LIMIT = 20


class DocumentStore(ABC):
    """Persistence for ingested chunks and the files they came from."""

    backend_name = "abstract"

    @abstractmethod
    def fetch_candidates(self, organization_id: str, limit: int = DEFAULT_CANDIDATE_LIMIT) -> List[DocumentChunk]:
        """Return up to ``limit`` chunks owned by the organization, unranked."""

    @abstractmethod
    def fetch_file_chunks(
        self, organization_id: str, file_name: str, limit: int | None = None
    ) -> List[DocumentChunk]:
        """Return the chunks of one file ordered by chunk index."""

    @abstractmethod
    def insert_chunks(self, chunks: Sequence[DocumentChunk]) -> List[str]:
        """Upsert chunks by id and drop stale positions of re-ingested files."""

    @abstractmethod
    def create_file(self, source_file: SourceFile) -> SourceFile:
        """Register a file, reusing the existing record for its storage path."""

    @abstractmethod
    def get_file_by_path(self, storage_path: str) -> Optional[SourceFile]:
        ...

    @abstractmethod
    def list_files(
        self,
        organization_id: str,
        *,
        file_type: str | None = None,
        ingested_only: bool = False,
    ) -> List[SourceFile]:
        ...

    @abstractmethod
    def mark_ingested(self, storage_path: str) -> SourceFile:
        """Flip ``has_embeddings`` for the file stored at ``storage_path``."""

    @abstractmethod
    def delete_file(self, file_id: str, storage_path: str) -> int:
        """Delete the file record and its chunks; return the removed chunk count."""


def stale_positions(chunks: Iterable[DocumentChunk]) -> Dict[tuple[str, str], int]:
    """Map each ``(organization, file)`` in a batch to its new chunk total."""

    totals: Dict[tuple[str, str], int] = {}
    for chunk in chunks:
        totals[(chunk.organization_id, chunk.source_file_name)] = chunk.total_chunks
    return totals


def check_dimension(chunks: Sequence[DocumentChunk], expected: int | None) -> int | None:
    """Validate that every embedding shares one length and return it."""

    dimension = expected
    for chunk in chunks:
        if not chunk.embedding:
            raise StoreError(f"Chunk {chunk.id} has no embedding")
        if dimension is None:
            dimension = len(chunk.embedding)
        elif len(chunk.embedding) != dimension:
            raise StoreError(
                f"Embedding dimension mismatch: expected {dimension}, got {len(chunk.embedding)}"
            )
    return dimension


def file_to_record(source_file: SourceFile) -> Dict[str, Any]:
    return {
        "id": source_file.id,
        "organization_id": source_file.organization_id,
        "file_name": source_file.file_name,
        "storage_path": source_file.storage_path,
        "file_type": source_file.file_type,
        "file_size": source_file.file_size,
        "has_embeddings": source_file.has_embeddings,
        "created_at": source_file.created_at.isoformat(),
    }


def file_from_record(record: Dict[str, Any]) -> SourceFile:
    return SourceFile(
        id=str(record["id"]),
        organization_id=str(record["organization_id"]),
        file_name=str(record["file_name"]),
        storage_path=str(record["storage_path"]),
        file_type=str(record.get("file_type", "application/pdf")),
        file_size=int(record.get("file_size", 0)),
        has_embeddings=bool(record.get("has_embeddings", False)),
        created_at=datetime.fromisoformat(record["created_at"]),
    )


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    tmp_path.replace(path)


__all__ = [
    "DEFAULT_CANDIDATE_LIMIT",
    "DocumentStore",
    "check_dimension",
    "file_from_record",
    "file_to_record",
    "stale_positions",
    "write_json_atomic",
]
