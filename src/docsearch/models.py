"""Data structures passed between the ingestion, search and evaluation layers."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional

Role = Literal["user", "assistant"]
Complexity = Literal["simple", "medium", "complex"]

NO_ANSWER_MESSAGE = "I couldn't find a relevant answer in the document."


def chunk_id_for(organization_id: str, source_file_name: str, chunk_index: int) -> str:
    """Return the stable identifier of a chunk position inside a file."""

    seed = f"{organization_id}:{source_file_name}:{chunk_index}"
    return uuid.uuid5(uuid.NAMESPACE_URL, seed).hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ChunkDraft:
    """Chunker output before embedding."""

    text: str
    chunk_index: int
    total_chunks: int


@dataclass(slots=True)
class DocumentChunk:
    """An embedded passage of an ingested file."""

    content: str
    embedding: list[float]
    organization_id: str
    source_file_name: str
    chunk_index: int
    total_chunks: int
    storage_path: str = ""
    page_count: int | None = None
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = chunk_id_for(self.organization_id, self.source_file_name, self.chunk_index)


@dataclass(slots=True)
class SourceFile:
    """An uploaded document owned by an organization."""

    organization_id: str
    file_name: str
    storage_path: str
    file_type: str = "application/pdf"
    file_size: int = 0
    has_embeddings: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class RankedCandidate:
    chunk: DocumentChunk
    similarity: float
    adjusted_similarity: float
    term_match_ratio: float
    has_specific_details: bool = False
    has_numbers: bool = False
    is_list_item: bool = False
    multiplier: float = 1.0


@dataclass(slots=True)
class Turn:
    role: Role
    content: str


@dataclass(slots=True)
class SearchAnswer:
    """Caller-facing answer to a search query."""

    content: str
    similarity: float

    @classmethod
    def no_match(cls) -> "SearchAnswer":
        return cls(content=NO_ANSWER_MESSAGE, similarity=0.0)

    @property
    def is_no_match(self) -> bool:
        return self.content == NO_ANSWER_MESSAGE and self.similarity == 0.0


@dataclass(slots=True)
class TestCase:
    __test__ = False

    query: str
    expected_answer: Optional[str] = None
    category: str = "general"
    complexity: Complexity = "simple"


@dataclass(slots=True)
class GradeRecord:
    """A human grade assigned to a single test query answer."""

    test_id: str
    organization_id: str
    query: str
    bot_response: str
    score: float
    graded_by: str
    expected_answer: Optional[str] = None
    graded_at: datetime = field(default_factory=_utcnow)


__all__ = [
    "ChunkDraft",
    "Complexity",
    "DocumentChunk",
    "GradeRecord",
    "NO_ANSWER_MESSAGE",
    "RankedCandidate",
    "Role",
    "SearchAnswer",
    "SourceFile",
    "TestCase",
    "Turn",
    "chunk_id_for",
]
