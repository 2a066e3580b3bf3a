"""Similarity ranking of candidate chunks against a query."""
from __future__ import annotations

import asyncio
import logging
import re
import time
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Sequence

import numpy as np

from docsearch.models import DocumentChunk, RankedCandidate
from docsearch.telemetry import emit_ranker_event

LOGGER = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.1
TERM_MATCH_THRESHOLD = 0.3
DEFAULT_TOP_K = 3
MIN_TERM_LENGTH = 3

_TERM_RE = re.compile(r"[\w'-]+")


@dataclass(slots=True, frozen=True)
class ConfidenceSignal:
    """A content pattern that scales a candidate's similarity when present."""

    name: str
    predicate: Pattern[str]
    multiplier: float

    def matches(self, content: str) -> bool:
        return self.predicate.search(content) is not None


OBLIGATION_SIGNAL = ConfidenceSignal(
    name="specific_details",
    predicate=re.compile(
        r"\b(must|mandatory|required|requires|always|never|shall|only|step\s+\d+|procedure)\b",
        re.IGNORECASE,
    ),
    multiplier=1.2,
)
QUANTITY_SIGNAL = ConfidenceSignal(
    name="numbers",
    predicate=re.compile(
        r"\d+(?:\.\d+)?\s*(?:%|°\s?[FC]?|degrees|minutes?|mins?|hours?|hrs?|days?|weeks?|"
        r"inch(?:es)?|in\b|oz|ounces?|lbs?|pounds?|g\b|grams?|kg|ml|l\b|liters?|\$)",
        re.IGNORECASE,
    ),
    multiplier=1.1,
)
LIST_ITEM_SIGNAL = ConfidenceSignal(
    name="list_item",
    predicate=re.compile(r"^\s*(?:[-*•]|\d+[.)]|\(?[a-zA-Z]\))\s+", re.MULTILINE),
    multiplier=1.1,
)
DEFAULT_SIGNALS: tuple[ConfidenceSignal, ...] = (OBLIGATION_SIGNAL, QUANTITY_SIGNAL, LIST_ITEM_SIGNAL)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine of the angle between two vectors; zero vectors give 0.0."""

    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    if vec_a.shape != vec_b.shape:
        raise ValueError(f"Vector dimension mismatch: {vec_a.shape} vs {vec_b.shape}")
    norm = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if norm == 0.0:
        return 0.0
    value = float(np.dot(vec_a, vec_b) / norm)
    return max(-1.0, min(1.0, value))


def query_terms(query: str) -> List[str]:
    """Return case-folded query tokens longer than two characters."""

    return [term for term in _TERM_RE.findall(query.lower()) if len(term) >= MIN_TERM_LENGTH]


def term_match_ratio(query: str, content: str) -> float:
    terms = query_terms(query)
    if not terms:
        return 0.0
    lowered = content.lower()
    matched = sum(1 for term in terms if term in lowered)
    return matched / len(terms)


class SimilarityRanker:
    """Score, filter and order candidate chunks for a query.

    A candidate survives when its raw cosine similarity exceeds
    ``similarity_threshold`` or its query-term match ratio exceeds
    ``term_threshold``. Survivors are ordered by similarity scaled by the
    multipliers of every matching confidence signal.
    """

    def __init__(
        self,
        *,
        top_k: int = DEFAULT_TOP_K,
        similarity_threshold: float = SIMILARITY_THRESHOLD,
        term_threshold: float = TERM_MATCH_THRESHOLD,
        signals: Iterable[ConfidenceSignal] = DEFAULT_SIGNALS,
        executor: Optional[Executor] = None,
    ) -> None:
        if top_k <= 0:
            raise ValueError("top_k must be a positive integer")
        self.top_k = top_k
        self.similarity_threshold = similarity_threshold
        self.term_threshold = term_threshold
        self.signals = tuple(signals)
        self.executor = executor

    def score(self, query_embedding: Sequence[float], query_text: str, chunk: DocumentChunk) -> RankedCandidate:
        similarity = cosine_similarity(query_embedding, chunk.embedding)
        matched = {signal.name: signal for signal in self.signals if signal.matches(chunk.content)}
        multiplier = 1.0
        for signal in matched.values():
            multiplier *= signal.multiplier
        return RankedCandidate(
            chunk=chunk,
            similarity=similarity,
            adjusted_similarity=similarity * multiplier,
            term_match_ratio=term_match_ratio(query_text, chunk.content),
            has_specific_details=OBLIGATION_SIGNAL.name in matched,
            has_numbers=QUANTITY_SIGNAL.name in matched,
            is_list_item=LIST_ITEM_SIGNAL.name in matched,
            multiplier=multiplier,
        )

    def rank(
        self,
        query_embedding: Sequence[float],
        query_text: str,
        candidates: Sequence[DocumentChunk],
    ) -> List[RankedCandidate]:
        if not candidates:
            return []
        started = time.perf_counter()
        scored = [self.score(query_embedding, query_text, chunk) for chunk in candidates]
        kept = [
            candidate
            for candidate in scored
            if candidate.similarity > self.similarity_threshold
            or candidate.term_match_ratio > self.term_threshold
        ]
        kept.sort(key=lambda candidate: candidate.adjusted_similarity, reverse=True)
        ranked = kept[: self.top_k]
        emit_ranker_event(
            query=query_text,
            candidates=len(candidates),
            results=[
                {
                    "id": candidate.chunk.id,
                    "similarity": round(candidate.similarity, 4),
                    "adjusted": round(candidate.adjusted_similarity, 4),
                    "term_match": round(candidate.term_match_ratio, 3),
                }
                for candidate in ranked
            ],
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return ranked

    async def arank(
        self,
        query_embedding: Sequence[float],
        query_text: str,
        candidates: Sequence[DocumentChunk],
    ) -> List[RankedCandidate]:
        """Same result as :meth:`rank`, computed on ``executor`` when one is set."""

        if self.executor is None:
            return self.rank(query_embedding, query_text, candidates)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.executor, self.rank, list(query_embedding), query_text, list(candidates)
        )


__all__ = [
    "ConfidenceSignal",
    "DEFAULT_SIGNALS",
    "DEFAULT_TOP_K",
    "LIST_ITEM_SIGNAL",
    "OBLIGATION_SIGNAL",
    "QUANTITY_SIGNAL",
    "SIMILARITY_THRESHOLD",
    "SimilarityRanker",
    "TERM_MATCH_THRESHOLD",
    "cosine_similarity",
    "query_terms",
    "term_match_ratio",
]
