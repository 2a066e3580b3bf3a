"""Paragraph-aware chunking of extracted document text."""
from __future__ import annotations

import logging
import re
from typing import List

from docsearch.models import ChunkDraft

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CHUNK_SIZE = 1000
PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")
PARAGRAPH_JOINER = "\n\n"


def split_paragraphs(text: str) -> List[str]:
    """Return the non-blank paragraphs of ``text`` in document order."""

    if not text:
        return []
    return [paragraph for paragraph in PARAGRAPH_BREAK_RE.split(text) if paragraph.strip()]


def chunk_text(text: str, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> List[ChunkDraft]:
    """Group paragraphs into chunks of at most ``max_chunk_size`` characters.

    Paragraphs are never split, so a single paragraph longer than the limit
    becomes its own oversized chunk. Chunk indexes are 1-based and every chunk
    carries the final chunk count.
    """

    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be a positive integer")

    pieces: List[str] = []
    current = ""
    for paragraph in split_paragraphs(text):
        candidate = f"{current}{PARAGRAPH_JOINER}{paragraph}" if current else paragraph
        if current and len(candidate) > max_chunk_size:
            pieces.append(current)
            current = paragraph
        else:
            current = candidate
    if current:
        pieces.append(current)

    stripped = [piece.strip() for piece in pieces]
    stripped = [piece for piece in stripped if piece]
    total = len(stripped)
    chunks = [
        ChunkDraft(text=piece, chunk_index=index, total_chunks=total)
        for index, piece in enumerate(stripped, start=1)
    ]
    oversized = sum(1 for chunk in chunks if len(chunk.text) > max_chunk_size)
    if oversized:
        LOGGER.debug("%s chunk(s) exceed max size %s because a paragraph could not be split", oversized, max_chunk_size)
    return chunks


__all__ = ["DEFAULT_MAX_CHUNK_SIZE", "chunk_text", "split_paragraphs"]
