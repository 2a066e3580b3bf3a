"""Document ingestion: extraction, chunking and the embedding pipeline."""
from __future__ import annotations

from .chunking import DEFAULT_MAX_CHUNK_SIZE, chunk_text, split_paragraphs
from .extractors import ExtractedDocument, PDFExtractor
from .pipeline import PDF_MIME_TYPE, IngestPipeline, IngestResult, validate_upload

__all__ = [
    "DEFAULT_MAX_CHUNK_SIZE",
    "ExtractedDocument",
    "IngestPipeline",
    "IngestResult",
    "PDFExtractor",
    "PDF_MIME_TYPE",
    "chunk_text",
    "split_paragraphs",
    "validate_upload",
]
