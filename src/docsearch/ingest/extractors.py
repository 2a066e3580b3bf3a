"""Text extraction for uploaded PDF documents."""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from docsearch.errors import InputValidationError

LOGGER = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"


@dataclass(slots=True)
class ExtractedDocument:
    text: str
    page_count: int


class PDFExtractor:
    """Extract plain text from PDF bytes, one paragraph per page."""

    def extract(self, data: bytes) -> ExtractedDocument:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [self._page_text(page) for page in reader.pages]
        except (PdfReadError, ValueError, KeyError) as error:
            LOGGER.warning("Could not read PDF: %s", error)
            raise InputValidationError(f"Could not read PDF: {error}") from error

        LOGGER.debug("Extracted %s page(s) from PDF", len(pages))
        return ExtractedDocument(text=PAGE_SEPARATOR.join(pages), page_count=len(pages))

    @staticmethod
    def _page_text(page) -> str:
        raw = page.extract_text() or ""
        return " ".join(raw.split())


__all__ = ["ExtractedDocument", "PAGE_SEPARATOR", "PDFExtractor"]
