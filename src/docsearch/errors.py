"""Exception hierarchy shared across ingestion, search and evaluation."""
from __future__ import annotations


class DocSearchError(RuntimeError):
    """Base class for all docsearch failures."""


class InputValidationError(DocSearchError, ValueError):
    """Raised synchronously when a request is rejected before any external call."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ProviderError(DocSearchError):
    """Raised when an external embedding or generation service fails."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.__cause__ = cause


class EmbeddingError(ProviderError):
    """The embedding service failed or returned an unusable vector."""


class GenerationError(ProviderError):
    """The text-generation service failed or returned nothing."""


class ResponseParseError(GenerationError):
    """Structured output from the text-generation service could not be parsed."""

    def __init__(self, message: str, *, raw: str | None = None, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.raw = raw


class QueryGenerationError(DocSearchError):
    """Generated test queries kept failing the diversity checks."""

    def __init__(self, message: str, *, violations: list[str] | None = None) -> None:
        super().__init__(message)
        self.violations = list(violations or [])


class StoreError(DocSearchError):
    """Raised when the document store cannot complete an operation."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


__all__ = [
    "DocSearchError",
    "EmbeddingError",
    "GenerationError",
    "InputValidationError",
    "ProviderError",
    "QueryGenerationError",
    "ResponseParseError",
    "StoreError",
]
