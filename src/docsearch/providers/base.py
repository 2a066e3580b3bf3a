"""Base provider interfaces for embeddings and text generation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal, Optional, Sequence, TypedDict

__all__ = ["ChatMessage", "CompletionOptions", "CompletionProvider", "EmbeddingProvider"]


class ChatMessage(TypedDict):
    role: Literal["system", "user", "assistant"]
    content: str


@dataclass(slots=True, frozen=True)
class CompletionOptions:
    temperature: float = 0.1
    max_tokens: Optional[int] = 150
    response_format: Optional[Literal["json_object"]] = None


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    model_name: str = "unknown"

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for a single text."""


class CompletionProvider(ABC):
    """Abstract interface for text-generation providers."""

    model_name: str = "unknown"

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        options: CompletionOptions = CompletionOptions(),
    ) -> str:
        """Return the generated text for the conversation."""
