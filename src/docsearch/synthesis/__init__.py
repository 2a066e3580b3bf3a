"""Turn ranked candidates into a single answer."""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from docsearch.config import ANSWER_MODES
from docsearch.errors import InputValidationError
from docsearch.models import RankedCandidate, SearchAnswer, Turn
from docsearch.providers import CompletionProvider

from .extractive import extract_answer
from .generative import GenerativeAnswerer, assess_confidence, clean_generation

LOGGER = logging.getLogger(__name__)


class AnswerSynthesizer:
    """Dispatch between extractive and generative answering.

    Empty input always yields the no-match sentinel rather than an error.
    """

    def __init__(
        self,
        completion_provider: Optional[CompletionProvider] = None,
        *,
        default_mode: str = "generative",
        cache_ttl_seconds: float = 300.0,
        timeout_seconds: float | None = 30.0,
    ) -> None:
        if default_mode not in ANSWER_MODES:
            raise ValueError(f"Unknown answer mode: {default_mode}")
        self.default_mode = default_mode
        self._generative = (
            GenerativeAnswerer(
                completion_provider,
                cache_ttl_seconds=cache_ttl_seconds,
                timeout_seconds=timeout_seconds,
            )
            if completion_provider is not None
            else None
        )

    async def synthesize(
        self,
        query: str,
        ranked: Sequence[RankedCandidate],
        conversation_history: Sequence[Turn] | None = None,
        mode: str | None = None,
    ) -> SearchAnswer:
        mode = mode or self.default_mode
        if mode not in ANSWER_MODES:
            raise InputValidationError(f"Unknown answer mode: {mode}")
        if not ranked:
            return SearchAnswer.no_match()
        if mode == "extractive":
            return extract_answer(query, ranked)
        if self._generative is None:
            raise InputValidationError("Generative answers need a completion provider")
        return await self._generative.answer(query, ranked, conversation_history)


__all__ = [
    "AnswerSynthesizer",
    "GenerativeAnswerer",
    "assess_confidence",
    "clean_generation",
    "extract_answer",
]
