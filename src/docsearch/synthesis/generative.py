"""Answer generation through the configured text-generation provider."""
from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence

from docsearch.cache import TTLCache
from docsearch.errors import GenerationError
from docsearch.models import RankedCandidate, SearchAnswer, Turn
from docsearch.prompts import load_template
from docsearch.providers import ChatMessage, CompletionOptions, CompletionProvider
from docsearch.telemetry import emit_inference_request, emit_inference_result

LOGGER = logging.getLogger(__name__)

ANSWER_OPTIONS = CompletionOptions(temperature=0.1, max_tokens=150)
HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.5
CONTRADICTION_RATIO = 0.9

_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


@dataclass(slots=True, frozen=True)
class ConfidenceAssessment:
    average_similarity: float
    level: str
    contradictions: bool


def confidence_level(average_similarity: float) -> str:
    if average_similarity > HIGH_CONFIDENCE:
        return "high"
    if average_similarity > MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def assess_confidence(ranked: Sequence[RankedCandidate]) -> ConfidenceAssessment:
    """Summarise how trustworthy the ranked evidence looks.

    A contradiction is flagged when a lower-ranked candidate carrying specific
    details scores within 90% of the top candidate.
    """

    if not ranked:
        return ConfidenceAssessment(average_similarity=0.0, level="low", contradictions=False)
    average = sum(candidate.adjusted_similarity for candidate in ranked) / len(ranked)
    top_score = ranked[0].adjusted_similarity
    contradictions = any(
        candidate.has_specific_details and candidate.adjusted_similarity >= top_score * CONTRADICTION_RATIO
        for candidate in ranked[1:]
    )
    return ConfidenceAssessment(
        average_similarity=average,
        level=confidence_level(average),
        contradictions=contradictions,
    )


def clean_generation(text: str) -> str:
    """Collapse blank-line runs, then flatten the remaining newlines."""

    collapsed = _BLANK_LINES_RE.sub("\n", text)
    return collapsed.replace("\n", " ").strip()


def build_system_prompt(assessment: ConfidenceAssessment) -> str:
    return load_template("answer_system").format(
        confidence=assessment.level,
        contradictions="yes" if assessment.contradictions else "no",
    )


def build_messages(
    query: str,
    ranked: Sequence[RankedCandidate],
    conversation_history: Sequence[Turn] | None = None,
) -> List[ChatMessage]:
    messages: List[ChatMessage] = [
        {"role": turn.role, "content": turn.content} for turn in conversation_history or []
    ]
    context = "\n\n".join(candidate.chunk.content for candidate in ranked)
    messages.append(
        {"role": "user", "content": load_template("answer_user").format(query=query, context=context)}
    )
    return messages


def answer_cache_key(
    query: str,
    ranked: Sequence[RankedCandidate],
    conversation_history: Sequence[Turn] | None = None,
) -> str:
    digest = hashlib.sha256()
    digest.update(query.encode("utf-8"))
    for candidate in ranked:
        digest.update(b"\x00chunk\x00")
        digest.update(candidate.chunk.content.encode("utf-8"))
    for turn in conversation_history or []:
        digest.update(f"\x00{turn.role}\x00".encode("utf-8"))
        digest.update(turn.content.encode("utf-8"))
    return digest.hexdigest()


class GenerativeAnswerer:
    """Ask the text-generation provider for a short conversational answer."""

    def __init__(
        self,
        provider: CompletionProvider,
        *,
        cache: Optional[TTLCache[str, SearchAnswer]] = None,
        cache_ttl_seconds: float = 300.0,
        timeout_seconds: float | None = 30.0,
    ) -> None:
        self.provider = provider
        self.cache: TTLCache[str, SearchAnswer] = cache or TTLCache(cache_ttl_seconds)
        self.timeout_seconds = timeout_seconds

    async def answer(
        self,
        query: str,
        ranked: Sequence[RankedCandidate],
        conversation_history: Sequence[Turn] | None = None,
    ) -> SearchAnswer:
        if not ranked:
            return SearchAnswer.no_match()

        req_id = uuid.uuid4().hex
        key = answer_cache_key(query, ranked, conversation_history)
        cached = self.cache.get(key)
        if cached is not None:
            emit_inference_result(
                req_id=req_id,
                purpose="answer",
                duration_ms=0.0,
                model_used=self.provider.model_name,
                answer_preview=cached.content,
                cached=True,
            )
            return cached

        assessment = assess_confidence(ranked)
        system_prompt = build_system_prompt(assessment)
        messages = build_messages(query, ranked, conversation_history)
        emit_inference_request(
            req_id=req_id,
            purpose="answer",
            system_prompt=system_prompt,
            message_count=len(messages),
            temperature=ANSWER_OPTIONS.temperature,
            max_tokens=ANSWER_OPTIONS.max_tokens,
            sources=[candidate.chunk.id for candidate in ranked],
        )

        started = time.perf_counter()
        raw = await self._complete(system_prompt, messages)
        content = clean_generation(raw)
        if not content:
            raise GenerationError("Text-generation service returned an empty answer")

        answer = SearchAnswer(content=content, similarity=ranked[0].adjusted_similarity)
        emit_inference_result(
            req_id=req_id,
            purpose="answer",
            duration_ms=(time.perf_counter() - started) * 1000.0,
            model_used=self.provider.model_name,
            answer_preview=content,
        )
        self.cache.set(key, answer)
        return answer

    async def _complete(self, system_prompt: str, messages: Sequence[ChatMessage]) -> str:
        try:
            call = self.provider.complete(system_prompt, messages, ANSWER_OPTIONS)
            if self.timeout_seconds is None:
                return await call
            return await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as error:
            raise GenerationError(
                f"Text generation timed out after {self.timeout_seconds}s",
                retryable=True,
                cause=error,
            ) from error
        except GenerationError:
            raise
        except Exception as error:
            raise GenerationError(f"Text generation failed: {error}", cause=error) from error


__all__ = [
    "ANSWER_OPTIONS",
    "ConfidenceAssessment",
    "GenerativeAnswerer",
    "answer_cache_key",
    "assess_confidence",
    "build_messages",
    "build_system_prompt",
    "clean_generation",
    "confidence_level",
]
