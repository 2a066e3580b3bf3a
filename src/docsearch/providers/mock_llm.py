"""Mock completion provider that replays scripted responses."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterable, List, Sequence

from .base import ChatMessage, CompletionOptions, CompletionProvider
from .mock_embedding import MAX_RECORDED_CALLS


@dataclass(slots=True)
class RecordedCompletion:
    system_prompt: str
    messages: List[ChatMessage]
    options: CompletionOptions


class MockCompletionProvider(CompletionProvider):
    """Return queued responses, or echo the last user message when none are left."""

    model_name = "mock-completion"

    def __init__(self, responses: Iterable[str] | None = None) -> None:
        self._responses: Deque[str] = deque(responses or [])
        self.calls: List[RecordedCompletion] = []

    def queue(self, *responses: str) -> None:
        self._responses.extend(responses)

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        options: CompletionOptions = CompletionOptions(),
    ) -> str:
        self.calls.append(
            RecordedCompletion(system_prompt=system_prompt, messages=list(messages), options=options)
        )
        del self.calls[:-MAX_RECORDED_CALLS]
        if self._responses:
            return self._responses.popleft()
        last_user = next(
            (message["content"] for message in reversed(messages) if message["role"] == "user"),
            "",
        )
        return f"MOCK_ANSWER: {last_user[:100]}"
