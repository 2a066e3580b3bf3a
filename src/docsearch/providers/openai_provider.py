"""Providers backed by the OpenAI embeddings and chat completion APIs."""
from __future__ import annotations

import logging
from typing import Any, Sequence

from openai import AsyncOpenAI

from .base import ChatMessage, CompletionOptions, CompletionProvider, EmbeddingProvider

LOGGER = logging.getLogger(__name__)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embed one text per request with an OpenAI embedding model."""

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        *,
        api_key: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model_name = model_name
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def embed(self, text: str) -> list[float]:
        response = await self._client.embeddings.create(model=self.model_name, input=text)
        return list(response.data[0].embedding)


class OpenAICompletionProvider(CompletionProvider):
    """Generate answers with the OpenAI chat completions API."""

    def __init__(
        self,
        model_name: str = "gpt-4o-mini",
        *,
        api_key: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model_name = model_name
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        options: CompletionOptions = CompletionOptions(),
    ) -> str:
        payload: list[dict[str, str]] = [{"role": "system", "content": system_prompt}]
        payload.extend({"role": message["role"], "content": message["content"]} for message in messages)

        kwargs: dict[str, Any] = {
            "model": self.model_name,
            "messages": payload,
            "temperature": options.temperature,
        }
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens
        if options.response_format is not None:
            kwargs["response_format"] = {"type": options.response_format}

        chat = await self._client.chat.completions.create(**kwargs)
        content = chat.choices[0].message.content if chat.choices else None
        if content is None:
            LOGGER.warning("Chat completion returned no content for model %s", self.model_name)
            return ""
        return content


__all__ = ["OpenAICompletionProvider", "OpenAIEmbeddingProvider"]
