from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import numpy as np
import pytest

from docsearch.providers import CompletionOptions, MockCompletionProvider, MockEmbeddingProvider
from docsearch.providers.mock_embedding import MAX_RECORDED_CALLS
from docsearch.providers.openai_provider import OpenAICompletionProvider, OpenAIEmbeddingProvider
from docsearch.providers.sentence_transformers_provider import SentenceTransformerEmbeddingProvider


def chat_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.mark.anyio
async def test_openai_embedding_provider_requests_one_text():
    client = Mock()
    client.embeddings.create = AsyncMock(return_value=SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2])]))
    provider = OpenAIEmbeddingProvider("text-embedding-3-small", client=client)

    assert await provider.embed("brick cheese") == [0.1, 0.2]
    client.embeddings.create.assert_awaited_once_with(model="text-embedding-3-small", input="brick cheese")


@pytest.mark.anyio
async def test_openai_completion_provider_sends_system_prompt_and_options():
    client = Mock()
    client.chat.completions.create = AsyncMock(return_value=chat_response('{"queries": []}'))
    provider = OpenAICompletionProvider("gpt-4o-mini", client=client)

    result = await provider.complete(
        "system rules",
        [{"role": "user", "content": "question"}],
        CompletionOptions(temperature=0.9, max_tokens=800, response_format="json_object"),
    )

    assert result == '{"queries": []}'
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["messages"] == [
        {"role": "system", "content": "system rules"},
        {"role": "user", "content": "question"},
    ]
    assert kwargs["temperature"] == 0.9
    assert kwargs["max_tokens"] == 800
    assert kwargs["response_format"] == {"type": "json_object"}


@pytest.mark.anyio
async def test_openai_completion_without_content_returns_empty_string():
    client = Mock()
    client.chat.completions.create = AsyncMock(return_value=chat_response(None))
    provider = OpenAICompletionProvider(client=client)

    assert await provider.complete("system", [{"role": "user", "content": "hi"}]) == ""
    assert "response_format" not in client.chat.completions.create.await_args.kwargs


@pytest.mark.anyio
async def test_sentence_transformer_provider_encodes_off_the_event_loop():
    provider = SentenceTransformerEmbeddingProvider("local-model")
    provider._model = Mock()
    provider._model.encode.return_value = np.array([[0.5, -0.5, 1.0]])

    assert await provider.embed("dough") == [0.5, -0.5, 1.0]
    args, kwargs = provider._model.encode.call_args
    assert args == (["dough"],)
    assert kwargs["convert_to_numpy"] is True


@pytest.mark.anyio
async def test_mock_completion_replays_queue_then_echoes():
    provider = MockCompletionProvider(["first"])
    provider.queue("second")
    messages = [{"role": "user", "content": "What is in the sauce?"}]

    assert await provider.complete("s", messages) == "first"
    assert await provider.complete("s", messages) == "second"
    assert await provider.complete("s", messages) == "MOCK_ANSWER: What is in the sauce?"
    assert len(provider.calls) == 3


@pytest.mark.anyio
async def test_mock_providers_keep_only_recent_calls():
    completion = MockCompletionProvider()
    embedding = MockEmbeddingProvider(dimension=4)

    for number in range(MAX_RECORDED_CALLS + 10):
        await completion.complete("s", [{"role": "user", "content": f"question {number}"}])
        await embedding.embed(f"text {number}")

    assert len(completion.calls) == MAX_RECORDED_CALLS
    assert len(embedding.calls) == MAX_RECORDED_CALLS
    assert embedding.calls[-1] == f"text {MAX_RECORDED_CALLS + 9}"
    assert completion.calls[0].messages[0]["content"] == "question 10"
