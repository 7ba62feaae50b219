"""Tests for the OpenAI-compatible adapter over a mocked transport."""

import json

import httpx
import pytest

from memoreum.errors import ProviderError
from memoreum.llm.base import CompletionOptions, Message
from memoreum.llm.providers.openai import (
    GROQ_API_URL,
    OPENAI_API_URL,
    GroqProvider,
    OpenAIProvider,
)

MESSAGES = [
    Message(role="system", content="Be brief."),
    Message(role="user", content="Hi"),
]


def _completion(content="Hello!", finish_reason="stop"):
    return {
        "model": "gpt-4o-mini-2024-07-18",
        "choices": [{"message": {"content": content}, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
    }


async def _collect(stream):
    return [chunk async for chunk in stream]


# -- complete -------------------------------------------------------------------


async def test_complete_parses_response(mock_http):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_completion())

    provider = OpenAIProvider("sk-test", http_client=mock_http(handler))
    result = await provider.complete(MESSAGES)

    assert result.content == "Hello!"
    assert result.model == "gpt-4o-mini-2024-07-18"
    assert result.usage.total_tokens == 15
    assert result.finish_reason == "stop"

    request = seen[0]
    assert str(request.url) == OPENAI_API_URL
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["model"] == "gpt-4o-mini"
    assert body["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Hi"},
    ]
    assert "stream" not in body


async def test_complete_applies_options_and_drops_empty_messages(mock_http):
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=_completion())

    provider = OpenAIProvider("sk", http_client=mock_http(handler))
    await provider.complete(
        [*MESSAGES, Message(role="assistant", content="")],
        CompletionOptions(temperature=0.1, max_tokens=50, stop_sequences=["\n\n"]),
    )

    body = seen[0]
    assert body["temperature"] == 0.1
    assert body["max_tokens"] == 50
    assert body["stop"] == ["\n\n"]
    assert len(body["messages"]) == 2


async def test_complete_http_error(mock_http):
    provider = OpenAIProvider(
        "bad",
        http_client=mock_http(lambda r: httpx.Response(401, text="invalid api key")),
    )
    with pytest.raises(ProviderError) as exc_info:
        await provider.complete(MESSAGES)
    assert exc_info.value.provider == "openai"
    assert exc_info.value.status_code == 401
    assert "invalid api key" in exc_info.value.message


async def test_complete_transport_error(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = OpenAIProvider("sk", http_client=mock_http(handler))
    with pytest.raises(ProviderError, match="connection refused"):
        await provider.complete(MESSAGES)


async def test_complete_non_json_body(mock_http):
    provider = OpenAIProvider(
        "sk", http_client=mock_http(lambda r: httpx.Response(200, text="<html>oops</html>"))
    )
    with pytest.raises(ProviderError, match="not JSON"):
        await provider.complete(MESSAGES)


async def test_complete_missing_choices(mock_http):
    provider = OpenAIProvider(
        "sk", http_client=mock_http(lambda r: httpx.Response(200, json={"choices": []}))
    )
    with pytest.raises(ProviderError, match="Malformed"):
        await provider.complete(MESSAGES)


# -- stream ---------------------------------------------------------------------


async def test_stream_stops_at_finish_reason(mock_http, sse):
    body = sse(
        {"choices": [{"delta": {"role": "assistant"}, "finish_reason": None}]},
        {"choices": [{"delta": {"content": "Hel"}, "finish_reason": None}]},
        {"choices": [{"delta": {"content": "lo"}, "finish_reason": None}]},
        {"choices": [{"delta": {}, "finish_reason": "stop"}]},
        "[DONE]",
    )
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, content=body)

    provider = OpenAIProvider("sk", http_client=mock_http(handler))
    chunks = await _collect(provider.stream(MESSAGES))

    assert seen[0]["stream"] is True
    assert "".join(c.content for c in chunks) == "Hello"
    assert [c.done for c in chunks].count(True) == 1
    assert chunks[-1].done is True


async def test_stream_done_sentinel(mock_http, sse):
    body = sse({"choices": [{"delta": {"content": "Hi"}, "finish_reason": None}]}, "[DONE]")
    provider = OpenAIProvider(
        "sk", http_client=mock_http(lambda r: httpx.Response(200, content=body))
    )
    chunks = await _collect(provider.stream(MESSAGES))

    assert [(c.content, c.done) for c in chunks] == [("Hi", False), ("", True)]


async def test_stream_skips_malformed_records(mock_http, sse):
    body = b": keep-alive\n\n" + sse(
        "{not json",
        [1, 2, 3],
        {"choices": [{"delta": {"content": "ok"}, "finish_reason": None}]},
        "[DONE]",
    )
    provider = OpenAIProvider(
        "sk", http_client=mock_http(lambda r: httpx.Response(200, content=body))
    )
    chunks = await _collect(provider.stream(MESSAGES))

    assert [c.content for c in chunks if c.content] == ["ok"]


async def test_stream_buffers_records_split_across_reads(mock_http):
    record = json.dumps({"choices": [{"delta": {"content": "split"}, "finish_reason": None}]})
    raw = f"data: {record}\n\ndata: [DONE]\n\n".encode()

    async def pieces():
        yield raw[:17]
        yield raw[17:40]
        yield raw[40:]

    provider = OpenAIProvider(
        "sk", http_client=mock_http(lambda r: httpx.Response(200, content=pieces()))
    )
    chunks = await _collect(provider.stream(MESSAGES))

    assert [c.content for c in chunks if c.content] == ["split"]
    assert chunks[-1].done is True


async def test_stream_without_sentinel_still_finishes(mock_http, sse):
    body = sse({"choices": [{"delta": {"content": "cut"}, "finish_reason": None}]})
    provider = OpenAIProvider(
        "sk", http_client=mock_http(lambda r: httpx.Response(200, content=body))
    )
    chunks = await _collect(provider.stream(MESSAGES))

    assert chunks[-1].done is True
    assert [c.done for c in chunks].count(True) == 1


async def test_stream_http_error(mock_http):
    provider = OpenAIProvider(
        "sk", http_client=mock_http(lambda r: httpx.Response(429, text="rate limited"))
    )
    with pytest.raises(ProviderError) as exc_info:
        await _collect(provider.stream(MESSAGES))
    assert exc_info.value.status_code == 429
    assert "rate limited" in exc_info.value.message


# -- Compatible vendors ---------------------------------------------------------


async def test_groq_uses_its_own_endpoint(mock_http):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_completion())

    provider = GroqProvider("gsk", http_client=mock_http(handler))
    await provider.complete(MESSAGES)

    assert str(seen[0].url) == GROQ_API_URL
    assert json.loads(seen[0].content)["model"] == "llama-3.3-70b-versatile"


async def test_errors_name_the_overridden_provider(mock_http):
    provider = OpenAIProvider(
        "sk",
        api_url="https://example.test/v1/chat/completions",
        provider_name="deepseek",
        http_client=mock_http(lambda r: httpx.Response(500, text="down")),
    )
    with pytest.raises(ProviderError) as exc_info:
        await provider.complete(MESSAGES)
    assert exc_info.value.provider == "deepseek"


async def test_aclose_closes_http_client(mock_http):
    client = mock_http(lambda r: httpx.Response(200, json=_completion()))
    provider = OpenAIProvider("sk", http_client=client)
    await provider.aclose()
    assert client.is_closed
