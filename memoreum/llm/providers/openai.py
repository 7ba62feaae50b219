"""OpenAI chat completions adapter, plus OpenAI-compatible vendors."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from memoreum.llm.base import CompletionOptions, CompletionResult, Message, StreamChunk, Usage
from memoreum.llm.http import HTTPProvider, parse_record, sse_data

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
GROQ_API_URL = "https://api.groq.com/openai/v1/chat/completions"
TOGETHER_API_URL = "https://api.together.xyz/v1/chat/completions"

# Literal end-of-stream marker sent as the final SSE data line.
DONE_SENTINEL = "[DONE]"


class OpenAIProvider(HTTPProvider):
    """OpenAI ``/v1/chat/completions`` over raw HTTP.

    System messages stay inline. A stream ends at the first delta that
    carries a ``finish_reason`` or at the literal ``[DONE]`` line,
    whichever comes first. Any OpenAI-compatible endpoint can be
    targeted by passing ``api_url``; the factory does this for aliases,
    together with ``provider_name`` and ``supported_models`` overrides.
    """

    provider_name = "openai"
    supported_models = [
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
        "o1-preview",
        "o1-mini",
    ]
    default_model = "gpt-4o-mini"
    api_url = OPENAI_API_URL

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        *,
        api_url: str | None = None,
        provider_name: str | None = None,
        supported_models: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, model, temperature, max_tokens, **kwargs)
        if api_url:
            self.api_url = api_url
        if provider_name:
            self.provider_name = provider_name
        if supported_models is not None:
            self.supported_models = supported_models

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _payload(
        self,
        messages: list[Message],
        options: CompletionOptions | None,
        *,
        stream: bool = False,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages if m.content],
            "temperature": self._temperature(options),
            "max_tokens": self._max_tokens(options),
        }
        stop = self._stop(options)
        if stop:
            payload["stop"] = stop
        if stream:
            payload["stream"] = True
        return payload

    async def complete(
        self,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        data = await self._post_json(self.api_url, self._payload(messages, options))
        try:
            choice = data["choices"][0]
            usage = data.get("usage") or {}
            return CompletionResult(
                content=choice["message"].get("content") or "",
                model=data.get("model") or self.model,
                usage=Usage(
                    prompt_tokens=usage.get("prompt_tokens", 0),
                    completion_tokens=usage.get("completion_tokens", 0),
                    total_tokens=usage.get("total_tokens", 0),
                ),
                finish_reason=choice.get("finish_reason") or "stop",
            )
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise self._error(f"Malformed response body: {e!r}") from e

    async def stream(
        self,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        lines = self._stream_lines(self.api_url, self._payload(messages, options, stream=True))
        async with aclosing(lines):
            async for line in lines:
                data = sse_data(line)
                if data is None:
                    continue
                if data == DONE_SENTINEL:
                    yield StreamChunk(content="", done=True)
                    return

                record = parse_record(data)
                if record is None:
                    continue
                choices = record.get("choices") or []
                if not choices or not isinstance(choices[0], dict):
                    continue
                choice = choices[0]
                delta = choice.get("delta") or {}
                finished = choice.get("finish_reason") is not None
                yield StreamChunk(content=delta.get("content") or "", done=finished)
                if finished:
                    return

        yield StreamChunk(content="", done=True)


class GroqProvider(OpenAIProvider):
    """Groq's OpenAI-compatible endpoint."""

    provider_name = "groq"
    supported_models = [
        "llama-3.3-70b-versatile",
        "llama-3.1-70b-versatile",
        "llama-3.1-8b-instant",
        "llama3-groq-70b-8192-tool-use-preview",
        "mixtral-8x7b-32768",
        "gemma2-9b-it",
    ]
    default_model = "llama-3.3-70b-versatile"
    api_url = GROQ_API_URL


class TogetherProvider(OpenAIProvider):
    """Together AI's OpenAI-compatible endpoint."""

    provider_name = "together"
    supported_models = [
        "meta-llama/Meta-Llama-3.1-405B-Instruct-Turbo",
        "meta-llama/Meta-Llama-3.1-70B-Instruct-Turbo",
        "meta-llama/Meta-Llama-3.1-8B-Instruct-Turbo",
        "mistralai/Mixtral-8x22B-Instruct-v0.1",
        "mistralai/Mistral-7B-Instruct-v0.3",
        "Qwen/Qwen2.5-72B-Instruct-Turbo",
        "deepseek-ai/deepseek-llm-67b-chat",
    ]
    default_model = "meta-llama/Meta-Llama-3.1-70B-Instruct-Turbo"
    api_url = TOGETHER_API_URL
