"""Ollama adapter for self-hosted models."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from memoreum.llm.base import CompletionOptions, CompletionResult, Message, StreamChunk, Usage
from memoreum.llm.http import HTTPProvider, parse_record

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"


class OllamaProvider(HTTPProvider):
    """Ollama ``/api/chat``.

    Ollama has no credential, so ``api_key`` carries the server base URL
    (e.g. ``http://gpu-box:11434``); empty means localhost. Streaming
    responses are newline-delimited JSON objects and the last one has
    ``"done": true``.
    """

    provider_name = "ollama"
    supported_models = [
        "llama3.2",
        "llama3.1",
        "llama3",
        "mistral",
        "mixtral",
        "codellama",
        "deepseek-coder",
        "phi3",
        "gemma2",
        "qwen2.5",
    ]
    default_model = "llama3.2"

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, model, temperature, max_tokens, **kwargs)
        self.base_url = (api_key or DEFAULT_BASE_URL).rstrip("/")

    def validate_api_key(self) -> bool:
        return True

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}/api/chat"

    def _payload(
        self,
        messages: list[Message],
        options: CompletionOptions | None,
        *,
        stream: bool,
    ) -> dict[str, Any]:
        model_options: dict[str, Any] = {
            "temperature": self._temperature(options),
            "num_predict": self._max_tokens(options),
        }
        stop = self._stop(options)
        if stop:
            model_options["stop"] = stop
        return {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages if m.content],
            "options": model_options,
            "stream": stream,
        }

    async def complete(
        self,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        data = await self._post_json(self.chat_url, self._payload(messages, options, stream=False))
        try:
            prompt_tokens = data.get("prompt_eval_count") or 0
            completion_tokens = data.get("eval_count") or 0
            return CompletionResult(
                content=data["message"]["content"],
                model=data.get("model") or self.model,
                usage=Usage(
                    prompt_tokens=prompt_tokens,
                    completion_tokens=completion_tokens,
                    total_tokens=prompt_tokens + completion_tokens,
                ),
                finish_reason=data.get("done_reason") or "stop",
            )
        except (KeyError, TypeError) as e:
            raise self._error(f"Malformed response body: {e!r}") from e

    async def stream(
        self,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        lines = self._stream_lines(self.chat_url, self._payload(messages, options, stream=True))
        async with aclosing(lines):
            async for line in lines:
                record = parse_record(line)
                if record is None:
                    continue
                message = record.get("message")
                content = ""
                if isinstance(message, dict):
                    content = message.get("content") or ""
                done = bool(record.get("done"))
                yield StreamChunk(content=content, done=done)
                if done:
                    return

        yield StreamChunk(content="", done=True)
