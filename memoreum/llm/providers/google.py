"""Google Gemini (Generative Language API) adapter."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from memoreum.llm.base import CompletionOptions, CompletionResult, Message, StreamChunk, Usage
from memoreum.llm.http import HTTPProvider, parse_record, sse_data

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

GOOGLE_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"

# finishReason value that marks the final chunk of a stream.
FINISHED = "STOP"


def _content(role: str, text: str) -> dict[str, Any]:
    return {"role": "model" if role == "assistant" else "user", "parts": [{"text": text}]}


def _candidate_text(record: dict[str, Any]) -> tuple[str, str | None]:
    """Extract (text, finishReason) from the first candidate of a response."""
    candidates = record.get("candidates") or []
    if not candidates:
        return "", None
    candidate = candidates[0]
    parts = (candidate.get("content") or {}).get("parts") or []
    text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
    return text, candidate.get("finishReason")


class GoogleProvider(HTTPProvider):
    """Gemini ``generateContent`` / ``streamGenerateContent`` over raw HTTP.

    Gemini uses ``user``/``model`` roles and a chat-session shape: prior
    turns form the history and the newest user turn is sent after them.
    System messages are hoisted into ``systemInstruction``. The API key
    travels as the ``key`` query parameter.
    """

    provider_name = "google"
    supported_models = [
        "gemini-2.0-flash-exp",
        "gemini-1.5-pro",
        "gemini-1.5-flash",
        "gemini-1.5-flash-8b",
        "gemini-pro",
    ]
    default_model = "gemini-1.5-flash"

    @staticmethod
    def split_chat(
        messages: list[Message],
    ) -> tuple[str | None, list[dict[str, Any]], dict[str, Any] | None]:
        """Split messages into (system instruction, history, latest user turn)."""
        system_parts = [m.content for m in messages if m.role == "system" and m.content]
        chat = [m for m in messages if m.role != "system" and m.content]

        latest = None
        if chat and chat[-1].role == "user":
            last = chat.pop()
            latest = _content(last.role, last.content)

        history = [_content(m.role, m.content) for m in chat]
        system = "\n\n".join(system_parts) if system_parts else None
        return system, history, latest

    def _payload(self, messages: list[Message], options: CompletionOptions | None) -> dict:
        system, history, latest = self.split_chat(messages)
        contents = [*history, latest] if latest else history

        generation_config: dict[str, Any] = {
            "temperature": self._temperature(options),
            "maxOutputTokens": self._max_tokens(options),
        }
        stop = self._stop(options)
        if stop:
            generation_config["stopSequences"] = stop

        payload: dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    def _url(self, method: str) -> str:
        return f"{GOOGLE_API_URL}/{self.model}:{method}"

    async def complete(
        self,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        data = await self._post_json(
            self._url("generateContent"),
            self._payload(messages, options),
            params={"key": self.api_key},
        )
        if "candidates" not in data:
            raise self._error("Malformed response body: missing candidates")
        try:
            text, finish_reason = _candidate_text(data)
            meta = data.get("usageMetadata") or {}
            return CompletionResult(
                content=text,
                model=self.model,
                usage=Usage(
                    prompt_tokens=meta.get("promptTokenCount", 0),
                    completion_tokens=meta.get("candidatesTokenCount", 0),
                    total_tokens=meta.get("totalTokenCount", 0),
                ),
                finish_reason=finish_reason or FINISHED,
            )
        except (AttributeError, TypeError) as e:
            raise self._error(f"Malformed response body: {e!r}") from e

    async def stream(
        self,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        lines = self._stream_lines(
            self._url("streamGenerateContent"),
            self._payload(messages, options),
            params={"alt": "sse", "key": self.api_key},
        )
        async with aclosing(lines):
            async for line in lines:
                data = sse_data(line)
                if data is None:
                    continue
                record = parse_record(data)
                if record is None:
                    continue
                try:
                    text, finish_reason = _candidate_text(record)
                except (AttributeError, TypeError):
                    logger.debug("Skipping unexpected Gemini record: %s", data[:200])
                    continue
                if finish_reason == FINISHED:
                    yield StreamChunk(content=text, done=True)
                    return
                yield StreamChunk(content=text, done=False)

        yield StreamChunk(content="", done=True)
