"""Anthropic Messages API adapter built on the official async SDK."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anthropic
import httpx

from memoreum.llm.base import (
    BaseProvider,
    CompletionOptions,
    CompletionResult,
    Message,
    StreamChunk,
    Usage,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseProvider):
    """Claude via ``anthropic.AsyncAnthropic``.

    The Messages API takes the system prompt as a top-level ``system``
    field, so system messages are hoisted out of the chat list. When
    several are present (system prompt plus injected memory context)
    they are joined in order.
    """

    provider_name = "anthropic"
    supported_models = [
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    ]
    default_model = "claude-3-5-sonnet-20241022"

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        *,
        client: anthropic.AsyncAnthropic | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, model, temperature, max_tokens, **kwargs)
        self._client = client

    def _get_client(self) -> anthropic.AsyncAnthropic:
        """Lazily initialize the Anthropic client."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()

    def _request_kwargs(
        self,
        messages: list[Message],
        options: CompletionOptions | None,
    ) -> dict[str, Any]:
        system_parts = [m.content for m in messages if m.role == "system" and m.content]
        chat = [
            {"role": m.role, "content": m.content}
            for m in messages
            if m.role != "system" and m.content
        ]
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self._max_tokens(options),
            "temperature": self._temperature(options),
            "messages": chat,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        stop = self._stop(options)
        if stop:
            kwargs["stop_sequences"] = stop
        return kwargs

    async def complete(
        self,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        client = self._get_client()
        try:
            response = await client.messages.create(**self._request_kwargs(messages, options))
        except anthropic.APIStatusError as e:
            raise self._error(e.message, e.status_code) from e
        except anthropic.APIError as e:
            raise self._error(e.message) from e
        except httpx.HTTPError as e:
            raise self._error(str(e) or type(e).__name__) from e

        try:
            text = "".join(block.text for block in response.content if block.type == "text")
            usage = Usage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )
            return CompletionResult(
                content=text,
                model=response.model,
                usage=usage,
                finish_reason=response.stop_reason or "end_turn",
            )
        except (AttributeError, TypeError) as e:
            raise self._error(f"Malformed response body: {e!r}") from e

    async def stream(
        self,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        client = self._get_client()
        try:
            async with client.messages.stream(**self._request_kwargs(messages, options)) as stream:
                async for event in stream:
                    if event.type == "content_block_delta":
                        text = getattr(event.delta, "text", None)
                        if text:
                            yield StreamChunk(content=text, done=False)
                    elif event.type == "message_stop":
                        break
        except anthropic.APIStatusError as e:
            raise self._error(e.message, e.status_code) from e
        except anthropic.APIError as e:
            raise self._error(e.message) from e
        except httpx.HTTPError as e:
            raise self._error(str(e) or type(e).__name__) from e

        yield StreamChunk(content="", done=True)
