"""Shared HTTP plumbing for providers that speak to REST endpoints directly."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from memoreum.llm.base import BaseProvider

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

# Upstream error bodies can be large HTML pages.
MAX_ERROR_BODY = 500


def sse_data(line: str) -> str | None:
    """Return the payload of an SSE ``data:`` line, or None for other lines."""
    if not line.startswith("data:"):
        return None
    return line[len("data:") :].strip()


def parse_record(raw: str) -> dict[str, Any] | None:
    """Parse one JSON stream record. Malformed records yield None."""
    try:
        record = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed stream record: %s", raw[:200])
        return None
    if not isinstance(record, dict):
        logger.debug("Skipping non-object stream record: %s", raw[:200])
        return None
    return record


class HTTPProvider(BaseProvider):
    """Provider that talks to its vendor through an ``httpx.AsyncClient``.

    The client is created lazily and may be injected (tests pass one
    backed by ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, model, temperature, max_tokens, **kwargs)
        self._client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        """Vendor auth headers. Override per provider."""
        return {}

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST ``payload`` and return the decoded JSON object."""
        client = self._get_client()
        try:
            resp = await client.post(url, json=payload, headers=self._headers(), params=params)
        except httpx.HTTPError as e:
            raise self._error(str(e) or type(e).__name__) from e

        if not resp.is_success:
            raise self._error(
                f"HTTP {resp.status_code}: {resp.text[:MAX_ERROR_BODY]}",
                resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise self._error("Malformed response body: not JSON", resp.status_code) from e
        if not isinstance(data, dict):
            raise self._error("Malformed response body: expected an object", resp.status_code)
        return data

    async def _stream_lines(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        params: dict[str, str] | None = None,
    ) -> AsyncIterator[str]:
        """POST ``payload`` and yield complete, non-blank response lines.

        ``aiter_lines`` buffers partial lines across network reads, so a
        record split between two chunks is only yielded once whole.
        """
        client = self._get_client()
        try:
            async with client.stream(
                "POST", url, json=payload, headers=self._headers(), params=params
            ) as resp:
                if not resp.is_success:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    raise self._error(
                        f"HTTP {resp.status_code}: {body[:MAX_ERROR_BODY]}",
                        resp.status_code,
                    )
                async for line in resp.aiter_lines():
                    if line.strip():
                        yield line
        except httpx.HTTPError as e:
            raise self._error(str(e) or type(e).__name__) from e
