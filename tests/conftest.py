"""Shared test fixtures."""

import json
from collections.abc import Callable

import httpx
import pytest


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by ``handler``."""

    def build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build


@pytest.fixture
def sse() -> Callable[..., bytes]:
    """Encode records as an SSE body. Strings are sent as-is, dicts as JSON."""

    def encode(*records: object) -> bytes:
        lines = []
        for record in records:
            data = record if isinstance(record, str) else json.dumps(record)
            lines.append(f"data: {data}\n\n")
        return "".join(lines).encode()

    return encode
