"""Tests for MemoreumClient against a mocked API."""

import json

import httpx
import pytest

from memoreum.client import MemoreumClient, _page_param
from memoreum.config import MAINNET_BASE_URL, TESTNET_BASE_URL
from memoreum.memory.models import CreateMemoryInput, MemoryType

BASE = "https://api.test"

MEMORY = {
    "id": "mem-1",
    "agentId": "agent-1",
    "memoryType": "knowledge",
    "title": "Gas fees",
    "description": "Batch transactions on Base to save gas.",
    "importance": 0.8,
    "tags": ["eth"],
    "isForSale": True,
    "priceEth": 0.01,
    "createdAt": "2025-01-01T00:00:00Z",
}


class Recorder:
    """Captures requests and replies with a fixed response."""

    def __init__(self, response: httpx.Response):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(
            self.response.status_code,
            content=self.response.content,
            headers=self.response.headers,
        )

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def make_client(mock_http):
    def build(response: httpx.Response, api_key: str = "mk_test") -> tuple[MemoreumClient, Recorder]:
        recorder = Recorder(response)
        client = MemoreumClient(api_key, base_url=BASE, http_client=mock_http(recorder))
        return client, recorder

    return build


def ok(data) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": data})


# -- Construction ---------------------------------------------------------------


class TestBaseUrl:
    def test_mainnet_default(self):
        assert MemoreumClient("k").base_url == MAINNET_BASE_URL

    def test_testnet(self):
        client = MemoreumClient("k", network="testnet")
        assert client.base_url == TESTNET_BASE_URL
        assert client.network == "testnet"

    def test_explicit_base_url_trailing_slash(self):
        assert MemoreumClient("k", base_url="https://x.test/").base_url == "https://x.test"


@pytest.mark.parametrize(
    ("offset", "limit", "expected"),
    [(None, 20, None), (0, 20, None), (20, 20, 2), (45, 20, 3), (10, None, 1)],
)
def test_page_param(offset, limit, expected):
    assert _page_param(offset, limit) == expected


# -- Envelope handling ----------------------------------------------------------


async def test_sends_api_key_and_unwraps_data(make_client):
    client, rec = make_client(ok(MEMORY))
    response = await client.get_memory("mem-1")

    assert response.success is True
    assert response.data.id == "mem-1"
    assert response.data.content == "Batch transactions on Base to save gas."
    assert response.data.is_public is True
    assert response.data.price_eth == "0.01"
    assert rec.last.headers["X-API-Key"] == "mk_test"
    assert rec.last.url == httpx.URL(f"{BASE}/api/v1/memories/mem-1")


async def test_success_false_body(make_client):
    client, _ = make_client(
        httpx.Response(200, json={"success": False, "message": "Memory not found"})
    )
    response = await client.get_memory("missing")
    assert response.success is False
    assert response.error == "Memory not found"
    assert response.data is None


async def test_http_error_uses_body_message(make_client):
    client, _ = make_client(httpx.Response(403, json={"error": "Forbidden: not owner"}))
    response = await client.delete_memory("mem-1")
    assert response.success is False
    assert response.error == "Forbidden: not owner"


async def test_http_error_without_body(make_client):
    client, _ = make_client(httpx.Response(502, text="Bad Gateway"))
    response = await client.get_agent()
    assert response.success is False
    assert response.error.startswith("HTTP 502")


async def test_invalid_json(make_client):
    client, _ = make_client(httpx.Response(200, text="<html></html>"))
    response = await client.get_agent()
    assert response.success is False
    assert response.error == "Invalid JSON in response"


async def test_transport_error(mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    client = MemoreumClient("k", base_url=BASE, http_client=mock_http(handler))
    response = await client.search_memories("anything")
    assert response.success is False
    assert response.error == "timed out"


async def test_unexpected_shape(make_client):
    client, _ = make_client(ok({"no_id_here": True}))
    response = await client.get_memory("mem-1")
    assert response.success is False
    assert "Unexpected response shape" in response.error


async def test_body_without_data_key(make_client):
    client, _ = make_client(httpx.Response(200, json={"newApiKey": "mk_new"}))
    response = await client.regenerate_api_key()
    assert response.success is True
    assert response.data == {"newApiKey": "mk_new"}


# -- Agent ----------------------------------------------------------------------


async def test_get_agent_caches_profile(make_client):
    client, _ = make_client(ok({"id": "agent-1", "agentName": "scout", "walletAddress": "0xabc"}))
    assert client.get_cached_agent() is None

    response = await client.get_agent()

    assert response.data.agent_name == "scout"
    assert client.get_cached_agent() is response.data
    assert await client.verify_api_key() is True


async def test_register_agent_is_unauthenticated(make_client):
    client, rec = make_client(ok({"id": "agent-2", "agentName": "new", "apiKey": "mk_once"}))
    response = await client.register_agent("new")

    assert response.data.api_key == "mk_once"
    assert "X-API-Key" not in rec.last.headers
    assert json.loads(rec.last.content) == {"agentName": "new"}


# -- Memories -------------------------------------------------------------------


async def test_store_memory_body(make_client):
    client, rec = make_client(ok(MEMORY))
    memory = CreateMemoryInput(
        title="Gas fees",
        content="Batch transactions.",
        memory_type=MemoryType.KNOWLEDGE,
        tags=["eth"],
        is_public=True,
        price_eth=0.01,
    )
    response = await client.store_memory(memory)

    assert response.success is True
    body = json.loads(rec.last.content)
    assert body["description"] == "Batch transactions."
    assert body["memoryType"] == "knowledge"
    assert body["isForSale"] is True
    assert body["priceEth"] == 0.01
    assert "categoryId" not in body


async def test_search_memories_params(make_client):
    client, rec = make_client(ok([MEMORY]))
    response = await client.search_memories("gas", limit=5)

    assert [m.id for m in response.data] == ["mem-1"]
    assert rec.last.url.path == "/api/v1/memories/search/marketplace"
    assert rec.last.url.params["q"] == "gas"
    assert rec.last.url.params["limit"] == "5"


async def test_list_memories_paginates(make_client):
    client, rec = make_client(
        ok({"items": [MEMORY], "total": 41, "page": 3, "pageSize": 20, "hasMore": True})
    )
    response = await client.list_memories(limit=20, offset=40, is_public=False)

    page = response.data
    assert page.total == 41
    assert page.has_more is True
    assert page.items[0].title == "Gas fees"
    params = rec.last.url.params
    assert params["page"] == "3"
    assert params["isForSale"] == "false"
    assert "categoryId" not in params


async def test_update_memory_sends_only_given_fields(make_client):
    client, rec = make_client(ok(MEMORY))
    await client.update_memory("mem-1", title="New title")

    assert rec.last.method == "PATCH"
    assert json.loads(rec.last.content) == {"title": "New title"}


# -- Marketplace ----------------------------------------------------------------


async def test_create_listing(make_client):
    client, rec = make_client(ok({"id": "lst-1", "memoryId": "mem-1", "priceEth": "0.02"}))
    response = await client.create_listing("mem-1", "0.02")

    assert response.data.id == "lst-1"
    assert rec.last.url.path == "/api/v1/marketplace/listings"
    assert json.loads(rec.last.content) == {"memoryId": "mem-1", "priceEth": "0.02"}


async def test_browse_marketplace(make_client):
    listing = {"id": "lst-1", "memoryId": "mem-1", "priceEth": "0.02", "memory": MEMORY}
    client, rec = make_client(ok({"items": [listing], "total": 1}))
    response = await client.browse_marketplace(limit=10, sort_by="price_asc")

    assert response.data.items[0].memory.title == "Gas fees"
    assert rec.last.url.params["sortBy"] == "price_asc"
    assert "page" not in rec.last.url.params


async def test_purchase_memory(make_client):
    client, rec = make_client(
        ok({"transaction": {"id": "tx-1", "priceEth": "0.02"}, "memory": MEMORY, "txHash": "0xfeed"})
    )
    response = await client.purchase_memory("lst-1")

    assert response.data.tx_hash == "0xfeed"
    assert response.data.transaction.id == "tx-1"
    assert rec.last.method == "POST"
    assert rec.last.url.path == "/api/v1/marketplace/listings/lst-1/purchase"


async def test_remove_listing_deactivates(make_client):
    client, rec = make_client(ok({"id": "lst-1", "isActive": False}))
    response = await client.remove_listing("lst-1")

    assert response.data.is_active is False
    assert json.loads(rec.last.content) == {"isActive": False}


async def test_transaction_history_type(make_client):
    client, rec = make_client(ok([]))
    response = await client.get_transaction_history("sales")

    assert response.data == []
    assert rec.last.url.params["type"] == "sales"


# -- Wallet ---------------------------------------------------------------------


async def test_transfer(make_client):
    client, rec = make_client(
        ok({"txHash": "0x1", "from": "0xaaa", "to": "0xbbb", "amountEth": "0.5"})
    )
    response = await client.transfer("0xbbb", 0.5)

    assert response.data.from_address == "0xaaa"
    assert json.loads(rec.last.content) == {"toAddress": "0xbbb", "amountEth": 0.5}


async def test_get_balance(make_client):
    client, _ = make_client(ok({"address": "0xaaa", "balanceEth": "1.25", "balanceWei": 1250000}))
    response = await client.get_balance()
    assert response.data.balance_eth == "1.25"
    assert response.data.balance_wei == "1250000"


async def test_context_manager_closes(make_client):
    client, _ = make_client(ok({}))
    async with client:
        pass
    assert client._client.is_closed
