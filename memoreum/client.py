"""Async HTTP client for the Memoreum marketplace API.

Every call returns an ``APIResponse`` envelope. Transport failures,
non-2xx statuses and unexpected payloads become ``success=False`` with
an error string; nothing here raises for a remote failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from memoreum.config import MAINNET_BASE_URL, TESTNET_BASE_URL
from memoreum.llm.base import DEFAULT_TIMEOUT
from memoreum.marketplace.models import (
    AgentProfile,
    AgentStats,
    MarketplaceListing,
    PurchaseResult,
    Transaction,
    TransferResult,
    WalletInfo,
)
from memoreum.memory.models import CreateMemoryInput, Memory, Page

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20


@dataclass
class APIResponse(Generic[T]):
    """Uniform result of a remote call.

    Callers must check ``success`` before using ``data``.
    """

    success: bool
    data: T | None = None
    error: str | None = None

    @classmethod
    def fail(cls, error: str) -> APIResponse[Any]:
        return cls(success=False, error=error)


def _page_param(offset: int | None, limit: int | None) -> int | None:
    """Convert an item offset to the API's 1-based page number."""
    if not offset:
        return None
    return offset // (limit or DEFAULT_PAGE_SIZE) + 1


class MemoreumClient:
    """Thin async façade over the marketplace REST API.

    Args:
        api_key: Agent API key, sent as ``X-API-Key``.
        base_url: Override the API root. Defaults to the network's URL.
        network: ``mainnet`` or ``testnet``.
        timeout: Per-request timeout in seconds.
        http_client: Pre-built client (tests pass one with a MockTransport).
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        network: str = "mainnet",
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._network = network
        default_url = TESTNET_BASE_URL if network == "testnet" else MAINNET_BASE_URL
        self._base_url = (base_url or default_url).rstrip("/")
        self._timeout = timeout
        self._client = http_client
        self._agent: AgentProfile | None = None

    @property
    def network(self) -> str:
        return self._network

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> MemoreumClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- HTTP ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> APIResponse[Any]:
        headers = {"X-API-Key": self._api_key} if authenticated else {}
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            resp = await self._get_client().request(
                method,
                f"{self._base_url}{endpoint}",
                json=json,
                params=params,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, endpoint, e)
            return APIResponse.fail(str(e) or type(e).__name__)

        try:
            body = resp.json()
        except ValueError:
            body = None

        if not resp.is_success:
            error = None
            if isinstance(body, dict):
                error = body.get("error") or body.get("message")
            return APIResponse.fail(error or f"HTTP {resp.status_code}: {resp.reason_phrase}")

        if body is None:
            return APIResponse.fail("Invalid JSON in response")
        if isinstance(body, dict):
            if body.get("success") is False:
                return APIResponse.fail(body.get("message") or body.get("error") or "Request failed")
            if body.get("data") is not None:
                return APIResponse(success=True, data=body["data"])
        return APIResponse(success=True, data=body)

    @staticmethod
    def _parse(response: APIResponse[Any], shape: Any) -> APIResponse[Any]:
        """Validate a successful payload into ``shape`` (a model or type)."""
        if not response.success:
            return response
        try:
            data = TypeAdapter(shape).validate_python(response.data)
        except ValidationError as e:
            logger.warning("Unexpected response shape for %s: %s", shape, e)
            return APIResponse.fail(f"Unexpected response shape: {e.error_count()} error(s)")
        return APIResponse(success=True, data=data)

    # -- Agent -----------------------------------------------------------------

    async def get_agent(self) -> APIResponse[AgentProfile]:
        """Fetch and cache the authenticated agent's profile."""
        response = self._parse(await self._request("GET", "/api/v1/auth/me"), AgentProfile)
        if response.success:
            self._agent = response.data
        return response

    def get_cached_agent(self) -> AgentProfile | None:
        """The profile from the last successful ``get_agent`` call."""
        return self._agent

    async def register_agent(self, name: str) -> APIResponse[AgentProfile]:
        """Register a new agent. No API key is required."""
        response = await self._request(
            "POST",
            "/api/v1/auth/register",
            json={"agentName": name},
            authenticated=False,
        )
        return self._parse(response, AgentProfile)

    async def get_agent_stats(self) -> APIResponse[AgentStats]:
        return self._parse(await self._request("GET", "/api/v1/analytics/me"), AgentStats)

    async def regenerate_api_key(self) -> APIResponse[dict[str, Any]]:
        return await self._request("POST", "/api/v1/auth/regenerate-key", json={})

    async def verify_api_key(self) -> bool:
        return (await self.get_agent()).success

    # -- Memories --------------------------------------------------------------

    async def store_memory(self, memory: CreateMemoryInput) -> APIResponse[Memory]:
        response = await self._request("POST", "/api/v1/memories", json=memory.to_request())
        return self._parse(response, Memory)

    async def get_memory(self, memory_id: str) -> APIResponse[Memory]:
        return self._parse(await self._request("GET", f"/api/v1/memories/{memory_id}"), Memory)

    async def list_memories(
        self,
        *,
        limit: int | None = None,
        offset: int | None = None,
        is_public: bool | None = None,
        category_id: int | None = None,
    ) -> APIResponse[Page[Memory]]:
        params = {
            "isForSale": None if is_public is None else str(is_public).lower(),
            "categoryId": category_id,
            "limit": limit,
            "page": _page_param(offset, limit),
        }
        response = await self._request("GET", "/api/v1/memories", params=params)
        return self._parse(response, Page[Memory])

    async def search_memories(self, query: str, limit: int = 10) -> APIResponse[list[Memory]]:
        """Semantic search over marketplace memories."""
        response = await self._request(
            "GET",
            "/api/v1/memories/search/marketplace",
            params={"q": query, "limit": limit},
        )
        return self._parse(response, list[Memory])

    async def update_memory(
        self,
        memory_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        tags: list[str] | None = None,
        is_public: bool | None = None,
        price_eth: float | None = None,
    ) -> APIResponse[Memory]:
        body = {
            "title": title,
            "description": content,
            "tags": tags,
            "isForSale": is_public,
            "priceEth": price_eth,
        }
        response = await self._request(
            "PATCH",
            f"/api/v1/memories/{memory_id}",
            json={k: v for k, v in body.items() if v is not None},
        )
        return self._parse(response, Memory)

    async def delete_memory(self, memory_id: str) -> APIResponse[dict[str, Any]]:
        return await self._request("DELETE", f"/api/v1/memories/{memory_id}")

    async def get_categories(self) -> APIResponse[list[Any]]:
        return self._parse(await self._request("GET", "/api/v1/memories/categories"), list[Any])

    async def get_purchased_memories(self) -> APIResponse[list[Memory]]:
        response = await self._request("GET", "/api/v1/memories/purchased")
        return self._parse(response, list[Memory])

    # -- Marketplace -----------------------------------------------------------

    async def create_listing(
        self,
        memory_id: str,
        price_eth: str,
        *,
        expires_at: str | None = None,
    ) -> APIResponse[MarketplaceListing]:
        body = {"memoryId": memory_id, "priceEth": price_eth}
        if expires_at:
            body["expiresAt"] = expires_at
        response = await self._request("POST", "/api/v1/marketplace/listings", json=body)
        return self._parse(response, MarketplaceListing)

    async def get_listing(self, listing_id: str) -> APIResponse[MarketplaceListing]:
        response = await self._request("GET", f"/api/v1/marketplace/listings/{listing_id}")
        return self._parse(response, MarketplaceListing)

    async def browse_marketplace(
        self,
        *,
        limit: int | None = None,
        offset: int | None = None,
        category_id: int | None = None,
        min_price: str | None = None,
        max_price: str | None = None,
        sort_by: str | None = None,
    ) -> APIResponse[Page[MarketplaceListing]]:
        params = {
            "categoryId": category_id,
            "minPrice": min_price,
            "maxPrice": max_price,
            "sortBy": sort_by,
            "limit": limit,
            "page": _page_param(offset, limit),
        }
        response = await self._request("GET", "/api/v1/marketplace", params=params)
        return self._parse(response, Page[MarketplaceListing])

    async def get_my_listings(self) -> APIResponse[list[MarketplaceListing]]:
        response = await self._request("GET", "/api/v1/marketplace/my-listings")
        return self._parse(response, list[MarketplaceListing])

    async def update_listing(
        self,
        listing_id: str,
        *,
        price_eth: str | None = None,
        is_active: bool | None = None,
    ) -> APIResponse[MarketplaceListing]:
        body = {"priceEth": price_eth, "isActive": is_active}
        response = await self._request(
            "PATCH",
            f"/api/v1/marketplace/listings/{listing_id}",
            json={k: v for k, v in body.items() if v is not None},
        )
        return self._parse(response, MarketplaceListing)

    async def remove_listing(self, listing_id: str) -> APIResponse[MarketplaceListing]:
        """Deactivate a listing."""
        return await self.update_listing(listing_id, is_active=False)

    async def purchase_memory(self, listing_id: str) -> APIResponse[PurchaseResult]:
        response = await self._request(
            "POST", f"/api/v1/marketplace/listings/{listing_id}/purchase", json={}
        )
        return self._parse(response, PurchaseResult)

    async def get_transaction_history(self, kind: str = "all") -> APIResponse[list[Transaction]]:
        """List transactions. ``kind`` is all, purchases or sales."""
        response = await self._request(
            "GET", "/api/v1/marketplace/transactions", params={"type": kind}
        )
        return self._parse(response, list[Transaction])

    async def get_transaction(self, transaction_id: str) -> APIResponse[Transaction]:
        response = await self._request(
            "GET", f"/api/v1/marketplace/transactions/{transaction_id}"
        )
        return self._parse(response, Transaction)

    # -- Wallet (server-side custody) ------------------------------------------

    async def get_balance(self) -> APIResponse[WalletInfo]:
        return self._parse(await self._request("GET", "/api/v1/auth/wallet/balance"), WalletInfo)

    async def get_wallet(self) -> APIResponse[WalletInfo]:
        return self._parse(await self._request("GET", "/api/v1/auth/wallet"), WalletInfo)

    async def transfer(self, to_address: str, amount_eth: float) -> APIResponse[TransferResult]:
        """Ask the API to send ETH from the agent's custodial wallet."""
        response = await self._request(
            "POST",
            "/api/v1/auth/wallet/transfer",
            json={"toAddress": to_address, "amountEth": amount_eth},
        )
        return self._parse(response, TransferResult)
