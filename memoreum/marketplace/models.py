"""Data models for marketplace listings, purchases and wallets."""

from datetime import datetime
from typing import Any

from pydantic import Field

from memoreum.memory.models import Memory, RemoteModel


class MarketplaceListing(RemoteModel):
    """An offer to sell a memory."""

    id: str
    memory_id: str = ""
    seller_id: str = ""
    price_eth: str = "0"
    is_active: bool = True
    views: int = 0
    listed_at: datetime | None = None
    expires_at: datetime | None = None
    memory: Memory | None = None
    seller: dict[str, Any] | None = None


class Transaction(RemoteModel):
    """A purchase of a listing, with escrow bookkeeping."""

    id: str
    listing_id: str = ""
    memory_id: str = ""
    seller_id: str = ""
    buyer_id: str = ""
    price_eth: str = "0"
    platform_fee_eth: str = "0"
    seller_receives_eth: str = "0"
    escrow_status: str = "pending"
    buyer_to_platform_tx_hash: str | None = None
    platform_to_seller_tx_hash: str | None = None
    status: str = "pending"
    created_at: datetime | None = None
    completed_at: datetime | None = None


class PurchaseResult(RemoteModel):
    transaction: Transaction | None = None
    memory: Memory | None = None
    tx_hash: str = ""


class AgentProfile(RemoteModel):
    """The authenticated agent as reported by ``/auth/me``."""

    id: str
    agent_name: str = ""
    wallet_address: str = ""
    reputation_score: float = 0.0
    total_sales: int = 0
    total_purchases: int = 0
    is_active: bool = True
    created_at: datetime | None = None
    # Only returned once, at registration.
    api_key: str | None = None


class AgentStats(RemoteModel):
    memories_stored: int = 0
    memories_sold: int = 0
    memories_purchased: int = 0
    total_earnings: str = "0"
    total_spent: str = "0"
    reputation_score: float = 0.0


class WalletInfo(RemoteModel):
    address: str = ""
    balance_eth: str = "0"
    balance_wei: str = "0"
    network: str = ""


class TransferResult(RemoteModel):
    tx_hash: str = ""
    from_address: str = Field(default="", alias="from")
    to: str = ""
    amount_eth: str = "0"
    gas_used: str = "0"
