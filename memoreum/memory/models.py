"""Data models for memories as stored by the marketplace API."""

from datetime import datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class RemoteModel(BaseModel):
    """Base for API payloads: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class MemoryType(StrEnum):
    CONVERSATION = "conversation"
    EXPERIENCE = "experience"
    KNOWLEDGE = "knowledge"
    TRANSACTION = "transaction"
    OBSERVATION = "observation"
    DECISION = "decision"
    LEARNING = "learning"
    ERROR = "error"
    SUCCESS = "success"
    INTERACTION = "interaction"


class Memory(RemoteModel):
    """A memory owned by the remote system."""

    id: str
    agent_id: str = ""
    memory_type: str = MemoryType.CONVERSATION
    title: str = ""
    # The API calls the body "description" and sale status "isForSale".
    content: str = Field(default="", validation_alias=AliasChoices("content", "description"))
    content_hash: str = ""
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_public: bool = Field(default=False, validation_alias=AliasChoices("isPublic", "isForSale"))
    price_eth: str | None = None
    total_sold: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CreateMemoryInput(RemoteModel):
    """Fields accepted when storing a new memory."""

    title: str
    content: str
    memory_type: MemoryType = MemoryType.CONVERSATION
    category_id: int | None = None
    memory_data: Any = None
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_public: bool = False
    price_eth: float | None = None

    def to_request(self) -> dict[str, Any]:
        """Serialize to the POST /memories body."""
        body: dict[str, Any] = {
            "title": self.title,
            "description": self.content,
            "memoryType": self.memory_type.value,
            "importance": self.importance,
            "tags": self.tags,
            "metadata": self.metadata,
            "isForSale": self.is_public,
        }
        if self.category_id is not None:
            body["categoryId"] = self.category_id
        if self.memory_data is not None:
            body["memoryData"] = self.memory_data
        if self.price_eth is not None:
            body["priceEth"] = self.price_eth
        return body


class Page(RemoteModel, Generic[T]):
    """One page of a paginated listing."""

    items: list[T] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20
    has_more: bool = False
