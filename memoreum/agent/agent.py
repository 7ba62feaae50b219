"""Conversational agent with memory-augmented context.

One ``MemoreumAgent`` owns one conversation. Calls to ``chat`` and
``chat_stream`` on the same instance must be serialized by the caller;
concurrent turns interleave history writes.
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import aclosing
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from memoreum.agent import events
from memoreum.agent.events import EventBus
from memoreum.agent.history import ConversationHistory
from memoreum.agent.prompt import DEFAULT_SYSTEM_PROMPT, build_contextual_messages
from memoreum.client import MemoreumClient
from memoreum.config import settings
from memoreum.llm.factory import create_provider
from memoreum.memory.models import CreateMemoryInput, MemoryType

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from memoreum.agent.events import AgentEvent
    from memoreum.llm.base import BaseProvider, CompletionOptions, Message, ProviderConfig
    from memoreum.marketplace.models import MarketplaceListing, PurchaseResult
    from memoreum.memory.models import Memory

logger = logging.getLogger(__name__)

MEMORY_CONTEXT_LIMIT = 5
AUTO_STORE_MIN_LENGTH = 200

_LEARNING_WORDS = re.compile(r"learn|understand|realize|insight|important|remember", re.IGNORECASE)


@dataclass
class AgentConfig:
    """Construction-time settings for an agent."""

    name: str
    ai_provider: ProviderConfig
    auto_store: bool = False
    system_prompt: str | None = None


def should_store_interaction(user_message: str, assistant_message: str) -> bool:
    """Whether a finished turn looks worth keeping as a memory."""
    if len(user_message) + len(assistant_message) <= AUTO_STORE_MIN_LENGTH:
        return False
    return "?" in user_message or bool(_LEARNING_WORDS.search(assistant_message))


class MemoreumAgent:
    """An AI agent wired to the Memoreum marketplace and one AI provider.

    Args:
        memoreum_api_key: Agent API key for the marketplace.
        config: Name, provider config and behaviour flags.
        client: Pre-built marketplace client. Built from settings if omitted.
        provider: Pre-built AI provider. Built via the factory if omitted.
    """

    def __init__(
        self,
        memoreum_api_key: str,
        config: AgentConfig,
        *,
        client: MemoreumClient | None = None,
        provider: BaseProvider | None = None,
    ) -> None:
        self.config = config
        self._client = client or MemoreumClient(
            memoreum_api_key,
            base_url=settings.get_base_url(),
            network=settings.memoreum_network,
            timeout=settings.http_timeout,
        )
        self._provider = provider or create_provider(
            config.ai_provider, timeout=settings.http_timeout
        )
        self._history = ConversationHistory(config.system_prompt or DEFAULT_SYSTEM_PROMPT)
        self._events = EventBus()
        self._running = False

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def provider(self) -> BaseProvider:
        return self._provider

    @property
    def events(self) -> EventBus:
        return self._events

    async def close(self) -> None:
        await self._provider.aclose()
        await self._client.aclose()

    async def __aenter__(self) -> MemoreumAgent:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -- Events ----------------------------------------------------------------

    def on(self, event_type: str, handler: Callable[[AgentEvent], Any]) -> None:
        self._events.on(event_type, handler)

    def off(self, event_type: str, handler: Callable[[AgentEvent], Any]) -> bool:
        return self._events.off(event_type, handler)

    # -- Conversation ----------------------------------------------------------

    async def chat(self, message: str, options: CompletionOptions | None = None) -> str:
        """Run one turn and return the assistant's reply.

        The user message stays in history even if the provider fails.

        Raises:
            ProviderError: The completion call failed.
        """
        messages = await self._begin_turn(message)

        try:
            result = await self._provider.complete(messages, options)
        except Exception as e:
            self._events.emit(events.AGENT_ERROR, e)
            raise

        self._history.add("assistant", result.content)
        self._events.emit(
            events.AGENT_RESPONSE,
            {"response": result.content, "usage": result.usage, "model": result.model},
        )
        await self._maybe_store(message, result.content)
        return result.content

    async def chat_stream(
        self,
        message: str,
        options: CompletionOptions | None = None,
    ) -> AsyncIterator[str]:
        """Run one turn, yielding reply fragments as they arrive.

        The full reply is appended to history once, after the stream
        ends. Fragments already yielded before a failure stay delivered.
        """
        messages = await self._begin_turn(message)

        parts: list[str] = []
        try:
            async with aclosing(self._provider.stream(messages, options)) as stream:
                async for chunk in stream:
                    if chunk.content:
                        parts.append(chunk.content)
                        yield chunk.content
                    if chunk.done:
                        break
        except Exception as e:
            self._events.emit(events.AGENT_ERROR, e)
            raise

        full = "".join(parts)
        self._history.add("assistant", full)
        self._events.emit(events.AGENT_RESPONSE, {"response": full})
        await self._maybe_store(message, full)

    async def _begin_turn(self, message: str) -> list[Message]:
        self._events.emit(events.AGENT_THINKING, {"message": message})
        self._history.add("user", message)
        memories = await self._relevant_memories(message)
        return build_contextual_messages(self._history.snapshot(), memories)

    async def _relevant_memories(self, query: str) -> list[Memory]:
        try:
            response = await self._client.search_memories(query, MEMORY_CONTEXT_LIMIT)
        except Exception:
            logger.warning("Memory search failed", exc_info=True)
            return []
        if not response.success:
            logger.debug("Memory search unavailable: %s", response.error)
            return []
        return response.data or []

    # -- Auto-store ------------------------------------------------------------

    def should_store_interaction(self, user_message: str, assistant_message: str) -> bool:
        return self.config.auto_store and should_store_interaction(
            user_message, assistant_message
        )

    async def _maybe_store(self, user_message: str, assistant_message: str) -> None:
        if self.should_store_interaction(user_message, assistant_message):
            await self._store_interaction(user_message, assistant_message)

    async def _store_interaction(self, user_message: str, assistant_message: str) -> None:
        memory = CreateMemoryInput(
            title=user_message[:100],
            content=f"User: {user_message}\n\nAssistant: {assistant_message}",
            memory_type=MemoryType.CONVERSATION,
            importance=0.5,
            tags=["conversation", "auto-stored"],
            metadata={"source": "chat", "model": self._provider.get_model()},
        )
        try:
            response = await self._client.store_memory(memory)
        except Exception:
            logger.exception("Auto-store failed")
            return
        if not response.success:
            logger.warning("Auto-store failed: %s", response.error)
            return
        self._events.emit(events.MEMORY_CREATED, response.data)

    # -- Marketplace pass-throughs ---------------------------------------------

    async def store_memory(self, memory: CreateMemoryInput) -> Memory | None:
        response = await self._client.store_memory(memory)
        if not response.success:
            logger.warning("Failed to store memory: %s", response.error)
            return None
        self._events.emit(events.MEMORY_CREATED, response.data)
        return response.data

    async def get_memories(self, limit: int = 20) -> list[Memory]:
        response = await self._client.list_memories(limit=limit)
        if not response.success or response.data is None:
            logger.warning("Failed to list memories: %s", response.error)
            return []
        return response.data.items

    async def search_memories(self, query: str, limit: int = 10) -> list[Memory]:
        response = await self._client.search_memories(query, limit)
        if not response.success:
            logger.warning("Memory search failed: %s", response.error)
            return []
        return response.data or []

    async def browse_marketplace(self, limit: int = 20) -> list[MarketplaceListing]:
        response = await self._client.browse_marketplace(limit=limit)
        if not response.success or response.data is None:
            logger.warning("Failed to browse marketplace: %s", response.error)
            return []
        return response.data.items

    async def purchase_memory(self, listing_id: str) -> PurchaseResult | None:
        response = await self._client.purchase_memory(listing_id)
        if not response.success:
            logger.warning("Purchase of %s failed: %s", listing_id, response.error)
            return None
        self._events.emit(events.PURCHASE_COMPLETED, response.data)
        return response.data

    async def list_memory(self, memory_id: str, price_eth: str) -> bool:
        """Put one of the agent's memories up for sale."""
        response = await self._client.create_listing(memory_id, price_eth)
        if not response.success:
            logger.warning("Listing of %s failed: %s", memory_id, response.error)
            return False
        self._events.emit(events.LISTING_CREATED, response.data)
        return True

    # -- History and model -----------------------------------------------------

    def clear_history(self) -> None:
        dropped = self._history.clear()
        logger.debug("Cleared %d message(s) from history", dropped)

    def get_history(self) -> list[Message]:
        return self._history.snapshot()

    def set_system_prompt(self, prompt: str) -> None:
        self._history.set_system_prompt(prompt)

    def get_client(self) -> MemoreumClient:
        return self._client

    def get_model(self) -> str:
        return self._provider.get_model()

    def set_model(self, model: str) -> None:
        self._provider.set_model(model)

    # -- Autonomous mode -------------------------------------------------------

    @property
    def is_autonomous(self) -> bool:
        return self._running

    async def start_autonomous(
        self,
        task_fn: Callable[[MemoreumAgent], Awaitable[Any]],
        interval_ms: int | None = None,
    ) -> None:
        """Run ``task_fn(self)`` every ``interval_ms`` until ``stop()``.

        The interval defaults to ``settings.autonomous_interval_ms``.

        A failing task emits ``agent:error`` and the loop carries on.
        ``stop()`` does not cancel a task that is already running.
        """
        if interval_ms is None:
            interval_ms = settings.autonomous_interval_ms
        self._running = True
        logger.info("Agent %s entering autonomous mode (interval=%dms)", self.name, interval_ms)
        while self._running:
            try:
                await task_fn(self)
            except Exception as e:
                logger.exception("Autonomous task failed")
                self._events.emit(events.AGENT_ERROR, e)
            if not self._running:
                break
            await asyncio.sleep(interval_ms / 1000)
        logger.info("Agent %s left autonomous mode", self.name)

    def stop(self) -> None:
        self._running = False
