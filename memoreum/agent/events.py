"""Publish/subscribe bus for agent lifecycle events."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

# Subscribing to this tag receives every event.
WILDCARD = "*"

MEMORY_CREATED = "memory:created"
MEMORY_UPDATED = "memory:updated"
MEMORY_DELETED = "memory:deleted"
LISTING_CREATED = "listing:created"
LISTING_SOLD = "listing:sold"
PURCHASE_COMPLETED = "purchase:completed"
WALLET_TRANSFER = "wallet:transfer"
AGENT_THINKING = "agent:thinking"
AGENT_RESPONSE = "agent:response"
AGENT_ERROR = "agent:error"


@dataclass(frozen=True)
class AgentEvent:
    """One lifecycle event. Lives only for the duration of a dispatch."""

    type: str
    data: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventBus:
    """Routes events to handlers registered per event type.

    Handlers for the event's own type run first, then wildcard handlers,
    each in registration order. A handler that raises is logged and
    skipped. Coroutine handlers are scheduled on the running loop
    rather than awaited.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[[AgentEvent], Any]]] = {}
        self._pending: set[asyncio.Task] = set()

    def on(self, event_type: str, handler: Callable[[AgentEvent], Any]) -> None:
        """Subscribe ``handler`` to ``event_type`` (or ``WILDCARD``)."""
        self._handlers.setdefault(event_type, []).append(handler)

    def off(self, event_type: str, handler: Callable[[AgentEvent], Any]) -> bool:
        """Unsubscribe one registration. Returns False if it was not found."""
        handlers = self._handlers.get(event_type, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def emit(self, event_type: str, data: Any = None) -> AgentEvent:
        """Build an event and dispatch it. Never raises."""
        event = AgentEvent(type=event_type, data=data)
        self.dispatch(event)
        return event

    def dispatch(self, event: AgentEvent) -> None:
        # Snapshot so handlers may (un)subscribe while we iterate.
        handlers = [*self._handlers.get(event.type, []), *self._handlers.get(WILDCARD, [])]
        for handler in handlers:
            try:
                result = handler(event)
            except Exception:
                logger.exception("Event handler error (%s)", event.type)
                continue
            if inspect.isawaitable(result):
                self._schedule(result, event.type)

    def _schedule(self, awaitable: Any, event_type: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop for async handler (%s)", event_type)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._finish(t, event_type))

    def _finish(self, task: asyncio.Task, event_type: str) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Async event handler error (%s)", event_type, exc_info=task.exception()
            )
