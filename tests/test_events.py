"""Tests for the agent EventBus."""

import asyncio
import logging

from memoreum.agent.events import AGENT_RESPONSE, MEMORY_CREATED, WILDCARD, EventBus


def test_specific_handlers_run_before_wildcard():
    bus = EventBus()
    calls: list[str] = []
    bus.on(WILDCARD, lambda e: calls.append("wild"))
    bus.on(MEMORY_CREATED, lambda e: calls.append("first"))
    bus.on(MEMORY_CREATED, lambda e: calls.append("second"))

    bus.emit(MEMORY_CREATED, {"id": "m1"})

    assert calls == ["first", "second", "wild"]


def test_wildcard_receives_every_event():
    bus = EventBus()
    seen = []
    bus.on(WILDCARD, lambda e: seen.append(e.type))
    bus.emit(MEMORY_CREATED)
    bus.emit(AGENT_RESPONSE)
    assert seen == [MEMORY_CREATED, AGENT_RESPONSE]


def test_event_payload():
    bus = EventBus()
    received = []
    bus.on(AGENT_RESPONSE, received.append)
    event = bus.emit(AGENT_RESPONSE, {"response": "hi"})
    assert received == [event]
    assert event.data == {"response": "hi"}
    assert event.timestamp.tzinfo is not None


def test_failing_handler_is_isolated(caplog):
    bus = EventBus()
    calls = []

    def broken(event):
        raise RuntimeError("handler bug")

    bus.on(MEMORY_CREATED, broken)
    bus.on(MEMORY_CREATED, lambda e: calls.append("ok"))
    bus.on(WILDCARD, lambda e: calls.append("wild"))

    with caplog.at_level(logging.ERROR, logger="memoreum.agent.events"):
        bus.emit(MEMORY_CREATED)

    assert calls == ["ok", "wild"]
    assert "handler bug" in caplog.text


def test_off():
    bus = EventBus()
    calls = []

    def handler(event):
        calls.append(event.type)

    bus.on(MEMORY_CREATED, handler)
    assert bus.off(MEMORY_CREATED, handler) is True
    assert bus.off(MEMORY_CREATED, handler) is False
    bus.emit(MEMORY_CREATED)
    assert calls == []


def test_unsubscribe_during_dispatch():
    bus = EventBus()
    calls = []

    def once(event):
        calls.append("once")
        bus.off(MEMORY_CREATED, once)

    bus.on(MEMORY_CREATED, once)
    bus.on(MEMORY_CREATED, lambda e: calls.append("after"))

    bus.emit(MEMORY_CREATED)
    bus.emit(MEMORY_CREATED)

    assert calls == ["once", "after", "after"]
    assert bus.off(MEMORY_CREATED, once) is False


async def test_async_handler_is_scheduled():
    bus = EventBus()
    seen = []

    async def handler(event):
        seen.append(event.data)

    bus.on(MEMORY_CREATED, handler)
    bus.emit(MEMORY_CREATED, "m1")
    assert seen == []

    await asyncio.sleep(0)
    assert seen == ["m1"]


async def test_async_handler_failure_logged(caplog):
    bus = EventBus()

    async def handler(event):
        raise ValueError("async bug")

    bus.on(MEMORY_CREATED, handler)
    with caplog.at_level(logging.ERROR, logger="memoreum.agent.events"):
        bus.emit(MEMORY_CREATED)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

    assert "Async event handler error" in caplog.text


def test_async_handler_without_loop(caplog):
    bus = EventBus()

    async def handler(event):
        pass

    bus.on(MEMORY_CREATED, handler)
    with caplog.at_level(logging.WARNING, logger="memoreum.agent.events"):
        bus.emit(MEMORY_CREATED)

    assert "No running event loop" in caplog.text
