from __future__ import annotations

import asyncio

import pytest

from poller.app.application.message_handlers import DeduplicatingHandler, LoggingMessageHandler
from poller.app.domain.models import Message
from tests.fakes import CapturingHandler, make_message


def test_logging_handler_is_repeatable():
    handler = LoggingMessageHandler()
    message = make_message("m1", '{"counter":1}')

    asyncio.run(handler(message))
    asyncio.run(handler(message))

    assert handler.handled == 2


def test_logging_handler_tolerates_non_utf8_bodies():
    handler = LoggingMessageHandler(max_body_length=8)

    asyncio.run(handler(Message(message_id="m1", body=b"\xff\xfe" + b"x" * 100)))

    assert handler.handled == 1


def test_dedupe_skips_redelivered_message():
    events: list[tuple[str, str]] = []
    inner = CapturingHandler(events)
    handler = DeduplicatingHandler(inner, capacity=10)

    async def _run():
        await handler(make_message("m1"))
        await handler(make_message("m2"))
        await handler(make_message("m1"))

    asyncio.run(_run())

    assert inner.processed == ["m1", "m2"]
    assert "m1" in handler


def test_dedupe_forgets_oldest_beyond_capacity():
    inner = CapturingHandler([])
    handler = DeduplicatingHandler(inner, capacity=2)

    async def _run():
        for message_id in ("a", "b", "c", "a"):
            await handler(make_message(message_id))

    asyncio.run(_run())

    assert inner.processed == ["a", "b", "c", "a"]
    assert "b" not in handler


def test_dedupe_does_not_remember_failed_messages():
    def boom(message: Message) -> None:
        raise RuntimeError("downstream down")

    inner = CapturingHandler([], on_message=boom)
    handler = DeduplicatingHandler(inner)

    with pytest.raises(RuntimeError):
        asyncio.run(handler(make_message("m1")))

    assert "m1" not in handler


def test_dedupe_capacity_must_be_positive():
    with pytest.raises(ValueError):
        DeduplicatingHandler(CapturingHandler([]), capacity=0)
