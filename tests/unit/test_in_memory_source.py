"""InMemorySource lease semantics and an end-to-end send/receive run over it."""
from __future__ import annotations

import asyncio

import pytest

from poller.app.application.message_handlers import DeduplicatingHandler
from poller.app.application.receive_loop import ReceiveLoop
from poller.app.application.send_loop import SendLoop
from poller.app.core.cancellation import CancellationToken
from poller.app.domain.models import Message
from poller.app.infrastructure.messaging.inmemory.in_memory_source import InMemorySource
from poller.app.ports.message_source import MessageSource, MessageSourceError
from tests.fakes import CapturingHandler


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_implements_message_source_port():
    assert isinstance(InMemorySource(), MessageSource)


def test_receive_respects_max_count_and_ack_removes():
    source = InMemorySource()

    async def _run():
        for i in range(5):
            await source.send(f"p{i}".encode(), 1)
        first = await source.receive(3, 1)
        for message in first:
            await source.acknowledge(message)
        second = await source.receive(10, 1)
        return first, second

    first, second = asyncio.run(_run())

    assert [m.body for m in first] == [b"p0", b"p1", b"p2"]
    assert [m.body for m in second] == [b"p3", b"p4"]
    assert source.pending == 2


def test_empty_source_returns_empty_batch_after_deadline():
    source = InMemorySource()

    assert asyncio.run(source.receive(10, 0.01)) == []


def test_unacknowledged_message_is_redelivered_after_lease_expiry():
    clock = _Clock()
    source = InMemorySource(visibility_timeout_seconds=30, clock=clock)

    async def _run():
        await source.send(b"payload", 1)
        first = await source.receive(1, 0.01)
        hidden = await source.receive(1, 0.01)
        clock.now = 31
        again = await source.receive(1, 0.01)
        return first, hidden, again

    first, hidden, again = asyncio.run(_run())

    assert hidden == []
    assert again[0].message_id == first[0].message_id
    assert again[0].ack_token != first[0].ack_token


def test_ack_with_stale_receipt_is_a_hard_error():
    clock = _Clock()
    source = InMemorySource(visibility_timeout_seconds=30, clock=clock)

    async def _run():
        await source.send(b"payload", 1)
        (stale,) = await source.receive(1, 0.01)
        clock.now = 31
        await source.receive(1, 0.01)
        await source.acknowledge(stale)

    with pytest.raises(MessageSourceError):
        asyncio.run(_run())


def test_send_then_drain_end_to_end():
    source = InMemorySource()
    events: list[tuple[str, str]] = []
    received: list[Message] = []

    async def _run():
        await SendLoop(source, interval_seconds=0, count=4).run(CancellationToken())
        token = CancellationToken()

        def stop_after_four(message: Message) -> None:
            received.append(message)
            if len(received) == 4:
                token.cancel()

        handler = DeduplicatingHandler(CapturingHandler(events, on_message=stop_after_four))
        loop = ReceiveLoop(source, handler, max_batch_size=3, poll_deadline_seconds=1, idle_wait_seconds=0)
        return await loop.run(token)

    stats = asyncio.run(_run())

    assert stats.acknowledged == 4
    assert source.pending == 0
    assert [m.sequence_number for m in received] == [1, 2, 3, 4]
