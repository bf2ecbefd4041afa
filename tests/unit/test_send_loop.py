"""Unit tests for SendLoop count limits, cancellation and failures."""
from __future__ import annotations

import asyncio
import json

import pytest

from poller.app.application.send_loop import SendLoop, counter_payload
from poller.app.ports.message_source import MessageSourceError
from tests.fakes import FakeSource, RecordingToken


def test_stops_after_count(token: RecordingToken):
    source = FakeSource([])
    stats = asyncio.run(SendLoop(source, interval_seconds=0.25, count=3).run(token))

    assert stats.sent == 3
    assert [json.loads(p)["counter"] for p in source.sent] == [0, 1, 2]
    # interval waits only between sends, not after the last one
    assert token.timed_waits == [0.25, 0.25]


def test_count_zero_sends_until_cancelled(token: RecordingToken):
    source = FakeSource([])

    def payload(counter: int) -> bytes:
        if counter == 4:
            token.cancel()
        return str(counter).encode()

    stats = asyncio.run(SendLoop(source, interval_seconds=0, count=0, payload_factory=payload).run(token))

    assert stats.sent == 5
    assert source.sent[-1] == b"4"


def test_cancelled_before_start_sends_nothing():
    token = RecordingToken()
    token.cancel()
    source = FakeSource([])

    stats = asyncio.run(SendLoop(source, interval_seconds=0, count=10).run(token))

    assert stats.sent == 0
    assert source.sent == []


def test_send_failure_is_fatal(token: RecordingToken, hard_error):
    source = FakeSource([], send_error=hard_error)

    with pytest.raises(MessageSourceError) as excinfo:
        asyncio.run(SendLoop(source, interval_seconds=0, count=3).run(token))

    assert excinfo.value is hard_error


def test_send_deadline_is_a_hard_error(token: RecordingToken):
    class _SlowSource(FakeSource):
        async def send(self, payload: bytes, deadline: float) -> None:
            await asyncio.sleep(60)

    with pytest.raises(MessageSourceError, match="send timed out"):
        asyncio.run(SendLoop(_SlowSource([]), interval_seconds=0, count=1, send_deadline_seconds=0.05).run(token))


def test_negative_count_rejected():
    with pytest.raises(ValueError):
        SendLoop(FakeSource([]), interval_seconds=1, count=-1)


def test_counter_payload_shape():
    body = json.loads(counter_payload(7))

    assert body["counter"] == 7
    assert body["ts"].endswith("Z")
    assert "T" in body["ts"]
