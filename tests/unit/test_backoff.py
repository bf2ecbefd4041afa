from __future__ import annotations

import asyncio

import pytest

from poller.app.core import backoff
from poller.app.core.backoff import backoff_delays, connection_attempts


def test_delays_grow_geometrically_and_cap():
    assert backoff_delays(1, 5, 2, 5) == [1, 2, 4, 5]


def test_single_attempt_never_waits():
    assert backoff_delays(1, 30, 2, 1) == []


@pytest.mark.parametrize(
    "args",
    [(1, 30, 2, 0), (-1, 30, 2, 3), (1, 30, 0.5, 3)],
)
def test_invalid_backoff_rejected(args):
    with pytest.raises(ValueError):
        backoff_delays(*args)


def test_every_failed_attempt_sleeps_the_wait_it_announced(monkeypatch):
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    monkeypatch.setattr(backoff.asyncio, "sleep", fake_sleep)

    async def _run():
        return [pair async for pair in connection_attempts(0.5, 10, 3, 4)]

    attempts = asyncio.run(_run())

    assert attempts == [(1, 0.5), (2, 1.5), (3, 4.5), (4, 0.0)]
    assert slept == [0.5, 1.5, 4.5]


def test_breaking_out_on_success_stops_waiting(monkeypatch):
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    monkeypatch.setattr(backoff.asyncio, "sleep", fake_sleep)

    async def _run():
        async for attempt, _ in connection_attempts(1, 30, 2, 5):
            if attempt == 2:
                return attempt
        return None

    assert asyncio.run(_run()) == 2
    assert slept == [1]
