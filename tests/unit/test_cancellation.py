from __future__ import annotations

import asyncio
import threading
import time

from poller.app.core.cancellation import CancellationToken


def test_wait_times_out_while_active():
    token = CancellationToken()

    assert asyncio.run(token.wait(0.01)) is False
    assert token.cancelled is False


def test_wait_returns_immediately_once_cancelled():
    token = CancellationToken()
    token.cancel()
    token.cancel()

    started = time.monotonic()
    assert asyncio.run(token.wait(30)) is True
    assert time.monotonic() - started < 1
    assert token.cancelled is True


def test_cancel_from_another_thread_wakes_waiter():
    token = CancellationToken()

    async def _run() -> bool:
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            return await token.wait(30)
        finally:
            timer.join()

    started = time.monotonic()
    assert asyncio.run(_run()) is True
    assert time.monotonic() - started < 5


def test_zero_timeout_is_a_non_blocking_check():
    token = CancellationToken()

    assert asyncio.run(token.wait(0)) is False
