"""Cooperative cancellation token shared by the poll loops and the signal handler.

The token moves one way only: active -> cancelled. `cancel()` may be called from a
signal handler, another thread, or a coroutine; loops observe it with the non-blocking
`cancelled` property at iteration boundaries and with `wait()` wherever they would
otherwise block.
"""
from __future__ import annotations

import asyncio


class CancellationToken:
    """Single-writer, multi-reader cancellation flag with a bounded async wait."""

    def __init__(self) -> None:
        self._cancelled = False
        self._event = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        loop = self._loop
        if loop is None or loop.is_closed():
            self._event.set()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._event.set()
        else:
            loop.call_soon_threadsafe(self._event.set)

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until cancelled or `timeout` seconds pass. Returns True if cancelled."""
        if self._cancelled:
            return True
        self._loop = asyncio.get_running_loop()
        if self._cancelled:
            return True
        if timeout is not None and timeout <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return self._cancelled
        return True
