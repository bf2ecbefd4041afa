"""Bounded retry pacing for establishing broker connections.

The poll loops never back off; a source retries only while it is still connecting.
"""
import asyncio
from typing import AsyncIterator, Tuple


def backoff_delays(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> list[float]:
    """Waits after each failed attempt but the last, capped at `max_delay`."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    if initial_delay < 0 or max_delay < 0 or multiplier < 1:
        raise ValueError("delays must be non-negative and multiplier at least 1")
    delays: list[float] = []
    delay = min(initial_delay, max_delay)
    for _ in range(max_attempts - 1):
        delays.append(delay)
        delay = min(delay * multiplier, max_delay)
    return delays


async def connection_attempts(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[Tuple[int, float]]:
    """
    Yield `(attempt, wait_if_failed)` before each connection attempt.

    The caller breaks out on success. Resuming the iteration means the attempt failed:
    the generator sleeps the announced wait, then yields the next attempt. The final
    attempt announces a wait of 0 and the iteration ends after it.
    """
    delays = backoff_delays(initial_delay, max_delay, multiplier, max_attempts)
    for attempt in range(1, max_attempts + 1):
        wait = delays[attempt - 1] if attempt < max_attempts else 0.0
        yield attempt, wait
        if wait > 0:
            await asyncio.sleep(wait)
