from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from poller.app.core import SERVICE_NAME
from poller.app.core.cancellation import CancellationToken
from poller.app.domain.models import Batch, LoopStats
from poller.app.ports.message_handler import MessageHandler
from poller.app.ports.message_source import (
    MessageSource,
    MessageSourceError,
    MessageSourceTimeoutError,
)


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ReceiveLoop:
    """
    Drains a MessageSource until cancelled: poll, process each message, acknowledge it.

    A receive that times out (or returns no messages) is never a failure. Any other
    receive error, a handler error, or an acknowledge error ends the loop and propagates;
    the loop does not retry or back off. Once a batch has been received, all of its
    messages are processed and acknowledged even if cancellation arrives mid-batch.
    """

    def __init__(
        self,
        source: MessageSource,
        handler: MessageHandler,
        *,
        max_batch_size: int,
        poll_deadline_seconds: float,
        idle_wait_seconds: float,
        ack_deadline_seconds: float | None = None,
        idle_wait_on_timeout: bool = False,
    ) -> None:
        if max_batch_size <= 0:
            raise ValueError("max_batch_size must be positive")
        if poll_deadline_seconds <= 0:
            raise ValueError("poll_deadline_seconds must be positive")
        self._source = source
        self._handler = handler
        self._max_batch_size = int(max_batch_size)
        self._poll_deadline = float(poll_deadline_seconds)
        self._idle_wait = max(0.0, float(idle_wait_seconds))
        self._ack_deadline = (
            float(ack_deadline_seconds) if ack_deadline_seconds is not None else self._poll_deadline
        )
        self._idle_wait_on_timeout = idle_wait_on_timeout

    async def run(self, token: CancellationToken) -> LoopStats:
        stats = LoopStats()
        _log("receive_loop_started", max_batch_size=self._max_batch_size, deadline=self._poll_deadline)
        while not token.cancelled:
            stats.polls += 1
            try:
                batch = await self._poll(token)
            except MessageSourceTimeoutError:
                stats.timeouts += 1
                if self._idle_wait_on_timeout:
                    await token.wait(self._idle_wait)
                continue

            if batch is None:
                break

            if not batch:
                stats.empty_polls += 1
                await token.wait(self._idle_wait)
                continue

            stats.received += len(batch)
            await self._process_batch(batch, stats)

        _log(
            "receive_loop_stopped",
            polls=stats.polls,
            received=stats.received,
            acknowledged=stats.acknowledged,
        )
        return stats

    async def _poll(self, token: CancellationToken) -> Batch | None:
        """Receive one batch. Returns None when cancellation won the race."""
        receive_task = asyncio.ensure_future(
            self._source.receive(self._max_batch_size, self._poll_deadline)
        )
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {receive_task, cancel_task},
                timeout=self._poll_deadline,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_task.cancel()

        if receive_task in done:
            # A batch that is already in hand is processed even if cancellation also fired.
            return receive_task.result()

        await _abandon(receive_task)
        if cancel_task in done:
            _log("receive_cancelled")
            return None
        raise MessageSourceTimeoutError(f"no messages within {self._poll_deadline}s")

    async def _process_batch(self, batch: Batch, stats: LoopStats) -> None:
        for message in batch:
            await self._handler(message)
            try:
                await asyncio.wait_for(self._source.acknowledge(message), self._ack_deadline)
            except asyncio.TimeoutError as exc:
                raise MessageSourceError(
                    f"acknowledge timed out after {self._ack_deadline}s for message {message.message_id}"
                ) from exc
            stats.acknowledged += 1
            _log("message_acknowledged", message_id=message.message_id)


async def _abandon(task: asyncio.Future[Any]) -> None:
    """Cancel an in-flight receive. A hard error it raised before cancelling still propagates."""
    task.cancel()
    try:
        await task
    except (asyncio.CancelledError, MessageSourceTimeoutError):
        pass
