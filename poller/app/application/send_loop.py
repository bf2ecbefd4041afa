from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger

from poller.app.core import SERVICE_NAME
from poller.app.core.cancellation import CancellationToken
from poller.app.domain.models import SendStats
from poller.app.ports.message_source import MessageSource, MessageSourceError

PayloadFactory = Callable[[int], bytes]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def counter_payload(counter: int) -> bytes:
    """Default payload: {"counter": n, "ts": "<RFC3339 UTC>"}."""
    ts = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return json.dumps({"counter": counter, "ts": ts}, separators=(",", ":")).encode()


class SendLoop:
    """
    Sends one payload per interval until `count` messages are sent or the token is cancelled.

    count == 0 means send until cancelled. A failed send ends the loop and propagates.
    """

    def __init__(
        self,
        source: MessageSource,
        *,
        interval_seconds: float,
        count: int = 0,
        send_deadline_seconds: float = 30.0,
        payload_factory: PayloadFactory = counter_payload,
    ) -> None:
        if count < 0:
            raise ValueError("count must be >= 0")
        self._source = source
        self._interval = max(0.0, float(interval_seconds))
        self._count = int(count)
        self._send_deadline = float(send_deadline_seconds)
        self._payload_factory = payload_factory

    async def run(self, token: CancellationToken) -> SendStats:
        stats = SendStats()
        _log("send_loop_started", count=self._count, interval=self._interval)
        while not token.cancelled:
            if self._count > 0 and stats.sent >= self._count:
                break

            payload = self._payload_factory(stats.sent)
            try:
                await asyncio.wait_for(
                    self._source.send(payload, self._send_deadline),
                    self._send_deadline,
                )
            except asyncio.TimeoutError as exc:
                raise MessageSourceError(f"send timed out after {self._send_deadline}s") from exc

            stats.sent += 1
            _log("message_sent", number=stats.sent)

            if self._count > 0 and stats.sent >= self._count:
                break
            if await token.wait(self._interval):
                break

        _log("send_loop_stopped", sent=stats.sent)
        return stats
