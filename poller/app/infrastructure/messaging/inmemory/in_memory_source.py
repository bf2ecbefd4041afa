"""In-memory message source for local mode and tests.

Models the receive-then-confirm delivery the Azure queues use: a received message is
leased, not removed. If it is not acknowledged within `visibility_timeout_seconds` it
becomes visible again and is redelivered with a new ack token.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Callable

from poller.app.domain.models import Batch, Message
from poller.app.ports.message_source import MessageSourceError


@dataclass
class _Lease:
    message_id: str
    body: bytes
    receipt: str
    expires_at: float


class InMemorySource:
    def __init__(
        self,
        *,
        visibility_timeout_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._visibility_timeout = float(visibility_timeout_seconds)
        self._clock = clock
        self._visible: deque[tuple[str, bytes]] = deque()
        self._leases: dict[str, _Lease] = {}
        self._arrived = asyncio.Event()
        self._sequence = 0
        self.connected = False

    @property
    def pending(self) -> int:
        """Messages not yet acknowledged (visible plus leased)."""
        return len(self._visible) + len(self._leases)

    async def connect(self) -> None:
        self.connected = True

    async def receive(self, max_count: int, deadline: float) -> Batch:
        self._release_expired()
        if not self._visible:
            self._arrived.clear()
            try:
                await asyncio.wait_for(self._arrived.wait(), deadline)
            except asyncio.TimeoutError:
                return []
            self._release_expired()

        batch: Batch = []
        now = self._clock()
        while self._visible and len(batch) < max_count:
            message_id, body = self._visible.popleft()
            receipt = uuid.uuid4().hex
            self._leases[message_id] = _Lease(message_id, body, receipt, now + self._visibility_timeout)
            self._sequence += 1
            batch.append(
                Message(
                    message_id=message_id,
                    body=body,
                    ack_token=receipt,
                    sequence_number=self._sequence,
                )
            )
        return batch

    async def acknowledge(self, message: Message) -> None:
        lease = self._leases.get(message.message_id)
        if lease is None or lease.receipt != message.ack_token:
            raise MessageSourceError(f"message {message.message_id} is not leased by this receipt")
        del self._leases[message.message_id]

    async def send(self, payload: bytes, deadline: float) -> None:
        self._visible.append((uuid.uuid4().hex, bytes(payload)))
        self._arrived.set()

    async def close(self) -> None:
        self.connected = False

    def _release_expired(self) -> None:
        now = self._clock()
        expired = [lease for lease in self._leases.values() if lease.expires_at <= now]
        for lease in expired:
            del self._leases[lease.message_id]
            self._visible.append((lease.message_id, lease.body))
