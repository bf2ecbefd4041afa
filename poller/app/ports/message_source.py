"""Port: pull-based message source. Vendor adapters live in infrastructure."""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from poller.app.domain.models import Batch, Message


class MessageSourceError(Exception):
    """Hard failure talking to the message source (auth, network, ack, malformed response)."""


class MessageSourceTimeoutError(MessageSourceError):
    """No messages arrived before the receive deadline. Recoverable."""


@runtime_checkable
class MessageSource(Protocol):
    """Capability set shared by every queue binding."""

    async def connect(self) -> None: ...

    async def receive(self, max_count: int, deadline: float) -> Batch:
        """Return up to max_count messages, waiting at most `deadline` seconds.

        Sources either return an empty batch or raise MessageSourceTimeoutError
        when nothing arrived; the receive loop treats both the same way.
        """
        ...

    async def acknowledge(self, message: Message) -> None:
        """Complete / delete / checkpoint a processed message. Raises MessageSourceError."""
        ...

    async def send(self, payload: bytes, deadline: float) -> None: ...

    async def close(self) -> None:
        """Release clients and connections. No-op allowed if nothing to close."""
        ...
