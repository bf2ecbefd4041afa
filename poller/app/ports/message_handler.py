"""Port: per-message processing step run by the receive loop before acknowledgement."""
from __future__ import annotations

from typing import Protocol

from poller.app.domain.models import Message


class MessageHandler(Protocol):
    """Must be safe to run more than once for the same message (at-least-once delivery)."""

    async def __call__(self, message: Message) -> None: ...
