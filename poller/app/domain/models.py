"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Message:
    """A delivered message. Lives until acknowledged or its lease expires."""

    message_id: str
    body: bytes
    ack_token: Any | None = field(default=None, compare=False, repr=False)
    partition_id: str | None = None
    sequence_number: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.body, (bytes, bytearray)):
            raise TypeError("message.body must be bytes")

    def text(self) -> str:
        return bytes(self.body).decode("utf-8", errors="replace")


Batch = list[Message]


@dataclass
class LoopStats:
    """Counters for one ReceiveLoop run."""

    polls: int = 0
    timeouts: int = 0
    empty_polls: int = 0
    received: int = 0
    acknowledged: int = 0


@dataclass
class SendStats:
    """Counters for one SendLoop run."""

    sent: int = 0
