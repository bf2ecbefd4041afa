"""Processing steps run by the receive loop before each acknowledgement."""
from __future__ import annotations

from collections import OrderedDict
from typing import Any

from loguru import logger

from poller.app.core import SERVICE_NAME
from poller.app.domain.models import Message
from poller.app.ports.message_handler import MessageHandler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class LoggingMessageHandler:
    """Emits each message as a structured log line. Safe to repeat for the same message."""

    def __init__(self, *, max_body_length: int = 4096) -> None:
        self._max_body_length = int(max_body_length)
        self.handled = 0

    async def __call__(self, message: Message) -> None:
        body = message.text()
        if self._max_body_length > 0 and len(body) > self._max_body_length:
            body = body[: self._max_body_length] + "..."
        _log(
            "message_received",
            message_id=message.message_id,
            partition_id=message.partition_id,
            sequence_number=message.sequence_number,
            body=body,
        )
        self.handled += 1


class DeduplicatingHandler:
    """
    Skips messages whose id was already processed recently.

    A message that was processed but whose acknowledgement was lost is redelivered by the
    source; remembering the last `capacity` ids keeps the inner handler from repeating its
    side effects for it. Ids are remembered only after the inner handler succeeds.
    """

    def __init__(self, inner: MessageHandler, *, capacity: int = 10_000) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._inner = inner
        self._capacity = int(capacity)
        self._seen: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._seen

    async def __call__(self, message: Message) -> None:
        if message.message_id in self._seen:
            self._seen.move_to_end(message.message_id)
            _log("duplicate_message_skipped", message_id=message.message_id)
            return
        await self._inner(message)
        self._seen[message.message_id] = None
        if len(self._seen) > self._capacity:
            self._seen.popitem(last=False)
