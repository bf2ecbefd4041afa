"""
RabbitMQ source: connection lifecycle, queue declaration, and pull-based get/ack.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> CHANNEL_OPEN -> READY.
  On shutdown: READY -> CLOSING -> close channel/connection -> CLOSED.

Messages are pulled with basic.get (no consumer subscription), so an empty queue yields
an empty batch and the receive loop applies its idle wait. Unacked messages are
redelivered by the broker when the channel closes.
"""
from __future__ import annotations

import asyncio
from typing import Any

import aio_pika
from aio_pika.abc import AbstractIncomingMessage
from aio_pika.exceptions import AMQPException
from loguru import logger

from poller.app.config.settings import Settings
from poller.app.core import SERVICE_NAME
from poller.app.core.backoff import connection_attempts
from poller.app.domain.models import Batch, Message
from poller.app.infrastructure.messaging.rabbitmq.constants import SourceState
from poller.app.ports.message_source import MessageSourceError, MessageSourceTimeoutError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _message_id(raw: AbstractIncomingMessage) -> str:
    if raw.message_id:
        return str(raw.message_id)
    return f"delivery-{raw.delivery_tag}"


class RabbitMQSource:
    """MessageSource implementation"""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = SourceState.DISCONNECTED
        self._connection: aio_pika.abc.AbstractRobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._queue: aio_pika.abc.AbstractQueue | None = None

    @property
    def state(self) -> SourceState:
        return self._state

    def _set_state(self, state: SourceState) -> None:
        self._state = state

    def _build_amqp_url(self) -> str:
        return (
            f"amqp://{self._settings.broker_user}:{self._settings.broker_password}"
            f"@{self._settings.broker_host}:{self._settings.broker_port}/"
        )

    async def connect(self) -> None:
        self._set_state(SourceState.CONNECTING)
        _log("rmq_connecting")
        async for attempt, retry_in in connection_attempts(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            _log("rmq_connect_attempt", attempt=attempt)
            try:
                self._connection = await aio_pika.connect_robust(self._build_amqp_url())
                break
            except Exception as e:
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", attempt=attempt)
                    self._set_state(SourceState.DISCONNECTED)
                    raise MessageSourceError(f"rabbitmq connect failed after {attempt} attempts") from e
                logger.warning("rmq connect failed, retrying in {}s: {}", retry_in, e)
        self._set_state(SourceState.CONNECTED)
        _log("rmq_connected")
        await self._open_channel_and_declare()

    async def _open_channel_and_declare(self) -> None:
        if not self._connection:
            return
        self._channel = await self._connection.channel()
        self._set_state(SourceState.CHANNEL_OPEN)
        await self._channel.set_qos(prefetch_count=self._settings.max_batch_size)
        self._queue = await self._channel.declare_queue(
            self._settings.broker_queue_name,
            durable=True,
        )
        self._set_state(SourceState.READY)

    def _get_queue(self) -> aio_pika.abc.AbstractQueue:
        if self._queue is None:
            raise RuntimeError("rabbitmq source not connected")
        return self._queue

    async def receive(self, max_count: int, deadline: float) -> Batch:
        queue = self._get_queue()
        batch: Batch = []
        try:
            while len(batch) < max_count:
                raw = await queue.get(no_ack=False, fail=False, timeout=deadline)
                if raw is None:
                    break
                batch.append(
                    Message(
                        message_id=_message_id(raw),
                        body=raw.body,
                        ack_token=raw,
                    )
                )
        except asyncio.TimeoutError as exc:
            if batch:
                return batch
            raise MessageSourceTimeoutError(f"basic.get timed out after {deadline}s") from exc
        except AMQPException as exc:
            raise MessageSourceError(f"basic.get failed: {exc}") from exc
        return batch

    async def acknowledge(self, message: Message) -> None:
        if message.ack_token is None:
            raise MessageSourceError(f"message {message.message_id} has no delivery to ack")
        try:
            await message.ack_token.ack()
        except AMQPException as exc:
            raise MessageSourceError(f"ack failed: {exc}") from exc

    async def send(self, payload: bytes, deadline: float) -> None:
        if self._channel is None:
            raise RuntimeError("rabbitmq source not connected")
        try:
            await self._channel.default_exchange.publish(
                aio_pika.Message(
                    body=payload,
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                    content_type="application/json",
                ),
                routing_key=self._settings.broker_queue_name,
                timeout=deadline,
            )
        except asyncio.TimeoutError as exc:
            raise MessageSourceError(f"publish timed out after {deadline}s") from exc
        except AMQPException as exc:
            raise MessageSourceError(f"publish failed: {exc}") from exc

    async def close(self) -> None:
        self._set_state(SourceState.CLOSING)
        _log("source_shutdown")
        self._queue = None
        if self._channel:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            self._channel = None
        if self._connection:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None
        self._set_state(SourceState.CLOSED)
