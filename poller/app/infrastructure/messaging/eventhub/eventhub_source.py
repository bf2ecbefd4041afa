"""
Azure Event Hubs binding: consumer-group receive with blob checkpoints.

The Event Hubs SDK pushes batches to a callback; this adapter turns that into the pull
contract. `EventHubConsumerClient.receive_batch` runs in a background task and hands each
non-empty batch over a bounded queue, so the callback blocks until the receive loop has
pulled the previous batch. Acknowledging an event writes a checkpoint for its partition;
after a restart the consumer group resumes after the last checkpointed event.

Lifecycle:
  connect(): build consumer + checkpoint store, start background receive task.
  receive(): wait on the hand-off queue up to the deadline (timeout -> no messages).
  close(): close consumer (ends receive_batch), await task, close producer and store.
"""
from __future__ import annotations

import asyncio
from typing import Any

from azure.core.credentials_async import AsyncTokenCredential
from azure.core.exceptions import AzureError
from azure.eventhub import EventData
from azure.eventhub.aio import EventHubConsumerClient, EventHubProducerClient, PartitionContext
from azure.eventhub.exceptions import EventHubError
from azure.eventhub.extensions.checkpointstoreblobaio import BlobCheckpointStore
from loguru import logger

from poller.app.core import SERVICE_NAME
from poller.app.domain.models import Batch, Message
from poller.app.ports.message_source import MessageSourceError, MessageSourceTimeoutError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _event_bytes(event: EventData) -> bytes:
    try:
        return b"".join(event.body)
    except TypeError:
        return event.body_as_str(encoding="UTF-8").encode()


def to_messages(partition_context: PartitionContext, events: list[EventData]) -> Batch:
    partition_id = partition_context.partition_id
    return [
        Message(
            message_id=f"{partition_id}:{event.sequence_number}",
            body=_event_bytes(event),
            ack_token=(partition_context, event),
            partition_id=partition_id,
            sequence_number=event.sequence_number,
        )
        for event in events
    ]


class EventHubSource:
    """MessageSource implementation. Signals "no messages" with MessageSourceTimeoutError."""

    def __init__(
        self,
        fully_qualified_namespace: str,
        eventhub_name: str,
        consumer_group: str,
        credential: AsyncTokenCredential,
        *,
        checkpoint_account_url: str,
        checkpoint_container_name: str,
        max_batch_size: int = 100,
    ) -> None:
        if not fully_qualified_namespace:
            raise ValueError("eventhub backend requires EVENTHUB_FQDN")
        if not checkpoint_account_url:
            raise ValueError("eventhub backend requires CHECKPOINT_ACCOUNT_URL")
        self._fqdn = fully_qualified_namespace
        self._eventhub_name = eventhub_name
        self._consumer_group = consumer_group
        self._credential = credential
        self._checkpoint_account_url = checkpoint_account_url
        self._checkpoint_container_name = checkpoint_container_name
        self._max_batch_size = int(max_batch_size)
        self._checkpoint_store: BlobCheckpointStore | None = None
        self._consumer: EventHubConsumerClient | None = None
        self._producer: EventHubProducerClient | None = None
        self._handoff: asyncio.Queue[Batch | BaseException] = asyncio.Queue(maxsize=1)
        self._receive_task: asyncio.Task[None] | None = None

    async def connect(self) -> None:
        self._checkpoint_store = BlobCheckpointStore(
            blob_account_url=self._checkpoint_account_url,
            container_name=self._checkpoint_container_name,
            credential=self._credential,
        )
        self._consumer = EventHubConsumerClient(
            fully_qualified_namespace=self._fqdn,
            eventhub_name=self._eventhub_name,
            consumer_group=self._consumer_group,
            credential=self._credential,
            checkpoint_store=self._checkpoint_store,
        )
        _log(
            "eventhub_consumer_created",
            namespace=self._fqdn,
            eventhub=self._eventhub_name,
            consumer_group=self._consumer_group,
        )

    def _ensure_receiving(self) -> None:
        if self._consumer is None:
            raise RuntimeError("event hub source not connected")
        if self._receive_task is None:
            self._receive_task = asyncio.create_task(self._run_consumer(self._consumer))

    async def _run_consumer(self, consumer: EventHubConsumerClient) -> None:
        try:
            await consumer.receive_batch(
                on_event_batch=self._on_event_batch,
                on_error=self._on_error,
                max_batch_size=self._max_batch_size,
                starting_position="-1",
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._handoff.put(exc)

    async def _on_event_batch(self, partition_context: PartitionContext, events: list[EventData]) -> None:
        if events:
            await self._handoff.put(to_messages(partition_context, events))

    async def _on_error(self, partition_context: PartitionContext | None, error: Exception) -> None:
        partition_id = partition_context.partition_id if partition_context else None
        logger.warning("event hub receive error on partition {}: {}", partition_id, error)
        if partition_context is None:
            await self._handoff.put(error)

    async def receive(self, max_count: int, deadline: float) -> Batch:
        self._ensure_receiving()
        try:
            item = await asyncio.wait_for(self._handoff.get(), deadline)
        except asyncio.TimeoutError as exc:
            raise MessageSourceTimeoutError(f"no events within {deadline}s") from exc
        if isinstance(item, BaseException):
            raise MessageSourceError(f"receive events: {item}") from item
        return item

    async def acknowledge(self, message: Message) -> None:
        if message.ack_token is None:
            raise MessageSourceError(f"event {message.message_id} has no partition context")
        partition_context, event = message.ack_token
        try:
            await partition_context.update_checkpoint(event)
        except (EventHubError, AzureError) as exc:
            raise MessageSourceError(f"update checkpoint: {exc}") from exc

    async def send(self, payload: bytes, deadline: float) -> None:
        if self._producer is None:
            self._producer = EventHubProducerClient(
                fully_qualified_namespace=self._fqdn,
                eventhub_name=self._eventhub_name,
                credential=self._credential,
            )
        try:
            batch = await self._producer.create_batch()
            batch.add(EventData(payload))
            await self._producer.send_batch(batch, timeout=deadline)
        except EventHubError as exc:
            raise MessageSourceError(f"send batch: {exc}") from exc
        except ValueError as exc:
            raise MessageSourceError(f"add event: {exc}") from exc

    async def close(self) -> None:
        if self._consumer is not None:
            try:
                await self._consumer.close()
            except Exception as e:
                logger.warning("event hub consumer close failed: {}", e)
            self._consumer = None
        if self._receive_task is not None:
            if not self._receive_task.done():
                self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None
        if self._producer is not None:
            try:
                await self._producer.close()
            except Exception as e:
                logger.warning("event hub producer close failed: {}", e)
            self._producer = None
        if self._checkpoint_store is not None:
            try:
                await self._checkpoint_store.close()
            except Exception as e:
                logger.warning("checkpoint store close failed: {}", e)
            self._checkpoint_store = None
