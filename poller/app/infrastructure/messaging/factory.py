"""Message source factory: selects implementation from config. Only place that imports concrete sources."""
from __future__ import annotations

from azure.core.credentials_async import AsyncTokenCredential

from poller.app.config.settings import Settings
from poller.app.ports.message_source import MessageSource
from poller.app.infrastructure.messaging.eventhub.eventhub_source import EventHubSource
from poller.app.infrastructure.messaging.inmemory.in_memory_source import InMemorySource
from poller.app.infrastructure.messaging.rabbitmq.rabbitmq_source import RabbitMQSource
from poller.app.infrastructure.messaging.servicebus.servicebus_source import ServiceBusSource
from poller.app.infrastructure.messaging.storagequeue.storage_queue_source import StorageQueueSource

AZURE_BACKENDS = ("servicebus", "storagequeue", "eventhub")


def create_message_source(
    settings: Settings,
    credential: AsyncTokenCredential | None = None,
) -> MessageSource:
    backend = settings.source_backend.strip().lower()

    if backend in AZURE_BACKENDS and credential is None:
        raise ValueError(f"{backend} backend requires an Azure credential")

    if backend == "servicebus":
        return ServiceBusSource(settings.servicebus_fqdn, settings.servicebus_queue_name, credential)

    if backend == "storagequeue":
        return StorageQueueSource(
            settings.storage_queue_account_url,
            settings.storage_queue_name,
            credential,
            visibility_timeout_seconds=settings.visibility_timeout_seconds,
        )

    if backend == "eventhub":
        return EventHubSource(
            settings.eventhub_fqdn,
            settings.eventhub_name,
            settings.eventhub_consumer_group,
            credential,
            checkpoint_account_url=settings.checkpoint_account_url,
            checkpoint_container_name=settings.checkpoint_container_name,
            max_batch_size=settings.max_batch_size,
        )

    if backend == "rabbitmq":
        return RabbitMQSource(settings)

    if backend == "inmemory":
        return InMemorySource(visibility_timeout_seconds=settings.visibility_timeout_seconds)

    raise ValueError(f"Unsupported source backend: {backend}")
