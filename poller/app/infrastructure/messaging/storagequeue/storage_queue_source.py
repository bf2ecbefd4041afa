"""Azure Storage Queue binding: dequeue with a visibility timeout, delete by pop receipt."""
from __future__ import annotations

from typing import Any

from azure.core.credentials_async import AsyncTokenCredential
from azure.core.exceptions import AzureError, ServiceRequestTimeoutError, ServiceResponseTimeoutError
from azure.storage.queue import QueueMessage
from azure.storage.queue.aio import QueueClient
from loguru import logger

from poller.app.core import SERVICE_NAME
from poller.app.domain.models import Batch, Message
from poller.app.ports.message_source import MessageSourceError, MessageSourceTimeoutError

_TIMEOUT_ERRORS = (ServiceRequestTimeoutError, ServiceResponseTimeoutError)


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _content_bytes(message: QueueMessage) -> bytes:
    content = message.content
    if content is None:
        return b""
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)
    return str(content).encode()


class StorageQueueSource:
    """MessageSource implementation.

    Dequeued messages stay invisible for `visibility_timeout_seconds`; if they are not
    deleted in that window they are delivered again.
    """

    def __init__(
        self,
        account_url: str,
        queue_name: str,
        credential: AsyncTokenCredential,
        *,
        visibility_timeout_seconds: int = 30,
    ) -> None:
        if not account_url:
            raise ValueError("storagequeue backend requires STORAGE_QUEUE_ACCOUNT_URL")
        self._account_url = account_url
        self._queue_name = queue_name
        self._credential = credential
        self._visibility_timeout = int(visibility_timeout_seconds)
        self._client: QueueClient | None = None

    async def connect(self) -> None:
        self._client = QueueClient(
            account_url=self._account_url,
            queue_name=self._queue_name,
            credential=self._credential,
        )
        _log("storage_queue_client_created", url=self._client.url)

    def _get_client(self) -> QueueClient:
        if self._client is None:
            raise RuntimeError("storage queue source not connected")
        return self._client

    async def receive(self, max_count: int, deadline: float) -> Batch:
        batch: Batch = []
        try:
            pager = self._get_client().receive_messages(
                messages_per_page=max_count,
                max_messages=max_count,
                visibility_timeout=self._visibility_timeout,
                timeout=max(1, int(deadline)),
            )
            async for raw in pager:
                batch.append(
                    Message(
                        message_id=str(raw.id),
                        body=_content_bytes(raw),
                        ack_token=raw.pop_receipt,
                    )
                )
        except _TIMEOUT_ERRORS as exc:
            raise MessageSourceTimeoutError(str(exc)) from exc
        except AzureError as exc:
            raise MessageSourceError(f"dequeue messages: {exc}") from exc
        return batch

    async def acknowledge(self, message: Message) -> None:
        if not message.ack_token:
            raise MessageSourceError(f"message {message.message_id} has no pop receipt")
        try:
            await self._get_client().delete_message(message.message_id, message.ack_token)
        except AzureError as exc:
            raise MessageSourceError(f"delete message: {exc}") from exc

    async def send(self, payload: bytes, deadline: float) -> None:
        try:
            content = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MessageSourceError(f"enqueue message: payload is not UTF-8 text ({exc})") from exc
        try:
            await self._get_client().send_message(
                content,
                timeout=max(1, int(deadline)),
            )
        except AzureError as exc:
            raise MessageSourceError(f"enqueue message: {exc}") from exc

    async def close(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.close()
        except Exception as e:
            logger.warning("storage queue client close failed: {}", e)
        self._client = None
