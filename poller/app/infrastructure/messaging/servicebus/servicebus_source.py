"""Azure Service Bus queue binding (peek-lock receive, complete to acknowledge)."""
from __future__ import annotations

from typing import Any

from azure.core.credentials_async import AsyncTokenCredential
from azure.servicebus import ServiceBusMessage, ServiceBusReceiveMode, ServiceBusReceivedMessage
from azure.servicebus.aio import ServiceBusClient, ServiceBusReceiver, ServiceBusSender
from azure.servicebus.exceptions import OperationTimeoutError, ServiceBusError
from loguru import logger

from poller.app.core import SERVICE_NAME
from poller.app.domain.models import Batch, Message
from poller.app.ports.message_source import MessageSourceError, MessageSourceTimeoutError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _message_id(message: ServiceBusReceivedMessage) -> str:
    if message.message_id:
        return str(message.message_id)
    return f"seq-{message.sequence_number}"


def _body_bytes(message: ServiceBusReceivedMessage) -> bytes:
    body = message.body
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    try:
        return b"".join(body)
    except TypeError:
        return str(message).encode()


class ServiceBusSource:
    """MessageSource implementation. Service Bus returns an empty list when nothing arrives."""

    def __init__(
        self,
        fully_qualified_namespace: str,
        queue_name: str,
        credential: AsyncTokenCredential,
    ) -> None:
        if not fully_qualified_namespace:
            raise ValueError("servicebus backend requires SERVICEBUS_FQDN")
        self._fqdn = fully_qualified_namespace
        self._queue_name = queue_name
        self._credential = credential
        self._client: ServiceBusClient | None = None
        self._receiver: ServiceBusReceiver | None = None
        self._sender: ServiceBusSender | None = None

    async def connect(self) -> None:
        self._client = ServiceBusClient(
            fully_qualified_namespace=self._fqdn,
            credential=self._credential,
        )
        _log("servicebus_client_created", namespace=self._fqdn, queue=self._queue_name)

    def _get_client(self) -> ServiceBusClient:
        if self._client is None:
            raise RuntimeError("service bus source not connected")
        return self._client

    def _get_receiver(self) -> ServiceBusReceiver:
        if self._receiver is None:
            self._receiver = self._get_client().get_queue_receiver(
                queue_name=self._queue_name,
                receive_mode=ServiceBusReceiveMode.PEEK_LOCK,
            )
        return self._receiver

    def _get_sender(self) -> ServiceBusSender:
        if self._sender is None:
            self._sender = self._get_client().get_queue_sender(queue_name=self._queue_name)
        return self._sender

    async def receive(self, max_count: int, deadline: float) -> Batch:
        try:
            received = await self._get_receiver().receive_messages(
                max_message_count=max_count,
                max_wait_time=deadline,
            )
        except OperationTimeoutError as exc:
            raise MessageSourceTimeoutError(str(exc)) from exc
        except ServiceBusError as exc:
            raise MessageSourceError(f"receive messages: {exc}") from exc

        return [
            Message(
                message_id=_message_id(raw),
                body=_body_bytes(raw),
                ack_token=raw,
                sequence_number=raw.sequence_number,
            )
            for raw in received
        ]

    async def acknowledge(self, message: Message) -> None:
        if message.ack_token is None:
            raise MessageSourceError(f"message {message.message_id} has no lock token to complete")
        try:
            await self._get_receiver().complete_message(message.ack_token)
        except ServiceBusError as exc:
            raise MessageSourceError(f"complete message: {exc}") from exc

    async def send(self, payload: bytes, deadline: float) -> None:
        try:
            await self._get_sender().send_messages(ServiceBusMessage(payload), timeout=deadline)
        except OperationTimeoutError as exc:
            raise MessageSourceError(f"send message timed out: {exc}") from exc
        except ServiceBusError as exc:
            raise MessageSourceError(f"send message: {exc}") from exc

    async def close(self) -> None:
        for name in ("_receiver", "_sender", "_client"):
            handler = getattr(self, name)
            if handler is None:
                continue
            try:
                await handler.close()
            except Exception as e:
                logger.warning("service bus {} close failed: {}", name.lstrip("_"), e)
            setattr(self, name, None)
