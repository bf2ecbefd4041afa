"""Poller composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

from azure.core.credentials_async import AsyncTokenCredential
from loguru import logger

from poller.app.application.message_handlers import DeduplicatingHandler, LoggingMessageHandler
from poller.app.application.receive_loop import ReceiveLoop
from poller.app.application.send_loop import SendLoop
from poller.app.config.settings import Settings
from poller.app.core import SERVICE_NAME
from poller.app.infrastructure.identity.factory import create_credential
from poller.app.infrastructure.messaging.factory import AZURE_BACKENDS, create_message_source
from poller.app.ports.message_handler import MessageHandler
from poller.app.ports.message_source import MessageSource


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class PollerDependencies:
    """Holds wired poller dependencies and their lifecycle."""

    def __init__(
        self,
        *,
        settings: Settings,
        message_source: MessageSource | None = None,
    ) -> None:
        self._settings = settings
        self._credential: AsyncTokenCredential | None = None
        self._message_source = message_source
        self._connected = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def backend(self) -> str:
        return self._settings.source_backend.strip().lower()

    @property
    def message_source(self) -> MessageSource:
        if self._message_source is None:
            raise RuntimeError("message_source is not initialized")
        return self._message_source

    async def connect(self) -> None:
        if self._message_source is None:
            if self.backend in AZURE_BACKENDS:
                self._credential = create_credential(self._settings)
            self._message_source = create_message_source(self._settings, self._credential)
        await self._message_source.connect()
        self._connected = True
        _log("source_connected", backend=self.backend)

    def build_receive_loop(self, handler: MessageHandler | None = None) -> ReceiveLoop:
        s = self._settings
        if handler is None:
            handler = DeduplicatingHandler(LoggingMessageHandler(), capacity=s.dedupe_capacity)
        return ReceiveLoop(
            self.message_source,
            handler,
            max_batch_size=s.max_batch_size,
            poll_deadline_seconds=s.poll_deadline_seconds,
            idle_wait_seconds=s.idle_wait_seconds,
            ack_deadline_seconds=s.ack_deadline_seconds,
            # Storage queue: idle wait after a timed-out dequeue too, not only after an empty one.
            idle_wait_on_timeout=self.backend == "storagequeue",
        )

    def build_send_loop(self) -> SendLoop:
        s = self._settings
        return SendLoop(
            self.message_source,
            interval_seconds=s.send_interval_seconds,
            count=s.send_count,
            send_deadline_seconds=s.send_deadline_seconds,
        )

    async def close(self) -> None:
        if self._message_source is not None:
            try:
                await self._message_source.close()
            except Exception as exc:
                logger.warning("message source close failed: {}", exc)
            self._message_source = None

        if self._credential is not None:
            try:
                await self._credential.close()
            except Exception as exc:
                logger.warning("credential close failed: {}", exc)
            self._credential = None

        self._connected = False


def create_poller_dependencies(settings: Settings | None = None) -> PollerDependencies:
    return PollerDependencies(settings=settings or Settings())
