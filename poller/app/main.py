"""Poller CLI: send to, or drain, one message source until done or interrupted.

Usage:
    # Drain the configured queue, completing each message after it is logged
    poller receive

    # Event Hubs naming for the same thing
    poller process --backend eventhub

    # Send 10 messages, one every half second
    poller send --count 10 --interval 0.5
"""
from __future__ import annotations

import asyncio
import signal
from typing import Annotated, Any, Union

import typer
from loguru import logger
from pydantic import ValidationError

from poller.app.composition import create_poller_dependencies
from poller.app.config.settings import Settings
from poller.app.core import SERVICE_NAME
from poller.app.core.cancellation import CancellationToken
from poller.app.core.logging import configure_logging
from poller.app.domain.models import LoopStats, SendStats

app = typer.Typer(
    name="poller",
    help="Send to or drain a managed message queue with bounded polling.",
    no_args_is_help=True,
)

BackendOption = Annotated[
    Union[str, None],
    typer.Option(
        "--backend",
        "-b",
        help="servicebus | storagequeue | eventhub | rabbitmq | inmemory (default: SOURCE_BACKEND).",
    ),
]
LogLevelOption = Annotated[
    Union[str, None],
    typer.Option("--log-level", help="Loguru level (default: LOG_LEVEL)."),
]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def install_signal_handlers(token: CancellationToken) -> None:
    """Cancel the token on SIGINT/SIGTERM. The loops notice at their next check or wait."""

    def request_shutdown() -> None:
        if not token.cancelled:
            _log("shutdown_signal")
            token.cancel()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except (NotImplementedError, RuntimeError):
            pass


async def run_poller(
    mode: str,
    settings: Settings,
    token: CancellationToken,
) -> LoopStats | SendStats:
    deps = create_poller_dependencies(settings)
    try:
        await deps.connect()
        if mode == "send":
            return await deps.build_send_loop().run(token)
        return await deps.build_receive_loop().run(token)
    finally:
        await deps.close()
        _log("poller_stopped", mode=mode)


async def _run_until_interrupted(mode: str, settings: Settings) -> LoopStats | SendStats:
    token = CancellationToken()
    install_signal_handlers(token)
    _log("poller_started", mode=mode, backend=settings.source_backend)
    return await run_poller(mode, settings, token)


def _load_settings(**overrides: Any) -> Settings:
    try:
        settings = Settings()
    except ValidationError as exc:
        typer.echo(f"Invalid configuration:\n{exc}", err=True)
        raise typer.Exit(code=2) from exc
    update = {key: value for key, value in overrides.items() if value is not None}
    return settings.model_copy(update=update) if update else settings


def _execute(mode: str, settings: Settings) -> None:
    configure_logging(settings.log_level)
    try:
        stats = asyncio.run(_run_until_interrupted(mode, settings))
    except KeyboardInterrupt:
        _log("poller_interrupted", mode=mode)
        return
    except Exception as e:
        logger.exception("{} failed: {}", mode, e)
        raise typer.Exit(code=1) from e
    _log("poller_done", mode=mode, **vars(stats))


@app.command()
def send(
    interval: Annotated[
        Union[float, None],
        typer.Option("--interval", "-i", help="Seconds between sends (default: SEND_INTERVAL_SECONDS)."),
    ] = None,
    count: Annotated[
        Union[int, None],
        typer.Option("--count", "-n", min=0, help="Messages to send, 0 = until interrupted."),
    ] = None,
    backend: BackendOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Send counter payloads at a fixed interval."""
    settings = _load_settings(
        source_backend=backend,
        send_interval_seconds=interval,
        send_count=count,
        log_level=log_level,
    )
    _execute("send", settings)


@app.command()
def receive(
    interval: Annotated[
        Union[float, None],
        typer.Option("--interval", "-i", help="Idle wait after an empty poll (default: IDLE_WAIT_SECONDS)."),
    ] = None,
    batch_size: Annotated[
        Union[int, None],
        typer.Option("--batch-size", min=1, help="Max messages per poll (default: MAX_BATCH_SIZE)."),
    ] = None,
    poll_deadline: Annotated[
        Union[float, None],
        typer.Option("--poll-deadline", help="Seconds one poll may wait (default: POLL_DEADLINE_SECONDS)."),
    ] = None,
    backend: BackendOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Poll, log and acknowledge messages until interrupted."""
    settings = _load_settings(
        source_backend=backend,
        idle_wait_seconds=interval,
        max_batch_size=batch_size,
        poll_deadline_seconds=poll_deadline,
        log_level=log_level,
    )
    _execute("receive", settings)


app.command("process", help="Alias of receive (Event Hubs naming).")(receive)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
