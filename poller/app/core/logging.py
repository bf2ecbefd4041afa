"""Loguru sink setup for the CLI entry point."""
from __future__ import annotations

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[service_name]} | {extra[event]} {message} | {extra}"
)


def configure_logging(level: str = "INFO") -> None:
    """Replace the default stderr sink with one at the requested level."""
    logger.remove()
    logger.configure(extra={"service_name": "", "event": ""})
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT, backtrace=False)
