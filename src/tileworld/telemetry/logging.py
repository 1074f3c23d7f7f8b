"""Structured logging setup and the telemetry sink contract."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from rich.console import Console
from rich.logging import RichHandler


class Telemetry(Protocol):
    """Reports engine events such as commands and regenerations."""

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        """Publish telemetry event to the configured sink."""


class LoggingTelemetry:
    """Telemetry sink that writes each event as a structured log record."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("tileworld.telemetry")

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        self._logger.info(event_name, extra={"payload": payload})


def configure_logging(level: str = "INFO") -> None:
    """Route ``tileworld.*`` loggers through a rich console handler."""
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )
