"""structlog setup for metricsync processes."""

from __future__ import annotations

import logging
from typing import Any

import structlog

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def configure_logging(level: str = "INFO", json: bool = False) -> None:
    """Configure structlog with a level filter and console or JSON rendering.

    Raises:
        ValueError: If level is not a known level name.
    """
    try:
        numeric_level = _LEVELS[level.upper()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level}") from None

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )


def configure_from_config(manager: Any) -> None:
    """Apply ``logging.*`` keys and keep the level in sync with hot updates."""
    json_output = bool(manager.get("logging.json"))
    configure_logging(manager.get("logging.level"), json=json_output)

    def _on_update(key: str, value: Any) -> None:
        if key == "logging.level":
            configure_logging(value, json=json_output)

    manager.subscribe(_on_update)
