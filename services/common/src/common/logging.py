"""Centralised logging configuration with JSON output."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Dict, Optional

import structlog

DEFAULT_LOG_LEVEL = "INFO"

_configured = False


def _configure_structlog(level: int, json_output: bool) -> None:
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Initialise stdlib + structlog logging.

    Level falls back to ``LOG_LEVEL`` and the renderer to ``LOG_FORMAT``
    (``json`` or ``console``) when not given explicitly.
    """

    global _configured

    level_name = (level or os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL)).upper()
    if json_output is None:
        json_output = os.getenv("LOG_FORMAT", "json").lower() != "console"

    numeric_level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
        force=True,
    )
    _configure_structlog(numeric_level, json_output)
    _configured = True


def get_logger(name: str, **initial_values: Dict[str, Any]) -> structlog.stdlib.BoundLogger:
    """Return a bound structured logger."""

    if not _configured:
        configure_logging()
    logger = structlog.get_logger(name)
    if initial_values:
        return logger.bind(**initial_values)
    return logger


__all__ = ["configure_logging", "get_logger"]
