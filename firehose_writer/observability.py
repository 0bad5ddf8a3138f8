"""
Logging for the Firehose writer.

Delivery problems are reported through a log sink: a callable taking
``(level, message, context)``. Levels used by the writer are ``"warn"`` and
``"error"``; ``"info"`` and ``"debug"`` are accepted too.

The default sink forwards to the standard library ``logging`` tree, so the
sink output ends up wherever setup_logging() (or the host application)
points the handlers.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, Protocol

import json_log_formatter

from .config import ObservabilityConfig

logger = logging.getLogger("firehose_writer")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LogSink(Protocol):
    """Protocol for injected log sinks."""

    def __call__(self, level: str, message: str, context: Dict[str, Any]) -> None:
        ...


def default_log_sink(level: str, message: str, context: Dict[str, Any]) -> None:
    """Forward a sink call to the ``firehose_writer`` logger.

    Unknown levels are logged at INFO.
    """
    logger.log(_LEVELS.get(level.lower(), logging.INFO), message, extra=dict(context))


def setup_logging(config: ObservabilityConfig | None = None) -> None:
    """Configure logging based on configuration.

    Installs a single stdout handler on the root logger.

    Args:
        config: Observability configuration (loaded from env if not provided)
    """
    config = config or ObservabilityConfig.from_env()
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
