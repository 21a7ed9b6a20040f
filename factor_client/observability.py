"""
Structured logging configuration with structlog.

Modules log through ``structlog.get_logger(__name__)`` and emit
snake_case event names with keyword context:

    log.info("transaction_submitted", tx_id=tx_id, kind=kind.name)

Call :func:`configure_logging` once at startup. Without it structlog's
defaults apply, which is fine for tests.

Secret keys are never passed to a logger.
"""

from __future__ import annotations

import logging
import os

import structlog
from structlog.typing import Processor

LOG_LEVEL_ENV = "LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"


def _get_log_level(level: str | None = None) -> int:
    level_name = (level or os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)).upper()
    return getattr(logging, level_name, logging.INFO)


def configure_logging(environment: str = "production", level: str | None = None) -> None:
    """Configure structlog for the client.

    Args:
        environment: 'production' for JSON lines, anything else for
            colored console output.
        level: Log level name. Defaults to ``$LOG_LEVEL`` or INFO.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if environment == "production":
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(_get_log_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
