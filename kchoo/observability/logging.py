"""
Structured logging configuration using structlog.

Provides JSON-formatted logs for production and pretty console
logs for development. Log lines carry the active trace/span ids so
claim and refresh activity can be correlated with traces.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from kchoo.config.settings import get_settings
from kchoo.observability.tracing import add_trace_context


def setup_logging(level: str | None = None) -> None:
    """
    Configure structured logging for the application.

    ``level`` overrides the configured ``LOG_LEVEL`` (the CLI passes
    DEBUG for --debug).

    In production: JSON-formatted logs
    In development: Pretty console output with colors

    Usage:
        setup_logging()
        logger = structlog.get_logger()
        logger.info("Claimed sources", site="twitter", count=10)
    """
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, (level or settings.log_level).upper()),
    )

    # asyncpg logs every pool reconnect at INFO
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def bind_context(**fields: Any) -> None:
    """Attach ``fields`` to every later log line of the current task."""
    structlog.contextvars.bind_contextvars(**fields)


def unbind_context(*keys: str) -> None:
    """Drop fields previously attached with bind_context()."""
    structlog.contextvars.unbind_contextvars(*keys)
