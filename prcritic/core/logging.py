"""structlog configuration for the API process and its background jobs."""

import logging

import structlog

from prcritic.core.config import settings


def configure_logging(debug: bool | None = None) -> None:
    """Configure structlog with ISO timestamps and JSON (or console) output."""
    debug = settings.debug if debug is None else debug
    level = logging.DEBUG if debug else logging.INFO

    renderer: structlog.types.Processor
    if debug:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
