"""
Structured logging setup.

Usage:
    from featuregate.utils.logging import configure_logging

    configure_logging()  # reads LOG_LEVEL / LOG_FORMAT from settings

    logger = structlog.get_logger()
    logger.info("Snapshot published", version=3, flags=12)
"""

import logging
from typing import Any

import structlog

from featuregate.core.config import Settings, get_settings


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog for the process.

    JSON output for production, console output when LOG_FORMAT=text.
    """
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer: Any
    if settings.log_format == "text":
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
    )
