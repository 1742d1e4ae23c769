"""
Logging setup: structlog on top of the stdlib logging module.
"""

import logging
from typing import Optional

import structlog

from .config import Settings, get_settings


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure stdlib logging and structlog from settings."""
    settings = settings or get_settings()

    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.LOG_JSON
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
