"""
Structured logging configuration using structlog.
"""
import logging

import structlog

from vinesync.config import settings


def configure_logging(log_level: str = None, environment: str = None):
    """
    Configure structured logging for sync runs and the API.
    JSON output in production so activity logs can be shipped; console output otherwise.

    Args:
        log_level: Override for settings.log_level
        environment: Override for settings.app_environment
    """
    level_name = (log_level or settings.log_level).upper()
    environment = environment or settings.app_environment

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if environment == "production":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level_name, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
