"""
Structured logging configuration.

Sets up structlog on top of stdlib logging. In production (or with
LOG_FORMAT=json) records are rendered as JSON for log aggregation tools;
in development they are rendered as human-readable console lines.

Usage:
    from cadence.core.logging_config import setup_logging, get_logger

    # At process startup
    setup_logging()

    # In your code
    logger = get_logger(__name__)
    logger.info("recurring_detection_started", user_id=str(user_id), mode="expense")
"""

import logging
import sys

import structlog
from pythonjsonlogger import jsonlogger

from cadence.config import settings


def setup_logging() -> None:
    """
    Configure structured logging for the process.

    Stdlib loggers (``logging.getLogger(__name__)``) and structlog loggers
    share the same level and output stream.
    """
    use_json = settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production"
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        handler.setFormatter(
            jsonlogger.JsonFormatter(
                "%(asctime)s %(name)s %(levelname)s %(message)s",
                rename_fields={"asctime": "timestamp", "levelname": "level"},
            )
        )
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if settings.ENVIRONMENT == "production":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Structured logger with context support

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.warning("recurring_candidate_upsert_failed", name="netflix.com", error="...")
    """
    return structlog.get_logger(name)
