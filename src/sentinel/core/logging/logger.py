"""
Structured logging configuration for Sentinel.

This module sets up structlog on top of the standard library logging
module. Every coordinator log line is a structured event, so a failed
invocation can be followed across lanes and downstream tasks through its
correlation id.

Functions:
    setup_logging(): Initialize logging configuration
    get_logger(name): Get configured logger instance
    add_correlation_id(correlation_id): Logger with a bound correlation id

Configuration:
    Logging behavior is controlled by the settings module:
    - LOG_LEVEL: Minimum log level (DEBUG/INFO/WARNING/ERROR/CRITICAL)
    - LOG_FORMAT: Output format (json/text)
    - LOG_FILE_PATH: Optional file output path
    - DEBUG / ENVIRONMENT: Rich console output in development

Example:
    >>> from sentinel.core.logging.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Batch sent", task_id="load_users", lines=100)
"""

import logging
import logging.config
import sys
from pathlib import Path

import structlog
from rich.console import Console
from rich.logging import RichHandler

from sentinel.core.config.settings import settings


def setup_logging() -> None:
    """
    Initialize logging configuration.

    Configures structlog processors and the root standard library logger.
    Handler selection:
        - Development or DEBUG: Rich console handler on stderr
        - Otherwise: plain stream handler on stdout (JSON lines)
        - File: Optional file handler when LOG_FILE_PATH is configured
    """

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.LOG_FORMAT.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    handlers = []

    if settings.DEBUG or settings.ENVIRONMENT == "development":
        console = Console(stderr=True)
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_level=True,
            show_path=True,
            markup=False,
            rich_tracebacks=True,
        )
        rich_handler.setLevel(settings.LOG_LEVEL)
        handlers.append(rich_handler)
    else:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(settings.LOG_LEVEL)
        handlers.append(stream_handler)

    if settings.LOG_FILE_PATH:
        file_path = Path(settings.LOG_FILE_PATH)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(file_path)
        file_handler.setLevel(settings.LOG_LEVEL)
        handlers.append(file_handler)

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        handlers=handlers,
        format="%(message)s",
    )

    # Silence noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a configured structured logger instance.

    Args:
        name (str): Logger name, typically __name__ of the calling module

    Returns:
        structlog.BoundLogger: Configured logger instance

    Note:
        If logging hasn't been configured yet, this function will
        call setup_logging() first.
    """
    if not structlog.is_configured():
        setup_logging()
    return structlog.get_logger(name)


def add_correlation_id(
    correlation_id: str, name: str = __name__
) -> structlog.BoundLogger:
    """
    Create a logger with bound correlation ID for invocation tracking.

    The correlation id travels with a trigger from the queue message to
    every batch, retry and downstream task it causes, which makes the
    failed subset of an invocation easy to find and replay.

    Example:
        >>> logger = add_correlation_id("msg-4711", __name__)
        >>> logger.info("Batch failed", batch_id=3)
    """
    logger = get_logger(name)
    logger = logger.bind(correlation_id=correlation_id)
    return logger


# Setup logging on import
setup_logging()
