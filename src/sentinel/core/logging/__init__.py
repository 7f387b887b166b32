"""
Sentinel Logging Module - Structured Application Logging.

Structured logging for the coordinator built on structlog, with rich
console output in development and JSON lines in production.

Example:
    >>> from sentinel.core.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Task finished", task_id="load_users", status="succeeded")
    >>>
    >>> # Bind persistent context for one trigger
    >>> run_logger = logger.bind(correlation_id="msg-4711")
    >>> run_logger.info("Retrying batch", attempt=2)
"""

from .logger import add_correlation_id, get_logger, setup_logging

__all__ = [
    "add_correlation_id",
    "get_logger",
    "setup_logging",
]
