"""
Sentinel - Data-Tasks Coordinator

Sentinel reacts to trigger events naming a configured task, pushes the bulk
record payload of the trigger to an external integration in paced, retried
batches, and chains follow-up tasks according to the task graph.

Key Features:
    - Declarative task configurations (YAML/JSON) with downstream chaining
    - Batching with bounded concurrency and a shared requests-per-second cap
    - Retry of transient failures with linear backoff
    - Fan-out (multiple) and synchronization barrier (knot) tasks
    - Per-record failure reporting for replay

Modules:
    core: Configuration, logging and exceptions
    tasks: Task configuration model, stores and graph resolution
    handlers: Integration handlers (HTTP, prediction, publish)
    engine: Managed send engine and rate limiting
    coordinator: Trigger entry point and run reports
    cli: Command-line interface tools

Example:
    >>> from sentinel import Settings, get_logger
    >>> settings = Settings()
    >>> logger = get_logger(__name__)
    >>> logger.info("Sentinel initialized")
"""

__version__ = "0.1.0"
__description__ = (
    "Data-tasks coordinator that sends bulk records to external integrations "
    "in rate-limited, retried batches and chains follow-up tasks."
)

from sentinel.core.config.settings import Settings
from sentinel.core.logging.logger import get_logger

__all__ = [
    "Settings",
    "get_logger",
]
