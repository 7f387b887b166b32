"""
Custom exception hierarchy for Sentinel error handling.

This module defines the structured exception hierarchy used by the task
coordinator. Every exception carries a human-readable message, a
machine-readable error code and a details dictionary, so failures can be
logged with enough context to replay the affected records.

Exception Hierarchy:
    SentinelError (base)
    ├── ConfigurationError: Malformed task configuration, unresolvable
    │   │                   graph references, wrong batch arity
    │   ├── TaskNotFoundError: No task configuration under (namespace, id)
    │   └── TaskGraphError: Cycles and broken references in a task graph
    ├── RetryableError: Transient downstream fault, worth another attempt
    ├── NonRetryableError: Permanent downstream rejection
    └── HandlerError: Integration failure that carries no classification

Failure Classification:
    The send engine never inspects exception messages. It maps exception
    types onto an error kind (see sentinel.handlers.base.classify_failure):
    - ConfigurationError aborts the invocation and is never retried
    - RetryableError consumes one unit of the task's retry budget
    - anything else is recorded immediately as a failed batch

Example:
    >>> raise RetryableError(
    ...     "Publish endpoint throttled the request",
    ...     error_code="HTTP_429",
    ...     details={"url": "https://bus.example.com/topics/t:publish"},
    ... )
"""

from typing import Any, Dict, Optional


class SentinelError(Exception):
    """
    Base exception class for all Sentinel errors.

    Attributes:
        message (str): Human-readable error description
        error_code (str): Machine-readable error identifier, defaults to the
            class name
        details (Dict[str, Any]): Additional contextual information such as
            task ids, namespaces or batch sizes
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(SentinelError):
    """
    Raised when a task configuration cannot be used.

    Configuration errors are fatal for the invocation that hits them: they
    are never retried and they are not downgraded by ``ignoreError``.

    Common scenarios:
        - A persisted task document fails schema validation
        - A ``next`` or embedded reference points at a missing task
        - A batch handed to an integration violates its fixed arity
        - No handler is registered for the task kind

    Example:
        >>> raise ConfigurationError(
        ...     "Wrong number of messages in a publish batch",
        ...     error_code="BATCH_ARITY_ERROR",
        ...     details={"expected": 1, "actual": 2},
        ... )
    """

    pass


class TaskNotFoundError(ConfigurationError):
    """Raised when the store has no task under (namespace, task_id)"""

    pass


class TaskGraphError(ConfigurationError):
    """Raised when a task graph contains a cycle"""

    pass


class RetryableError(SentinelError):
    """
    Raised when a downstream operation may succeed if retried.

    Typical causes are throttling (HTTP 429), server-side faults (HTTP 5xx)
    and transport errors such as timeouts or dropped connections.
    """

    pass


class NonRetryableError(SentinelError):
    """Raised when a downstream system permanently rejects a batch"""

    pass


class HandlerError(SentinelError):
    """Raised when an integration fails without classifying the failure"""

    pass
