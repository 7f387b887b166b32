"""
Handler contract shared by every integration.

An integration (an HTTP endpoint, a prediction service, a message bus) is
plugged into the coordinator by implementing BaseHandler. The coordinator
and the send engine only ever call the two contract operations, so the
engine stays oblivious to the wire format of each integration.

Key Components:
    - SpeedOptions: Batching and pacing parameters of one invocation
    - BaseHandler: Abstract base class every integration implements
    - HandlerFactory: Registry of handlers keyed by task kind
    - classify_failure(): Maps an exception onto an ErrorKind
    - should_retry(): Retry decision as a pure function of the error kind

Contract:
    get_speed_options(config) -> SpeedOptions
        Pure derivation of records per request, number of concurrent lanes
        and requests per second. Values present in the task configuration
        override the handler's defaults; a handler may pin a value.

    send_data(records, correlation_id, config) -> BatchResult
        Sends one batch. Per-record failures never escape as exceptions:
        they come back as ``errors`` / ``failed_lines`` with an
        ``error_kind``. A structural precondition violation, such as a
        batch that does not match the integration's fixed arity, raises
        ConfigurationError.

Failure Classification:
    RETRYABLE: transient or throttled downstream fault, may succeed if
        issued again; consumes one unit of the retry budget
    NON_RETRYABLE: permanent rejection, recorded immediately
    CONFIGURATION: the invocation cannot succeed; aborts it

Example Implementation:
    >>> class EchoHandler(BaseHandler):
    ...     RECORDS_PER_REQUEST = 10
    ...
    ...     async def send_data(self, records, correlation_id, config):
    ...         self.logger.info(f"[{correlation_id}] {len(records)} records")
    ...         return BatchResult.success(len(records))
    >>>
    >>> HandlerFactory.register(TaskType.HTTP, EchoHandler)
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, Union

from sentinel.core.config.settings import Settings
from sentinel.core.config.settings import settings as default_settings
from sentinel.core.exceptions.custom_exceptions import (
    ConfigurationError,
    NonRetryableError,
    RetryableError,
)
from sentinel.core.logging.logger import get_logger
from sentinel.tasks.config import TaskConfig, TaskType
from sentinel.tasks.result import BatchResult, ErrorKind


@dataclass(frozen=True)
class SpeedOptions:
    """
    Batching and pacing parameters of one invocation.

    Attributes:
        records_per_request: Records sent in one request (R)
        number_of_threads: Concurrent lanes (T)
        qps: Requests per second across all lanes together (Q)
    """

    records_per_request: int
    number_of_threads: int
    qps: float

    def __post_init__(self):
        if self.records_per_request < 1:
            raise ConfigurationError("records_per_request must be at least 1")
        if self.number_of_threads < 1:
            raise ConfigurationError("number_of_threads must be at least 1")
        if self.qps <= 0:
            raise ConfigurationError("qps must be positive")


def classify_failure(error: BaseException) -> ErrorKind:
    """Map an exception raised while sending onto an ErrorKind"""
    if isinstance(error, ConfigurationError):
        return ErrorKind.CONFIGURATION
    if isinstance(error, (RetryableError, asyncio.TimeoutError)):
        return ErrorKind.RETRYABLE
    return ErrorKind.NON_RETRYABLE


def should_retry(
    kind: Optional[ErrorKind], retries_used: int, retry_times: int
) -> bool:
    """True when a failure of ``kind`` may be issued again"""
    return kind is ErrorKind.RETRYABLE and retries_used < retry_times


def parse_json_records(records: List[str]) -> List[Any]:
    """
    Decode newline-delimited JSON records.

    Raises:
        NonRetryableError: When a record is not valid JSON
    """
    parsed = []
    for index, line in enumerate(records):
        try:
            parsed.append(json.loads(line))
        except ValueError as e:
            raise NonRetryableError(
                f"Invalid JSON record at position {index}: {e}",
                error_code="INVALID_RECORD",
                details={"line": line},
            ) from e
    return parsed


class BaseHandler(ABC):
    """
    Abstract base class for integration handlers.

    Subclasses set the class-level defaults and implement ``send_data``.
    Handlers holding network clients open them in ``connect()`` and release
    them in ``disconnect()``; the coordinator uses every handler as an
    async context manager around one invocation.

    Class Defaults:
        RECORDS_PER_REQUEST: Records per request when the task sets none
        NUMBER_OF_THREADS: Concurrent lanes when the task sets none
        QUERIES_PER_SECOND: Request rate when the task sets none
        RETRY_TIMES: Retry budget when the task's error options set none
    """

    RECORDS_PER_REQUEST: int = 1
    NUMBER_OF_THREADS: int = 1
    QUERIES_PER_SECOND: float = 1.0
    RETRY_TIMES: int = 3

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.name = self.__class__.__name__
        self.logger = get_logger(f"{__name__}.{self.name}")

    def get_speed_options(self, config: TaskConfig) -> SpeedOptions:
        """Derive speed options, preferring values set on the task"""
        return SpeedOptions(
            records_per_request=(
                getattr(config, "records_per_request", None)
                or self.RECORDS_PER_REQUEST
            ),
            number_of_threads=(
                getattr(config, "number_of_threads", None) or self.NUMBER_OF_THREADS
            ),
            qps=getattr(config, "qps", None) or self.QUERIES_PER_SECOND,
        )

    def retry_times(self, config: TaskConfig) -> int:
        """Retry budget of the task, falling back to the handler default"""
        configured = config.error_options.retry_times
        return self.RETRY_TIMES if configured is None else configured

    @abstractmethod
    async def send_data(
        self, records: List[str], correlation_id: str, config: TaskConfig
    ) -> BatchResult:
        """
        Send one batch of records.

        Args:
            records: Raw record lines of the batch
            correlation_id: Id of the batch, derived from the trigger's
                correlation id, for logs and replay
            config: The task configuration, parameters already applied

        Returns:
            BatchResult: Success, or the failed records with the messages
                and the ErrorKind of the failure

        Raises:
            ConfigurationError: When the batch violates a structural
                precondition of the integration
        """
        pass

    def failed(self, records: List[str], error: Exception) -> BatchResult:
        """Turn a caught send failure into a classified BatchResult"""
        message = getattr(error, "message", None) or str(error)
        return BatchResult.failure(records, message, classify_failure(error))

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()


class HandlerFactory:
    """
    Registry of handler classes keyed by task kind.

    Handler modules register themselves at import time:

    >>> HandlerFactory.register(TaskType.PUBLISH, PublishHandler)
    >>> handler = HandlerFactory.create(TaskType.PUBLISH)
    """

    _handlers: Dict[TaskType, Type[BaseHandler]] = {}

    @classmethod
    def register(
        cls, task_type: Union[TaskType, str], handler_class: Type[BaseHandler]
    ) -> None:
        task_type = TaskType(task_type)
        if task_type.is_composite:
            raise ConfigurationError(
                f"Composite task kind {task_type.value} cannot have a handler"
            )
        cls._handlers[task_type] = handler_class

    @classmethod
    def create(
        cls, task_type: Union[TaskType, str], settings: Optional[Settings] = None
    ) -> BaseHandler:
        """
        Create the handler of a task kind.

        Raises:
            ConfigurationError: If no handler is registered for the kind
        """
        try:
            task_type = TaskType(task_type)
        except ValueError as e:
            raise ConfigurationError(f"Unknown task kind: {task_type}") from e
        if task_type not in cls._handlers:
            raise ConfigurationError(
                f"No handler registered for task kind: {task_type.value}",
                error_code="HANDLER_NOT_FOUND",
            )
        return cls._handlers[task_type](settings=settings)

    @classmethod
    def list_handlers(cls) -> List[str]:
        return [task_type.value for task_type in cls._handlers]
