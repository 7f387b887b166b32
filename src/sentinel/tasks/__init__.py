"""
Task configuration model, stores and graph resolution
"""

from .config import (
    ErrorOptions,
    HttpTaskConfig,
    KnotTaskConfig,
    MultipleTaskConfig,
    PredictTaskConfig,
    PublishTaskConfig,
    TaskConfig,
    TaskRef,
    TaskType,
    apply_parameters,
    parse_task_config,
)
from .graph import (
    KnotBarrier,
    TaskGraph,
    TaskInvocation,
    compute_next_invocations,
    embedded_invocations,
)
from .result import BatchResult, ErrorKind
from .store import FileTaskConfigStore, InMemoryTaskConfigStore, TaskConfigStore

__all__ = [
    "BatchResult",
    "ErrorKind",
    "ErrorOptions",
    "FileTaskConfigStore",
    "HttpTaskConfig",
    "InMemoryTaskConfigStore",
    "KnotBarrier",
    "KnotTaskConfig",
    "MultipleTaskConfig",
    "PredictTaskConfig",
    "PublishTaskConfig",
    "TaskConfig",
    "TaskConfigStore",
    "TaskGraph",
    "TaskInvocation",
    "TaskRef",
    "TaskType",
    "apply_parameters",
    "compute_next_invocations",
    "embedded_invocations",
    "parse_task_config",
]
