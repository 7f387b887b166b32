"""
Task configuration stores.

The coordinator reads task configurations through the TaskConfigStore
contract: a keyed lookup by (namespace, task id) that is read-only from the
engine's point of view. Documents are validated on every load, so a broken
document fails the invocation that reads it instead of a later one.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from sentinel.core.config.validation import ConfigValidator
from sentinel.core.exceptions.custom_exceptions import TaskNotFoundError
from sentinel.core.logging.logger import get_logger
from sentinel.tasks.config import TaskConfig, parse_task_config

logger = get_logger(__name__)


def load_task_file(file_path: str, namespace: Optional[str] = None) -> TaskConfig:
    """Load and validate one task document, keyed by its file name"""
    document = ConfigValidator.load_config(file_path)
    return parse_task_config(
        document, task_id=Path(file_path).stem, namespace=namespace
    )


class TaskConfigStore(ABC):
    """Read-only keyed lookup of persisted task configurations"""

    @abstractmethod
    async def get(self, namespace: str, task_id: str) -> TaskConfig:
        """
        Load and validate the task stored under (namespace, task_id).

        Raises:
            TaskNotFoundError: When no document exists under the key
            ConfigurationError: When the document is invalid
        """
        pass

    def _not_found(self, namespace: str, task_id: str) -> TaskNotFoundError:
        return TaskNotFoundError(
            f"Task not found: {namespace}/{task_id}",
            error_code="TASK_NOT_FOUND",
            details={"namespace": namespace, "task_id": task_id},
        )


class InMemoryTaskConfigStore(TaskConfigStore):
    """Store backed by a dictionary of raw documents"""

    def __init__(
        self, documents: Optional[Dict[Tuple[str, str], Dict[str, Any]]] = None
    ):
        self._documents: Dict[Tuple[str, str], Dict[str, Any]] = dict(
            documents or {}
        )

    def put(self, namespace: str, task_id: str, document: Dict[str, Any]) -> None:
        self._documents[(namespace, task_id)] = dict(document)

    async def get(self, namespace: str, task_id: str) -> TaskConfig:
        document = self._documents.get((namespace, task_id))
        if document is None:
            raise self._not_found(namespace, task_id)
        return parse_task_config(document, task_id=task_id, namespace=namespace)


class FileTaskConfigStore(TaskConfigStore):
    """
    Store reading one document per file.

    Layout: ``<base_dir>/<namespace>/<task_id>.yaml`` (``.yml`` and
    ``.json`` are accepted too).
    """

    SUFFIXES = (".yaml", ".yml", ".json")

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)

    def _find(self, namespace: str, task_id: str) -> Optional[Path]:
        directory = self.base_dir / namespace
        for suffix in self.SUFFIXES:
            candidate = directory / f"{task_id}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    async def get(self, namespace: str, task_id: str) -> TaskConfig:
        path = self._find(namespace, task_id)
        if path is None:
            raise self._not_found(namespace, task_id)
        logger.debug(f"Loading task {namespace}/{task_id} from {path}")
        return load_task_file(str(path), namespace=namespace)
