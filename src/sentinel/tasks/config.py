"""
Task configuration data model.

This module defines the persisted description of a unit of work. Task
documents are authored outside the coordinator, stored under
(namespace, task id) and validated exactly once, when they are loaded. The
coordinator never mutates them.

Key Components:
    - TaskType: Closed set of task kinds
    - TaskConfig: Tagged union over the task kind, one model per kind
    - TaskGroup: Normalized downstream references (``next``)
    - ErrorOptions: Retry budget and ignore-error policy
    - apply_parameters(): Render ``${name}`` placeholders with the
      invocation context

Task Kinds:
    http: POST records to an HTTP endpoint
    predict: Send records to a prediction endpoint
    publish: Publish one message per record to a message bus
    multiple: Fan out to every task in ``next``
    knot: Synchronization barrier over embedded child tasks

Document Shape:
    Documents use camelCase keys; snake_case is accepted as well. A task
    group may be written in three ways, which all normalize to the same
    sequence of TaskRef:

    >>> doc = {"type": "multiple", "next": "load_a, load_b"}
    >>> doc = {"type": "multiple", "next": ["load_a", "load_b"]}
    >>> doc = {
    ...     "type": "multiple",
    ...     "next": [
    ...         {"taskId": "load_a", "appendedParameters": {"table": "a"}},
    ...         {"taskId": "load_b"},
    ...     ],
    ... }

Validation:
    Unknown keys are rejected, so a composite kind cannot carry integration
    parameters. Any violation raises ConfigurationError at load time.
"""

from enum import Enum
from string import Template
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    TypeAdapter,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

from sentinel.core.config.settings import settings
from sentinel.core.exceptions.custom_exceptions import ConfigurationError


class TaskType(str, Enum):
    """Closed set of task kinds"""

    HTTP = "http"
    PREDICT = "predict"
    PUBLISH = "publish"
    MULTIPLE = "multiple"
    KNOT = "knot"

    @property
    def is_composite(self) -> bool:
        return self in (TaskType.MULTIPLE, TaskType.KNOT)


class _DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class TaskRef(_DocumentModel):
    """One downstream reference with the parameters appended for it"""

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(min_length=1)
    appended_parameters: Dict[str, Any] = Field(default_factory=dict)


def normalize_task_group(value: Any) -> Tuple[Any, ...]:
    """
    Normalize the three authoring shapes of a task group.

    Accepts a comma-delimited id string, a sequence of ids, or a sequence
    of ``{taskId, appendedParameters}`` objects (shapes may be mixed inside
    a sequence). Blank ids are dropped.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    elif isinstance(value, (dict, TaskRef)):
        value = [value]
    elif not isinstance(value, (list, tuple)):
        raise ValueError(f"Unsupported task group: {value!r}")

    refs: List[Any] = []
    for item in value:
        if isinstance(item, str):
            task_id = item.strip()
            if task_id:
                refs.append(TaskRef(task_id=task_id))
        elif isinstance(item, (dict, TaskRef)):
            refs.append(item)
        else:
            raise ValueError(f"Unsupported task group entry: {item!r}")
    return tuple(refs)


TaskGroup = Annotated[Tuple[TaskRef, ...], BeforeValidator(normalize_task_group)]


class ErrorOptions(_DocumentModel):
    """
    Error handling policy of a task.

    ``retry_times`` is consumed only by retryable failures. When it is not
    set, the handler of the task kind supplies its default.
    """

    retry_times: Optional[NonNegativeInt] = None
    ignore_error: bool = False


class _BaseTaskConfig(_DocumentModel):
    id: str = Field(min_length=1)
    namespace: str = Field(default_factory=lambda: settings.DEFAULT_NAMESPACE)
    error_options: ErrorOptions = Field(default_factory=ErrorOptions)
    next: TaskGroup = ()

    @property
    def task_type(self) -> TaskType:
        return TaskType(self.type)

    @property
    def next_task_ids(self) -> List[str]:
        return [ref.task_id for ref in self.next]

    def integration_parameters(self) -> Dict[str, Any]:
        """Integration-specific fields, without the common task fields"""
        return self.model_dump(
            exclude={"id", "namespace", "type", "error_options", "next", "embedded"}
        )


class _SendTaskConfig(_BaseTaskConfig):
    records_per_request: Optional[PositiveInt] = None
    number_of_threads: Optional[PositiveInt] = None
    qps: Optional[PositiveFloat] = None


class HttpTaskConfig(_SendTaskConfig):
    type: Literal["http"] = "http"
    url: str = Field(min_length=1)
    method: Literal["POST", "PUT"] = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)


class PredictTaskConfig(_SendTaskConfig):
    type: Literal["predict"] = "predict"
    endpoint: str = Field(min_length=1)
    model: Optional[str] = None


class PublishTaskConfig(_SendTaskConfig):
    type: Literal["publish"] = "publish"
    topic: str = Field(min_length=1)
    endpoint: str = Field(min_length=1)
    message: Optional[Union[str, Dict[str, Any]]] = None
    attributes: Dict[str, str] = Field(default_factory=dict)


class MultipleTaskConfig(_BaseTaskConfig):
    type: Literal["multiple"] = "multiple"

    @model_validator(mode="after")
    def validate_next_not_empty(self) -> "MultipleTaskConfig":
        if not self.next:
            raise ValueError("a multiple task needs at least one next task")
        return self


class KnotTaskConfig(_BaseTaskConfig):
    type: Literal["knot"] = "knot"
    embedded: List["TaskConfig"] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def assign_embedded_identity(cls, data: Any) -> Any:
        """Give anonymous embedded children an id and the parent's namespace"""
        if not isinstance(data, dict):
            return data
        embedded = data.get("embedded")
        if not isinstance(embedded, list):
            return data
        parent_id = data.get("id", "knot")
        namespace = data.get("namespace")
        children = []
        for index, child in enumerate(embedded):
            if isinstance(child, dict):
                child = dict(child)
                child.setdefault("id", f"{parent_id}.{index}")
                if namespace is not None:
                    child.setdefault("namespace", namespace)
            children.append(child)
        return {**data, "embedded": children}

    @model_validator(mode="after")
    def validate_unique_children(self) -> "KnotTaskConfig":
        ids = [child.id for child in self.embedded]
        if len(ids) != len(set(ids)):
            raise ValueError("embedded task ids must be unique")
        return self


TaskConfig = Annotated[
    Union[
        HttpTaskConfig,
        PredictTaskConfig,
        PublishTaskConfig,
        MultipleTaskConfig,
        KnotTaskConfig,
    ],
    Field(discriminator="type"),
]

KnotTaskConfig.model_rebuild()

_task_config_adapter: TypeAdapter = TypeAdapter(TaskConfig)


def parse_task_config(
    document: Dict[str, Any],
    task_id: Optional[str] = None,
    namespace: Optional[str] = None,
) -> TaskConfig:
    """
    Validate a task document into its TaskConfig variant.

    ``task_id`` and ``namespace`` fill in the identity of documents whose
    key lives outside the document itself, as in a key-value store.

    Raises:
        ConfigurationError: When the document does not match the schema of
            its task kind
    """
    if not isinstance(document, dict):
        raise ConfigurationError(
            f"Task document must be a mapping, got {type(document).__name__}",
            details={"task_id": task_id, "namespace": namespace},
        )
    data = dict(document)
    if task_id is not None:
        data.setdefault("id", task_id)
    if namespace is not None:
        data.setdefault("namespace", namespace)
    try:
        return _task_config_adapter.validate_python(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid task configuration {data.get('id')!r}: {e}",
            error_code="TASK_CONFIG_INVALID",
            details={"task_id": data.get("id"), "namespace": data.get("namespace")},
        ) from e


def _render(value: Any, parameters: Dict[str, Any]) -> Any:
    if isinstance(value, str):
        return Template(value).safe_substitute(parameters)
    if isinstance(value, dict):
        return {key: _render(item, parameters) for key, item in value.items()}
    if isinstance(value, list):
        return [_render(item, parameters) for item in value]
    return value


def apply_parameters(config: TaskConfig, parameters: Dict[str, Any]) -> TaskConfig:
    """
    Render ``${name}`` placeholders in the integration parameters.

    Unknown placeholders are left untouched. Identity, error options and
    downstream references are never rendered.
    """
    if not parameters:
        return config
    rendered = _render(config.integration_parameters(), parameters)
    data = config.model_dump(exclude=set(rendered))
    data.update(rendered)
    try:
        return type(config).model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Parameters produced an invalid configuration for {config.id!r}: {e}",
            details={"task_id": config.id, "parameters": sorted(parameters)},
        ) from e
