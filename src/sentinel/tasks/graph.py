"""
Task graph resolver.

Task configurations chain into each other through ``next`` groups and,
for knot tasks, through embedded children. This module turns that chaining
into an explicit graph built once per trigger, and decides which tasks run
after a task finishes.

Key Components:
    - TaskInvocation: A task id plus the parameters it runs with
    - TaskEdge: Typed, parameter-carrying edge between two tasks
    - TaskGraph: Nodes and edges reachable from a root task, with
      reference and cycle checks
    - KnotBarrier: Join point that releases once every embedded child of a
      knot has resolved
    - compute_next_invocations(): Downstream invocations for a finished task

Chaining Rules:
    multiple: every entry of ``next`` fires independently
    knot: ``next`` fires once, after every embedded child resolved
    other kinds: ``next`` fires when the task succeeded
    A failed task fires its ``next`` group only when its error options say
    ``ignoreError``.

Parameter Propagation:
    A downstream task runs with the context of its parent merged with the
    ``appendedParameters`` of the reference; appended values win on
    conflicting keys. Embedded knot children share the knot's context.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from sentinel.core.exceptions.custom_exceptions import (
    ConfigurationError,
    TaskGraphError,
    TaskNotFoundError,
)
from sentinel.core.logging.logger import get_logger
from sentinel.tasks.config import KnotTaskConfig, TaskConfig, TaskType
from sentinel.tasks.result import BatchResult
from sentinel.tasks.store import TaskConfigStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class TaskInvocation:
    """A task to run and the parameters it runs with"""

    task_id: str
    parameters: Dict[str, Any] = field(default_factory=dict)


class EdgeKind(Enum):
    NEXT = "next"
    EMBEDDED = "embedded"


@dataclass(frozen=True)
class TaskEdge:
    source: str
    target: str
    kind: EdgeKind
    appended_parameters: Dict[str, Any] = field(default_factory=dict)


def compute_next_invocations(
    config: TaskConfig,
    result: BatchResult,
    context: Dict[str, Any],
    barrier: Optional["KnotBarrier"] = None,
) -> List[TaskInvocation]:
    """
    Compute the downstream invocations of a finished task.

    Args:
        config: The finished task
        result: Its aggregated outcome
        context: Parameters the task ran with
        barrier: For knot tasks, the barrier over its embedded children

    Returns:
        List[TaskInvocation]: In the order of the ``next`` group; empty when
            the task failed without ``ignoreError`` or, for a knot, when the
            barrier has not released
    """
    if not result.result and not config.error_options.ignore_error:
        return []
    if config.task_type == TaskType.KNOT and (barrier is None or not barrier.released):
        return []
    return [
        TaskInvocation(
            task_id=ref.task_id,
            parameters={**context, **ref.appended_parameters},
        )
        for ref in config.next
    ]


def embedded_invocations(
    config: KnotTaskConfig, context: Dict[str, Any]
) -> List[TaskInvocation]:
    """Invocations of a knot's embedded children, sharing the knot's context"""
    return [
        TaskInvocation(task_id=child.id, parameters=dict(context))
        for child in config.embedded
    ]


class KnotBarrier:
    """
    Join point over the embedded children of a knot task.

    ``resolve()`` returns True exactly once: when the last outstanding child
    resolves and every child resolved ok (succeeded, or failed with
    ``ignoreError``). A child resolving not-ok breaks the barrier for good.
    Re-resolving a child is a no-op, so re-delivered children cannot
    release the barrier twice.
    """

    def __init__(self, knot_id: str, child_ids: List[str]):
        if not child_ids:
            raise ConfigurationError(f"Knot {knot_id} has no embedded tasks")
        self.knot_id = knot_id
        self.child_ids = list(child_ids)
        self._outcomes: Dict[str, bool] = {}
        self.released = False

    @property
    def pending(self) -> Set[str]:
        return set(self.child_ids) - set(self._outcomes)

    @property
    def broken(self) -> bool:
        return any(not ok for ok in self._outcomes.values())

    def resolve(self, child_id: str, ok: bool) -> bool:
        if child_id not in self.child_ids:
            raise ConfigurationError(
                f"Task {child_id} is not embedded in knot {self.knot_id}",
                details={"knot_id": self.knot_id, "child_id": child_id},
            )
        if child_id in self._outcomes:
            logger.debug(f"Knot {self.knot_id}: {child_id} already resolved")
            return False
        self._outcomes[child_id] = ok
        if self.pending or self.broken or self.released:
            return False
        self.released = True
        return True


class TaskGraph:
    """
    Tasks reachable from a root task and the edges between them.

    Built once per trigger with ``await TaskGraph.build(...)``. Every
    referenced task must exist in the root's namespace and the graph must
    be acyclic; both are checked while building.
    """

    def __init__(self, root_id: str, namespace: str):
        self.root_id = root_id
        self.namespace = namespace
        self.nodes: Dict[str, TaskConfig] = {}
        self.edges: List[TaskEdge] = []

    @classmethod
    async def build(
        cls, store: TaskConfigStore, namespace: str, root_id: str
    ) -> "TaskGraph":
        graph = cls(root_id, namespace)
        graph._add_node(await store.get(namespace, root_id))

        while True:
            missing = [
                edge for edge in graph.edges if edge.target not in graph.nodes
            ]
            if not missing:
                break
            edge = missing[0]
            try:
                config = await store.get(namespace, edge.target)
            except TaskNotFoundError as e:
                raise ConfigurationError(
                    f"Task {edge.source} references unknown task {edge.target}",
                    error_code="UNRESOLVED_TASK_REFERENCE",
                    details={
                        "namespace": namespace,
                        "source": edge.source,
                        "target": edge.target,
                    },
                ) from e
            if config.id != edge.target:
                raise ConfigurationError(
                    f"Task stored as {edge.target} declares id {config.id}",
                    details={"namespace": namespace, "task_id": edge.target},
                )
            graph._add_node(config)

        graph._check_acyclic()
        logger.debug(
            f"Built task graph for {namespace}/{root_id}: "
            f"{len(graph.nodes)} tasks, {len(graph.edges)} edges"
        )
        return graph

    def _add_node(self, config: TaskConfig) -> None:
        if config.id in self.nodes:
            raise ConfigurationError(
                f"Duplicate task id in graph: {config.id}",
                details={"namespace": self.namespace, "task_id": config.id},
            )
        self.nodes[config.id] = config
        for ref in config.next:
            self.edges.append(
                TaskEdge(config.id, ref.task_id, EdgeKind.NEXT, ref.appended_parameters)
            )
        if isinstance(config, KnotTaskConfig):
            for child in config.embedded:
                self.edges.append(TaskEdge(config.id, child.id, EdgeKind.EMBEDDED))
                self._add_node(child)

    def _check_acyclic(self) -> None:
        # Iterative DFS; a back edge to a node on the current path is a cycle
        on_path: List[str] = []
        visited: Set[str] = set()
        for start in self.nodes:
            if start in visited:
                continue
            stack = [(start, iter(self.successors(start)))]
            on_path.append(start)
            visited.add(start)
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    stack.pop()
                    on_path.pop()
                    continue
                if child in on_path:
                    cycle = on_path[on_path.index(child) :] + [child]
                    raise TaskGraphError(
                        f"Task graph contains a cycle: {' -> '.join(cycle)}",
                        error_code="TASK_GRAPH_CYCLE",
                        details={"namespace": self.namespace, "cycle": cycle},
                    )
                if child not in visited:
                    visited.add(child)
                    on_path.append(child)
                    stack.append((child, iter(self.successors(child))))

    def get(self, task_id: str) -> TaskConfig:
        try:
            return self.nodes[task_id]
        except KeyError:
            raise ConfigurationError(
                f"Task {task_id} is not part of the graph of {self.root_id}"
            )

    def edges_from(self, task_id: str) -> List[TaskEdge]:
        return [edge for edge in self.edges if edge.source == task_id]

    def successors(self, task_id: str) -> List[str]:
        return [edge.target for edge in self.edges_from(task_id)]

    def topological_order(self) -> List[str]:
        """Task ids ordered so every task comes before its successors"""
        indegree = {task_id: 0 for task_id in self.nodes}
        for edge in self.edges:
            indegree[edge.target] += 1
        ready = [task_id for task_id, degree in indegree.items() if degree == 0]
        order = []
        while ready:
            task_id = ready.pop(0)
            order.append(task_id)
            for target in self.successors(task_id):
                indegree[target] -= 1
                if indegree[target] == 0:
                    ready.append(target)
        return order
