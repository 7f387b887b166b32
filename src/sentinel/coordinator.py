"""
Task coordinator.

The coordinator is the entry point of a trigger. For every event it:

    1. Builds the task graph reachable from the triggered task
    2. Resolves the handler of each integration task and runs the managed
       send engine with it
    3. Interprets the outcome through the task's error options
    4. Asks the graph resolver for the downstream invocations and runs them,
       or hands them to a dispatcher

Chaining:
    Downstream tasks run in-process and concurrently by default; their
    reports become the ``children`` of the parent's report. When a
    ``dispatch`` coroutine is supplied, downstream invocations are handed to
    it as new TriggerEvents instead (for example to publish them on a
    queue), and are listed in ``dispatched``. Embedded children of a knot
    always run in-process, since the barrier lives in the knot's run.

    Downstream tasks receive the record payload of their parent and the
    parent's parameters merged with the reference's appended parameters.

Error Policy:
    SUCCEEDED: every batch was delivered
    FAILED_IGNORED: the send failed and the task says ``ignoreError``;
        downstream tasks still run
    FAILED: the send failed; downstream tasks do not run and the failure
        shows up in the report of every ancestor through ``ok``
    ConfigurationError is fatal for the whole trigger and propagates.

Example:
    >>> store = FileTaskConfigStore("./tasks")
    >>> coordinator = Coordinator(store)
    >>> report = await coordinator.handle(
    ...     TriggerEvent(task_id="load_users", data=payload)
    ... )
    >>> if not report.ok:
    ...     replay(report.failed_lines())
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional

import sentinel.handlers  # noqa: F401  (registers the bundled handlers)
from sentinel.core.config.settings import Settings
from sentinel.core.config.settings import settings as default_settings
from sentinel.core.exceptions.custom_exceptions import ConfigurationError
from sentinel.core.logging.logger import add_correlation_id
from sentinel.engine.managed_send import ManagedSend
from sentinel.events import TriggerEvent
from sentinel.handlers.base import BaseHandler, HandlerFactory
from sentinel.tasks.config import (
    KnotTaskConfig,
    TaskConfig,
    TaskType,
    apply_parameters,
)
from sentinel.tasks.graph import (
    KnotBarrier,
    TaskGraph,
    TaskInvocation,
    compute_next_invocations,
    embedded_invocations,
)
from sentinel.tasks.result import BatchResult
from sentinel.tasks.store import TaskConfigStore

HandlerProvider = Callable[[TaskType, Settings], BaseHandler]
Dispatch = Callable[[TriggerEvent], Awaitable[None]]


class TaskStatus(Enum):
    SUCCEEDED = "succeeded"
    FAILED_IGNORED = "failed_ignored"
    FAILED = "failed"


@dataclass
class TaskRunReport:
    """Outcome of one task run and of everything it caused"""

    task_id: str
    task_type: TaskType
    status: TaskStatus
    result: BatchResult
    parameters: Dict[str, Any] = field(default_factory=dict)
    embedded: List["TaskRunReport"] = field(default_factory=list)
    children: List["TaskRunReport"] = field(default_factory=list)
    dispatched: List[TaskInvocation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """False when this task or any task it caused failed for good"""
        return self.status is not TaskStatus.FAILED and all(
            report.ok for report in self.embedded + self.children
        )

    def walk(self) -> Iterator["TaskRunReport"]:
        yield self
        for report in self.embedded + self.children:
            yield from report.walk()

    def failed_lines(self) -> List[str]:
        """Records that failed anywhere in the run, for replay"""
        lines: List[str] = []
        for report in self.walk():
            if report.task_type not in (TaskType.KNOT, TaskType.MULTIPLE):
                lines.extend(report.result.failed_lines)
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskId": self.task_id,
            "type": self.task_type.value,
            "status": self.status.value,
            "result": self.result.to_dict(),
            "embedded": [report.to_dict() for report in self.embedded],
            "children": [report.to_dict() for report in self.children],
            "dispatched": [invocation.task_id for invocation in self.dispatched],
        }


class Coordinator:
    """
    Runs triggered tasks and their downstream chains.

    Args:
        store: Task configuration store, read-only
        settings: Application settings, defaults to the module settings
        handler_factory: Builds the handler of a task kind, defaults to
            HandlerFactory.create
        dispatch: Optional coroutine receiving downstream invocations as
            TriggerEvents instead of running them in-process
        sleep: Coroutine used for retry backoff waits
    """

    def __init__(
        self,
        store: TaskConfigStore,
        settings: Optional[Settings] = None,
        handler_factory: Optional[HandlerProvider] = None,
        dispatch: Optional[Dispatch] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.handler_factory = handler_factory or HandlerFactory.create
        self.dispatch = dispatch
        self.sleep = sleep

    async def handle(self, event: TriggerEvent) -> TaskRunReport:
        """
        Run the task named by a trigger and everything chained to it.

        Raises:
            ConfigurationError: When the task graph or a task configuration
                is unusable, or a batch hits a configuration fault
        """
        logger = add_correlation_id(event.correlation_id, __name__).bind(
            task_id=event.task_id, namespace=event.namespace
        )
        logger.info("Trigger received")
        try:
            graph = await TaskGraph.build(self.store, event.namespace, event.task_id)
            report = await self.run_task(
                graph,
                TaskInvocation(event.task_id, dict(event.parameters)),
                list(event.records()),
                event.correlation_id,
            )
        except ConfigurationError as e:
            logger.error(
                f"Trigger aborted: {e.message}",
                error_code=e.error_code,
                details=e.details,
            )
            raise

        logger.info("Trigger finished", ok=report.ok)
        return report

    async def run_task(
        self,
        graph: TaskGraph,
        invocation: TaskInvocation,
        records: List[str],
        correlation_id: str,
    ) -> TaskRunReport:
        config = graph.get(invocation.task_id)
        logger = add_correlation_id(correlation_id, __name__).bind(task_id=config.id)
        barrier: Optional[KnotBarrier] = None
        embedded: List[TaskRunReport] = []

        if isinstance(config, KnotTaskConfig):
            barrier, embedded = await self._run_knot(
                graph, config, invocation, records, correlation_id
            )
            result = self._knot_result(embedded, barrier)
        elif config.task_type == TaskType.MULTIPLE:
            result = BatchResult.success(0)
        else:
            result = await self._send(
                config, invocation.parameters, records, correlation_id
            )

        status = self._status(config, result)
        if status is TaskStatus.FAILED:
            logger.error("Task failed", **result.to_dict())
        elif status is TaskStatus.FAILED_IGNORED:
            logger.warning("Task failed, error ignored", **result.to_dict())
        else:
            logger.info("Task succeeded", lines=result.number_of_lines)

        report = TaskRunReport(
            task_id=config.id,
            task_type=config.task_type,
            status=status,
            result=result,
            parameters=dict(invocation.parameters),
            embedded=embedded,
        )

        next_invocations = compute_next_invocations(
            config, result, invocation.parameters, barrier
        )
        if not next_invocations:
            return report

        logger.info(
            f"Triggering next tasks: {[i.task_id for i in next_invocations]}"
        )
        if self.dispatch is not None:
            for next_invocation in next_invocations:
                await self.dispatch(
                    TriggerEvent(
                        task_id=next_invocation.task_id,
                        namespace=graph.namespace,
                        correlation_id=correlation_id,
                        data="\n".join(records),
                        parameters=next_invocation.parameters,
                    )
                )
                report.dispatched.append(next_invocation)
        else:
            report.children = await self._gather_reports(
                [
                    self.run_task(graph, next_invocation, records, correlation_id)
                    for next_invocation in next_invocations
                ]
            )
        return report

    async def _send(
        self,
        config: TaskConfig,
        parameters: Dict[str, Any],
        records: List[str],
        correlation_id: str,
    ) -> BatchResult:
        rendered = apply_parameters(config, parameters)
        handler = self.handler_factory(rendered.task_type, self.settings)

        async with handler:
            engine = ManagedSend(
                handler.get_speed_options(rendered),
                handler.retry_times(rendered),
                backoff_seconds=self.settings.RETRY_BACKOFF_SECONDS,
                sleep=self.sleep,
            )

            async def send_batch(batch: List[str], batch_id: int) -> BatchResult:
                return await handler.send_data(
                    batch, f"{correlation_id}-{batch_id}", rendered
                )

            return await engine.run(records, send_batch, correlation_id)

    async def _run_knot(
        self,
        graph: TaskGraph,
        config: KnotTaskConfig,
        invocation: TaskInvocation,
        records: List[str],
        correlation_id: str,
    ):
        barrier = KnotBarrier(config.id, [child.id for child in config.embedded])
        logger = add_correlation_id(correlation_id, __name__).bind(task_id=config.id)

        async def run_child(child: TaskInvocation) -> TaskRunReport:
            report = await self.run_task(graph, child, records, correlation_id)
            if barrier.resolve(child.task_id, report.status is not TaskStatus.FAILED):
                logger.info("All embedded tasks resolved, barrier released")
            return report

        reports = await self._gather_reports(
            [
                run_child(child)
                for child in embedded_invocations(config, invocation.parameters)
            ]
        )
        return barrier, reports

    @staticmethod
    async def _gather_reports(
        runs: List[Awaitable[TaskRunReport]],
    ) -> List[TaskRunReport]:
        # Siblings finish before the first failure propagates
        outcomes = await asyncio.gather(*runs, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return list(outcomes)

    @staticmethod
    def _knot_result(
        embedded: List[TaskRunReport], barrier: KnotBarrier
    ) -> BatchResult:
        result = BatchResult(number_of_lines=0, result=barrier.released)
        for report in embedded:
            if report.status is TaskStatus.FAILED:
                result.errors.append(f"Embedded task {report.task_id} failed")
                result.errors.extend(report.result.errors)
        return result

    @staticmethod
    def _status(config: TaskConfig, result: BatchResult) -> TaskStatus:
        if result.result:
            return TaskStatus.SUCCEEDED
        if config.error_options.ignore_error:
            return TaskStatus.FAILED_IGNORED
        return TaskStatus.FAILED
