"""
Unit tests for the coordinator
"""

import asyncio
import json
from typing import List

import pytest

from sentinel.coordinator import Coordinator, TaskStatus
from sentinel.core.exceptions.custom_exceptions import ConfigurationError
from sentinel.events import TriggerEvent
from sentinel.tasks.config import TaskType
from sentinel.tasks.result import ErrorKind

NAMESPACE = "sentinel"


class DispatchCollector:
    def __init__(self):
        self.events: List[TriggerEvent] = []

    async def __call__(self, event: TriggerEvent) -> None:
        self.events.append(event)


def load(store, documents, namespace=NAMESPACE):
    for task_id, document in documents.items():
        store.put(namespace, task_id, document)


def trigger(task_id, records=(), **kwargs):
    return TriggerEvent(
        task_id=task_id, namespace=NAMESPACE, data="\n".join(records), **kwargs
    )


@pytest.mark.asyncio
async def test_retried_batch_recovers_and_next_tasks_fire(
    store, sample_task_documents, records, test_settings, handler_provider
):
    load(store, sample_task_documents)
    provider = handler_provider(
        {records[2]: [ErrorKind.RETRYABLE, ErrorKind.RETRYABLE]}
    )
    dispatch = DispatchCollector()
    coordinator = Coordinator(
        store, settings=test_settings, handler_factory=provider, dispatch=dispatch
    )

    report = await coordinator.handle(trigger("score", records, correlation_id="m1"))

    assert [len(call) for call in provider.calls] == [2, 2, 2, 2, 1]
    assert report.status is TaskStatus.SUCCEEDED
    assert report.result.result is True
    assert report.result.number_of_lines == 5
    assert report.result.errors == []
    assert [i.task_id for i in report.dispatched] == ["A", "B"]
    assert [event.task_id for event in dispatch.events] == ["A", "B"]
    assert all(event.correlation_id == "m1" for event in dispatch.events)
    assert list(dispatch.events[0].records()) == records
    assert report.ok is True


@pytest.mark.asyncio
async def test_exhausted_batch_fails_and_next_tasks_do_not_fire(
    store, sample_task_documents, records, test_settings, handler_provider
):
    load(store, sample_task_documents)
    provider = handler_provider({records[2]: [ErrorKind.RETRYABLE] * 3})
    dispatch = DispatchCollector()
    coordinator = Coordinator(
        store, settings=test_settings, handler_factory=provider, dispatch=dispatch
    )

    report = await coordinator.handle(trigger("score", records))

    assert provider.handlers[0].attempts[records[2]] == 3
    assert report.status is TaskStatus.FAILED
    assert report.result.result is False
    assert report.result.number_of_lines == 5
    assert report.result.failed_lines == records[2:4]
    assert report.dispatched == []
    assert dispatch.events == []
    assert report.ok is False
    assert report.failed_lines() == records[2:4]


@pytest.mark.asyncio
async def test_next_tasks_run_in_process_with_parent_records(
    store, records, test_settings, handler_provider
):
    load(
        store,
        {
            "load": {
                "type": "http",
                "url": "https://api.example.com/${table}",
                "next": [{"taskId": "audit", "appendedParameters": {"stage": "2"}}],
            },
            "audit": {"type": "http", "url": "https://audit/${table}/${stage}"},
        },
    )
    provider = handler_provider()
    coordinator = Coordinator(store, settings=test_settings, handler_factory=provider)

    report = await coordinator.handle(
        trigger("load", records, parameters={"table": "users"})
    )

    assert report.ok is True
    assert [child.task_id for child in report.children] == ["audit"]
    child = report.children[0]
    assert child.parameters == {"table": "users", "stage": "2"}
    assert child.result.number_of_lines == 5
    urls = [handler.configs[0].url for handler in provider.handlers]
    assert urls == ["https://api.example.com/users", "https://audit/users/2"]


@pytest.mark.asyncio
async def test_ignore_error_keeps_chain_going(
    store, records, test_settings, handler_provider
):
    load(
        store,
        {
            "load": {
                "type": "http",
                "url": "https://x",
                "errorOptions": {"ignoreError": True},
                "next": "after",
            },
            "after": {"type": "http", "url": "https://y"},
        },
    )
    provider = handler_provider({"load": [ErrorKind.NON_RETRYABLE]})
    coordinator = Coordinator(store, settings=test_settings, handler_factory=provider)

    report = await coordinator.handle(trigger("load", records[:2]))

    assert report.status is TaskStatus.FAILED_IGNORED
    assert report.result.failed_lines == records[:2]
    assert [child.task_id for child in report.children] == ["after"]
    assert report.children[0].status is TaskStatus.SUCCEEDED
    assert report.ok is True


@pytest.mark.asyncio
async def test_multiple_fans_out_without_sending(
    store, records, test_settings, handler_provider
):
    load(
        store,
        {
            "fan": {"type": "multiple", "next": "a,b"},
            "a": {"type": "http", "url": "https://a"},
            "b": {"type": "http", "url": "https://b"},
        },
    )
    provider = handler_provider()
    coordinator = Coordinator(store, settings=test_settings, handler_factory=provider)

    report = await coordinator.handle(trigger("fan", records))

    assert report.task_type is TaskType.MULTIPLE
    assert report.result.number_of_lines == 0
    assert [child.task_id for child in report.children] == ["a", "b"]
    assert len(provider.handlers) == 2


KNOT_DOCUMENTS = {
    "join": {
        "type": "knot",
        "embedded": [
            {"type": "http", "url": "https://left", "id": "left"},
            {
                "type": "http",
                "url": "https://right",
                "id": "right",
                "errorOptions": {"ignoreError": True},
            },
        ],
        "next": "report",
    },
    "report": {"type": "http", "url": "https://report"},
}


@pytest.mark.asyncio
async def test_knot_fires_next_once_children_resolve(
    store, records, test_settings, handler_provider
):
    load(store, KNOT_DOCUMENTS)
    provider = handler_provider({"right": [ErrorKind.NON_RETRYABLE]})
    coordinator = Coordinator(store, settings=test_settings, handler_factory=provider)

    report = await coordinator.handle(trigger("join", records[:1]))

    statuses = {child.task_id: child.status for child in report.embedded}
    assert statuses == {
        "left": TaskStatus.SUCCEEDED,
        "right": TaskStatus.FAILED_IGNORED,
    }
    assert report.status is TaskStatus.SUCCEEDED
    assert [child.task_id for child in report.children] == ["report"]
    assert report.ok is True


@pytest.mark.asyncio
async def test_knot_blocks_next_when_a_child_fails(
    store, records, test_settings, handler_provider
):
    load(store, KNOT_DOCUMENTS)
    provider = handler_provider({"left": [ErrorKind.NON_RETRYABLE]})
    coordinator = Coordinator(store, settings=test_settings, handler_factory=provider)

    report = await coordinator.handle(trigger("join", records[:1]))

    assert report.status is TaskStatus.FAILED
    assert report.children == []
    assert "Embedded task left failed" in report.result.errors
    assert report.ok is False
    assert report.failed_lines() == records[:1]


@pytest.mark.asyncio
async def test_configuration_fault_aborts_even_with_ignore_error(
    store, records, test_settings, handler_provider
):
    load(
        store,
        {
            "load": {
                "type": "http",
                "url": "https://x",
                "errorOptions": {"ignoreError": True},
                "next": "after",
            },
            "after": {"type": "http", "url": "https://y"},
        },
    )
    provider = handler_provider({"load": [ConfigurationError("wrong arity")]})
    coordinator = Coordinator(store, settings=test_settings, handler_factory=provider)

    with pytest.raises(ConfigurationError):
        await coordinator.handle(trigger("load", records))

    assert len(provider.handlers) == 1


@pytest.mark.asyncio
async def test_invalid_graph_fails_before_sending(
    store, records, test_settings, handler_provider
):
    load(store, {"load": {"type": "http", "url": "https://x", "next": "ghost"}})
    provider = handler_provider()
    coordinator = Coordinator(store, settings=test_settings, handler_factory=provider)

    with pytest.raises(ConfigurationError):
        await coordinator.handle(trigger("load", records))

    assert provider.handlers == []


@pytest.mark.asyncio
async def test_empty_trigger_succeeds_without_sending(
    store, test_settings, handler_provider
):
    load(store, {"load": {"type": "http", "url": "https://x"}})
    provider = handler_provider()
    coordinator = Coordinator(store, settings=test_settings, handler_factory=provider)

    report = await coordinator.handle(trigger("load"))

    assert report.status is TaskStatus.SUCCEEDED
    assert provider.calls == []


@pytest.mark.asyncio
async def test_report_serializes(
    store, sample_task_documents, records, test_settings, handler_provider
):
    load(store, sample_task_documents)
    coordinator = Coordinator(
        store, settings=test_settings, handler_factory=handler_provider()
    )

    report = await coordinator.handle(trigger("score", records))
    document = json.loads(json.dumps(report.to_dict()))

    assert document["taskId"] == "score"
    assert document["status"] == "succeeded"
    assert [child["taskId"] for child in document["children"]] == ["A", "B"]
    assert document["result"]["numberOfLines"] == 5


def pending_tasks():
    return [task for task in asyncio.all_tasks() if task is not asyncio.current_task()]


@pytest.mark.asyncio
async def test_configuration_fault_waits_for_downstream_siblings(
    store, records, test_settings, handler_provider
):
    load(
        store,
        {
            "fan": {"type": "multiple", "next": "bad,good"},
            "bad": {"type": "http", "url": "https://bad"},
            "good": {"type": "http", "url": "https://good", "next": "after"},
            "after": {"type": "http", "url": "https://after"},
        },
    )
    provider = handler_provider(
        {"bad": [ConfigurationError("wrong arity")]}, delays={"good": 0.05}
    )
    coordinator = Coordinator(store, settings=test_settings, handler_factory=provider)

    with pytest.raises(ConfigurationError):
        await coordinator.handle(trigger("fan", records[:1]))

    assert pending_tasks() == []
    sent = {handler.configs[0].id for handler in provider.handlers if handler.calls}
    assert sent == {"bad", "good", "after"}


@pytest.mark.asyncio
async def test_configuration_fault_waits_for_embedded_siblings(
    store, records, test_settings, handler_provider
):
    load(store, KNOT_DOCUMENTS)
    provider = handler_provider(
        {"left": [ConfigurationError("wrong arity")]}, delays={"right": 0.05}
    )
    coordinator = Coordinator(store, settings=test_settings, handler_factory=provider)

    with pytest.raises(ConfigurationError):
        await coordinator.handle(trigger("join", records[:1]))

    assert pending_tasks() == []
    sent = {handler.configs[0].id for handler in provider.handlers if handler.calls}
    assert sent == {"left", "right"}
