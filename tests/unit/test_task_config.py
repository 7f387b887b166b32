"""
Unit tests for the task configuration model
"""

import pytest

from sentinel.core.config.validation import ConfigGenerator
from sentinel.core.exceptions.custom_exceptions import ConfigurationError
from sentinel.tasks.config import (
    HttpTaskConfig,
    KnotTaskConfig,
    PublishTaskConfig,
    TaskRef,
    TaskType,
    apply_parameters,
    parse_task_config,
)


@pytest.mark.parametrize(
    "group",
    [
        "A,B",
        " A , ,B ",
        ["A", "B"],
        [{"taskId": "A"}, {"taskId": "B"}],
        ["A", {"taskId": "B"}],
    ],
)
def test_task_group_shapes_normalize_alike(group):
    config = parse_task_config(
        {"type": "http", "url": "https://x.example.com", "next": group}, task_id="t"
    )
    assert config.next_task_ids == ["A", "B"]
    assert all(isinstance(ref, TaskRef) for ref in config.next)


def test_task_group_keeps_appended_parameters():
    config = parse_task_config(
        {
            "type": "http",
            "url": "https://x.example.com",
            "next": [{"taskId": "A", "appendedParameters": {"stage": "2"}}],
        },
        task_id="t",
    )
    assert config.next[0].appended_parameters == {"stage": "2"}


def test_missing_next_is_empty():
    config = parse_task_config({"type": "http", "url": "https://x"}, task_id="t")
    assert config.next == ()


def test_camel_and_snake_case_keys():
    camel = parse_task_config(
        {
            "type": "predict",
            "endpoint": "https://ml",
            "recordsPerRequest": 5,
            "errorOptions": {"retryTimes": 1, "ignoreError": True},
        },
        task_id="p",
    )
    snake = parse_task_config(
        {
            "type": "predict",
            "endpoint": "https://ml",
            "records_per_request": 5,
            "error_options": {"retry_times": 1, "ignore_error": True},
        },
        task_id="p",
    )
    assert camel == snake
    assert camel.error_options.retry_times == 1
    assert camel.error_options.ignore_error is True


def test_defaults_and_identity_from_key():
    config = parse_task_config({"type": "http", "url": "https://x"}, task_id="load")
    assert config.id == "load"
    assert config.namespace == "sentinel"
    assert config.task_type is TaskType.HTTP
    assert config.error_options.retry_times is None
    assert config.error_options.ignore_error is False


@pytest.mark.parametrize(
    "document",
    [
        {"type": "ftp", "url": "ftp://x"},
        {"url": "https://x"},
        {"type": "http"},
        {"type": "http", "url": "https://x", "unknownField": 1},
        {"type": "http", "url": "https://x", "recordsPerRequest": 0},
        {"type": "http", "url": "https://x", "errorOptions": {"retryTimes": -1}},
        {"type": "multiple"},
        {"type": "multiple", "next": "A", "url": "https://x"},
        {"type": "http", "url": "https://x", "next": 5},
        {"type": "http", "url": "https://x", "next": True},
        {"type": "http", "url": "https://x", "next": 3.2},
        {"type": "knot", "embedded": []},
        {"type": "publish", "endpoint": "https://bus"},
    ],
)
def test_invalid_documents_raise_configuration_error(document):
    with pytest.raises(ConfigurationError) as exc_info:
        parse_task_config(document, task_id="bad")
    assert exc_info.value.error_code == "TASK_CONFIG_INVALID"


def test_non_mapping_document_rejected():
    with pytest.raises(ConfigurationError):
        parse_task_config(["not", "a", "mapping"], task_id="bad")


def test_knot_children_get_ids_and_namespace():
    config = parse_task_config(
        {
            "type": "knot",
            "embedded": [
                {"type": "http", "url": "https://a"},
                {"type": "http", "url": "https://b", "id": "named"},
            ],
            "next": "after",
        },
        task_id="join",
        namespace="billing",
    )
    assert isinstance(config, KnotTaskConfig)
    assert [child.id for child in config.embedded] == ["join.0", "named"]
    assert {child.namespace for child in config.embedded} == {"billing"}


def test_knot_children_ids_must_be_unique():
    with pytest.raises(ConfigurationError):
        parse_task_config(
            {
                "type": "knot",
                "embedded": [
                    {"type": "http", "url": "https://a", "id": "x"},
                    {"type": "http", "url": "https://b", "id": "x"},
                ],
            },
            task_id="join",
        )


def test_generated_templates_are_valid():
    http = parse_task_config(ConfigGenerator.generate_http_config(), task_id="h")
    knot = parse_task_config(ConfigGenerator.generate_knot_config(), task_id="k")
    assert isinstance(http, HttpTaskConfig)
    assert [child.id for child in knot.embedded] == ["publish_a", "publish_b"]
    assert knot.next_task_ids == ["report"]


def test_apply_parameters_renders_integration_fields():
    config = parse_task_config(
        {
            "type": "http",
            "url": "https://api.example.com/${table}?v=${missing}",
            "headers": {"X-Table": "${table}"},
            "next": "after",
            "errorOptions": {"retryTimes": 4},
        },
        task_id="load",
    )
    rendered = apply_parameters(config, {"table": "users"})

    assert rendered.url == "https://api.example.com/users?v=${missing}"
    assert rendered.headers == {"X-Table": "users"}
    assert rendered.next_task_ids == ["after"]
    assert rendered.error_options.retry_times == 4
    assert config.url.endswith("${table}?v=${missing}")


def test_apply_parameters_keeps_message_template_fields():
    config = PublishTaskConfig(
        id="pub",
        topic="${topic}",
        endpoint="https://bus/${topic}",
        message={"user": "${user_id}"},
    )
    rendered = apply_parameters(config, {"topic": "events"})
    assert rendered.topic == "events"
    assert rendered.endpoint == "https://bus/events"
    assert rendered.message == {"user": "${user_id}"}


def test_apply_parameters_without_parameters_is_identity():
    config = HttpTaskConfig(id="h", url="https://x")
    assert apply_parameters(config, {}) is config
