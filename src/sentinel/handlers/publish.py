"""
Message bus publish handler.

Publishes one message per record. Every record is a JSON object whose
fields fill the ``${name}`` placeholders of the task's message template and
attributes. The message is sent through the bus's REST publish call:

    POST <endpoint>
    {"messages": [{"data": "<base64 message>", "attributes": {...}}]}

The handler pins records per request to exactly one; a batch of any other
size is a configuration fault, never a delivery failure.

Example Configuration:
    >>> document = {
    ...     "type": "publish",
    ...     "topic": "user-events",
    ...     "endpoint": "https://bus.example.com/v1/topics/user-events:publish",
    ...     "message": {"user": "${user_id}", "event": "${event}"},
    ...     "attributes": {"source": "sentinel"},
    ...     "qps": 5,
    ... }
"""

import base64
import json
from string import Template
from typing import Any, Dict, List

from sentinel.core.exceptions.custom_exceptions import (
    ConfigurationError,
    NonRetryableError,
    RetryableError,
)
from sentinel.handlers.base import HandlerFactory, SpeedOptions, parse_json_records
from sentinel.handlers.http_handler import HttpSendHandler
from sentinel.tasks.config import PublishTaskConfig, TaskType
from sentinel.tasks.result import BatchResult

RECORDS_PER_REQUEST = 1


def _escape(value: Any) -> str:
    # Placeholders sit inside JSON strings; non-strings land as their JSON text
    if not isinstance(value, str):
        value = json.dumps(value)
    return json.dumps(value)[1:-1]


class PublishHandler(HttpSendHandler):
    """Publishes every record as one message"""

    RECORDS_PER_REQUEST = RECORDS_PER_REQUEST
    NUMBER_OF_THREADS = 1
    QUERIES_PER_SECOND = 1.0
    RETRY_TIMES = 3

    def get_speed_options(self, config: PublishTaskConfig) -> SpeedOptions:
        options = super().get_speed_options(config)
        if options.records_per_request != RECORDS_PER_REQUEST:
            self.logger.debug(
                f"Ignoring recordsPerRequest={options.records_per_request} "
                f"for publish task {config.id}"
            )
        return SpeedOptions(
            records_per_request=RECORDS_PER_REQUEST,
            number_of_threads=options.number_of_threads,
            qps=options.qps,
        )

    def render_message(
        self, config: PublishTaskConfig, fields: Dict[str, Any]
    ) -> str:
        if isinstance(config.message, dict):
            escaped = {key: _escape(value) for key, value in fields.items()}
            return Template(json.dumps(config.message)).safe_substitute(escaped)
        return Template(config.message or "").safe_substitute(fields)

    def render_attributes(
        self, config: PublishTaskConfig, fields: Dict[str, Any]
    ) -> Dict[str, str]:
        return {
            key: Template(value).safe_substitute(fields)
            for key, value in config.attributes.items()
        }

    async def send_data(
        self, records: List[str], correlation_id: str, config: PublishTaskConfig
    ) -> BatchResult:
        if len(records) != RECORDS_PER_REQUEST:
            raise ConfigurationError(
                f"Wrong number of messages in a publish batch: {len(records)}",
                error_code="BATCH_ARITY_ERROR",
                details={"expected": RECORDS_PER_REQUEST, "actual": len(records)},
            )

        try:
            fields = parse_json_records(records)[0]
            if not isinstance(fields, dict):
                raise NonRetryableError("Publish record must be a JSON object")
            message = self.render_message(config, fields)
            body = {
                "messages": [
                    {
                        "data": base64.b64encode(message.encode("utf-8")).decode(
                            "ascii"
                        ),
                        "attributes": self.render_attributes(config, fields),
                    }
                ]
            }
            response = await self._request(
                "POST", config.endpoint, correlation_id, body
            )
        except (RetryableError, NonRetryableError) as e:
            self.logger.error(
                f"Message {correlation_id} to {config.topic} failed: {records[0]}",
                error=e.message,
            )
            return self.failed(records, e)

        self.logger.debug(
            f"Published {records[0]} to {config.topic}",
            response=response.text[:200],
        )
        return BatchResult.success(1)


# Register the handler
HandlerFactory.register(TaskType.PUBLISH, PublishHandler)
