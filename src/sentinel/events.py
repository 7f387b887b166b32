"""
Trigger events.

A trigger names the task to run and carries the bulk record payload as
newline-delimited records. Triggers arrive at least once, so everything they
cause downstream has to tolerate re-delivery.
"""

import base64
import binascii
import json
import uuid
from typing import Any, Dict, Iterator, Mapping

from pydantic import BaseModel, Field

from sentinel.core.config.settings import settings
from sentinel.core.exceptions.custom_exceptions import ConfigurationError


class TriggerEvent(BaseModel):
    """Opaque trigger delivered by the transport"""

    task_id: str = Field(min_length=1)
    namespace: str = Field(default_factory=lambda: settings.DEFAULT_NAMESPACE)
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    data: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)

    def records(self) -> Iterator[str]:
        """Record lines of the payload, blank lines skipped"""
        for line in self.data.splitlines():
            if line.strip():
                yield line

    @classmethod
    def from_message(cls, message: Mapping[str, Any]) -> "TriggerEvent":
        """
        Decode a queue message.

        Expected shape::

            {
                "messageId": "4711",
                "data": "<base64 newline-delimited records>",
                "attributes": {
                    "taskId": "load_users",
                    "namespace": "sentinel",
                    "parameters": "{\\"table\\": \\"users\\"}"
                }
            }

        Raises:
            ConfigurationError: When the message names no task or carries
                undecodable data or parameters
        """
        attributes = message.get("attributes") or {}
        if not isinstance(attributes, Mapping):
            raise ConfigurationError(
                "Trigger message attributes must be a mapping",
                details={"message_id": message.get("messageId")},
            )
        task_id = attributes.get("taskId")
        if not task_id:
            raise ConfigurationError(
                "Trigger message has no taskId attribute",
                details={"message_id": message.get("messageId")},
            )

        try:
            raw = base64.b64decode(message.get("data") or "", validate=True)
            data = raw.decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Undecodable trigger data: {e}") from e

        parameters = attributes.get("parameters") or {}
        if isinstance(parameters, str):
            try:
                parameters = json.loads(parameters)
            except ValueError as e:
                raise ConfigurationError(f"Invalid trigger parameters: {e}") from e
        if not isinstance(parameters, dict):
            raise ConfigurationError("Trigger parameters must be a JSON object")

        fields: Dict[str, Any] = {
            "task_id": task_id,
            "data": data,
            "parameters": parameters,
        }
        if attributes.get("namespace"):
            fields["namespace"] = attributes["namespace"]
        if message.get("messageId"):
            fields["correlation_id"] = str(message["messageId"])
        return cls(**fields)
