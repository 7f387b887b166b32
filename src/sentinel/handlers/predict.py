"""
Prediction endpoint handler.

Sends batches of records as prediction instances:

    POST <endpoint>
    {"instances": [<record>, ...], "model": "<model>"}

and expects ``{"predictions": [...]}`` back, one prediction per instance.
Individual instances rejected by the service are reported in an ``errors``
array of ``{"index": <position in batch>, "message": "..."}`` objects and
become the failed lines of the batch; the rest of the batch counts as
delivered.
"""

from typing import Any, Dict, List

from sentinel.core.exceptions.custom_exceptions import (
    HandlerError,
    NonRetryableError,
    RetryableError,
)
from sentinel.handlers.base import HandlerFactory, parse_json_records
from sentinel.handlers.http_handler import HttpSendHandler
from sentinel.tasks.config import PredictTaskConfig, TaskType
from sentinel.tasks.result import BatchResult, ErrorKind


class PredictHandler(HttpSendHandler):
    """Handler for online prediction services"""

    RECORDS_PER_REQUEST = 50
    NUMBER_OF_THREADS = 1
    QUERIES_PER_SECOND = 5.0
    RETRY_TIMES = 3

    async def send_data(
        self, records: List[str], correlation_id: str, config: PredictTaskConfig
    ) -> BatchResult:
        body: Dict[str, Any] = {}
        try:
            body["instances"] = parse_json_records(records)
            if config.model:
                body["model"] = config.model
            response = await self._request(
                "POST", config.endpoint, correlation_id, body
            )
            content = self._decode(response)
        except (RetryableError, NonRetryableError, HandlerError) as e:
            self.logger.warning(
                f"Prediction batch {correlation_id} failed: {e.message}"
            )
            return self.failed(records, e)

        return self._interpret(records, content)

    @staticmethod
    def _decode(response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise HandlerError(
                f"Invalid prediction response: {e}",
                error_code="INVALID_RESPONSE",
                details={"status": response.status_code},
            ) from e

    def _interpret(self, records: List[str], content: Any) -> BatchResult:
        if not isinstance(content, dict):
            return BatchResult.failure(records, "Prediction response is not an object")

        rejected = content.get("errors") or []
        if rejected:
            result = BatchResult(number_of_lines=len(records), result=False)
            result.error_kind = ErrorKind.NON_RETRYABLE
            for item in rejected:
                index = item.get("index") if isinstance(item, dict) else None
                message = item.get("message", "") if isinstance(item, dict) else item
                if isinstance(index, int) and 0 <= index < len(records):
                    result.errors.append(f"Instance {index}: {message}")
                    result.failed_lines.append(records[index])
                else:
                    result.errors.append(str(message))
            if not result.failed_lines:
                result.failed_lines = list(records)
            return result

        predictions = content.get("predictions")
        if not isinstance(predictions, list) or len(predictions) != len(records):
            return BatchResult.failure(
                records,
                f"Expected {len(records)} predictions, got "
                f"{len(predictions) if isinstance(predictions, list) else 'none'}",
            )
        return BatchResult.success(len(records))


# Register the handler
HandlerFactory.register(TaskType.PREDICT, PredictHandler)
