"""
HTTP integration handler.

This module provides the shared HTTP plumbing of the reference handlers and
a generic handler that POSTs record batches as JSON arrays to an endpoint.

Key Features:
    - One httpx.AsyncClient per invocation, opened and closed by the
      handler's async context manager
    - Status code classification into retryable and permanent failures
    - Correlation id forwarded in the ``X-Correlation-Id`` header

Failure Classification:
    429, 5xx, timeouts and transport errors: RetryableError
    Other 4xx: NonRetryableError
    Invalid JSON records: NonRetryableError

Example Configuration:
    >>> document = {
    ...     "type": "http",
    ...     "url": "https://api.example.com/v1/${table}/records",
    ...     "recordsPerRequest": 200,
    ...     "numberOfThreads": 4,
    ...     "qps": 10,
    ... }
"""

from typing import Any, Dict, List, Optional

import httpx

from sentinel.core.config.settings import Settings
from sentinel.core.exceptions.custom_exceptions import (
    NonRetryableError,
    RetryableError,
)
from sentinel.handlers.base import BaseHandler, HandlerFactory, parse_json_records
from sentinel.tasks.config import HttpTaskConfig, TaskType
from sentinel.tasks.result import BatchResult

RETRYABLE_STATUS_CODES = {408, 429}


class HttpSendHandler(BaseHandler):
    """
    Base class for handlers talking to an HTTP API.

    A client can be injected (tests pass one built on httpx.MockTransport);
    otherwise ``connect()`` creates one and ``disconnect()`` closes it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(settings)
        self.client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.HTTP_TIMEOUT_SECONDS),
                limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
                follow_redirects=True,
            )
            self._owns_client = True

    async def disconnect(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def _request(
        self,
        method: str,
        url: str,
        correlation_id: str,
        json_data: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Issue one request and classify a failed response.

        Raises:
            RetryableError: On throttling, server errors and transport errors
            NonRetryableError: On any other unsuccessful status
        """
        if self.client is None:
            await self.connect()

        request_headers = {**(headers or {}), "X-Correlation-Id": correlation_id}
        try:
            response = await self.client.request(
                method, url, json=json_data, headers=request_headers
            )
        except httpx.TransportError as e:
            raise RetryableError(
                f"Request to {url} failed: {e}",
                error_code="HTTP_TRANSPORT_ERROR",
                details={"url": url},
            ) from e

        if response.is_success:
            return response

        message = f"HTTP {response.status_code}: {response.text}"
        details = {"url": url, "status_code": response.status_code}
        if (
            response.status_code in RETRYABLE_STATUS_CODES
            or response.status_code >= 500
        ):
            raise RetryableError(
                message, error_code=f"HTTP_{response.status_code}", details=details
            )
        raise NonRetryableError(
            message, error_code=f"HTTP_{response.status_code}", details=details
        )


class HttpHandler(HttpSendHandler):
    """Sends each batch as a JSON array in one request"""

    RECORDS_PER_REQUEST = 100
    NUMBER_OF_THREADS = 1
    QUERIES_PER_SECOND = 10.0
    RETRY_TIMES = 3

    async def send_data(
        self, records: List[str], correlation_id: str, config: HttpTaskConfig
    ) -> BatchResult:
        try:
            payload = parse_json_records(records)
            await self._request(
                config.method, config.url, correlation_id, payload, config.headers
            )
        except (RetryableError, NonRetryableError) as e:
            self.logger.warning(
                f"Batch {correlation_id} to {config.url} failed: {e.message}",
                error_code=e.error_code,
            )
            return self.failed(records, e)

        self.logger.debug(f"Sent {len(records)} records to {config.url}")
        return BatchResult.success(len(records))


# Register the handler
HandlerFactory.register(TaskType.HTTP, HttpHandler)
