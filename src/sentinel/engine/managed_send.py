"""
Managed send engine.

This module turns a bulk record payload into individually paced, retried
requests. It works purely in terms of a per-batch send function that
satisfies the handler contract and knows nothing about the integration
behind it.

Algorithm:
    1. Partition the records into consecutive batches of exactly
       ``records_per_request`` records; only the last batch may be shorter.
    2. Start ``number_of_threads`` lanes that pull batches from one shared
       iterator.
    3. Before every request (retries included) a lane reserves an issue
       slot from the invocation's RateLimiter, so all lanes together stay
       within ``qps``.
    4. A retryable failure is issued again up to ``retry_times`` times;
       retry k waits k backoff units first. Any other failure is recorded
       at once, without consuming the retry budget.
    5. The per-batch results are aggregated into one invocation result.

Failure Semantics:
    - A failed batch never stops its siblings.
    - A configuration fault (for example a batch the integration cannot
      accept because of its fixed arity) aborts the invocation: lanes stop
      taking new batches, batches already in flight finish, and the
      ConfigurationError is raised from ``run()``.
    - There is no mid-batch cancellation.

Example:
    >>> engine = ManagedSend(SpeedOptions(2, 2, 10.0), retry_times=3)
    >>> result = await engine.run(lines, send_batch, correlation_id="msg-1")
    >>> print(result.number_of_lines, result.result, result.failed_lines)
"""

import asyncio
from itertools import islice
from typing import Awaitable, Callable, Iterable, Iterator, List, Optional, Tuple

from sentinel.core.config.settings import settings
from sentinel.core.exceptions.custom_exceptions import ConfigurationError
from sentinel.core.logging.logger import add_correlation_id
from sentinel.engine.rate_limiter import RateLimiter
from sentinel.handlers.base import SpeedOptions, classify_failure, should_retry
from sentinel.tasks.result import BatchResult, ErrorKind

SendBatchFn = Callable[[List[str], int], Awaitable[BatchResult]]


def partition(records: Iterable[str], size: int) -> Iterator[List[str]]:
    """Lazily split records into consecutive batches of ``size``"""
    if size < 1:
        raise ConfigurationError(f"Batch size must be at least 1, got {size}")
    iterator = iter(records)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


class ManagedSend:
    """
    Batching, pacing and retry engine for one invocation.

    Retry counters and the rate limiter live on the instance; create one
    ManagedSend per invocation and drop it afterwards.

    Args:
        speed_options: Records per request, lanes and requests per second
        retry_times: Retries allowed for a batch failing retryably
        backoff_seconds: Length of one backoff unit, defaults to the
            RETRY_BACKOFF_SECONDS setting
        rate_limiter: Pacer shared by the lanes, defaults to one built from
            ``speed_options.qps``
        sleep: Coroutine used for backoff waits
    """

    def __init__(
        self,
        speed_options: SpeedOptions,
        retry_times: int,
        backoff_seconds: Optional[float] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if retry_times < 0:
            raise ConfigurationError(f"retry_times must be >= 0, got {retry_times}")
        self.speed_options = speed_options
        self.retry_times = retry_times
        self.backoff_seconds = (
            settings.RETRY_BACKOFF_SECONDS
            if backoff_seconds is None
            else backoff_seconds
        )
        self.rate_limiter = rate_limiter or RateLimiter(speed_options.qps)
        self.sleep = sleep
        self._aborted = False

    async def run(
        self,
        records: Iterable[str],
        send_fn: SendBatchFn,
        correlation_id: str = "",
    ) -> BatchResult:
        """
        Send all records and return the aggregated result.

        Raises:
            ConfigurationError: When a batch hits a configuration fault
        """
        logger = add_correlation_id(correlation_id, __name__)
        batches = enumerate(partition(records, self.speed_options.records_per_request))
        results: List[BatchResult] = []

        lanes = [
            self._lane(lane_id, batches, send_fn, results, correlation_id)
            for lane_id in range(self.speed_options.number_of_threads)
        ]
        outcomes = await asyncio.gather(*lanes, return_exceptions=True)

        errors = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        for error in errors:
            if isinstance(error, ConfigurationError):
                raise error
        if errors:
            raise errors[0]

        aggregated = BatchResult.aggregate(results)
        logger.info(
            f"Sent {aggregated.number_of_lines} records in {len(results)} batches",
            result=aggregated.result,
            failed_lines=len(aggregated.failed_lines),
        )
        return aggregated

    async def _lane(
        self,
        lane_id: int,
        batches: Iterator[Tuple[int, List[str]]],
        send_fn: SendBatchFn,
        results: List[BatchResult],
        correlation_id: str,
    ) -> None:
        # The iterator is shared; each next() hands a batch to exactly one lane
        for batch_id, batch in batches:
            if self._aborted:
                return
            results.append(
                await self._send_batch(batch_id, batch, send_fn, correlation_id)
            )

    async def _send_batch(
        self,
        batch_id: int,
        batch: List[str],
        send_fn: SendBatchFn,
        correlation_id: str,
    ) -> BatchResult:
        logger = add_correlation_id(correlation_id, __name__).bind(batch_id=batch_id)
        retries_used = 0
        errors: List[str] = []

        while True:
            await self.rate_limiter.acquire()
            try:
                outcome = await send_fn(batch, batch_id)
            except ConfigurationError:
                self._aborted = True
                raise
            except Exception as e:
                outcome = BatchResult.failure(
                    batch, getattr(e, "message", None) or str(e), classify_failure(e)
                )

            if outcome.result:
                return BatchResult(
                    number_of_lines=len(batch), result=True, batch_id=batch_id
                )

            kind = outcome.error_kind or ErrorKind.NON_RETRYABLE
            if kind is ErrorKind.CONFIGURATION:
                self._aborted = True
                raise ConfigurationError(
                    f"Batch {batch_id} hit a configuration fault: "
                    f"{'; '.join(outcome.errors)}",
                    details={"batch_id": batch_id, "correlation_id": correlation_id},
                )

            errors.extend(outcome.errors or [f"Batch {batch_id} failed"])
            if not should_retry(kind, retries_used, self.retry_times):
                logger.error(
                    f"Batch {batch_id} failed after {retries_used} retries",
                    error_kind=kind.value,
                    errors=errors,
                )
                return BatchResult(
                    number_of_lines=len(batch),
                    result=False,
                    errors=errors,
                    failed_lines=list(outcome.failed_lines) or list(batch),
                    error_kind=kind,
                    batch_id=batch_id,
                )

            retries_used += 1
            wait_time = retries_used * self.backoff_seconds
            logger.warning(
                f"Retrying batch {batch_id} in {wait_time}s "
                f"({retries_used}/{self.retry_times})",
                error=errors[-1],
            )
            await self.sleep(wait_time)
