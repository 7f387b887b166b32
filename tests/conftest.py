"""
Pytest configuration and fixtures for Sentinel tests
"""

import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest

from sentinel.core.config.settings import Settings
from sentinel.handlers.base import BaseHandler
from sentinel.tasks.config import TaskConfig
from sentinel.tasks.result import BatchResult, ErrorKind
from sentinel.tasks.store import InMemoryTaskConfigStore


class FakeClock:
    """Monotonic clock whose sleeps advance time instead of waiting"""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        target = self.now + seconds
        await asyncio.sleep(0)
        self.now = max(self.now, target)


class ScriptedHandler(BaseHandler):
    """
    Handler replaying scripted outcomes per batch.

    ``script`` maps a task id, or the first record of a batch, to the
    outcomes of successive attempts; batches without a script, or past the
    end of it, succeed. ``delays`` holds per-task seconds to wait before
    each send.
    """

    RECORDS_PER_REQUEST = 2
    NUMBER_OF_THREADS = 1
    QUERIES_PER_SECOND = 1000.0
    RETRY_TIMES = 3

    def __init__(self, settings=None, script=None, delays=None):
        super().__init__(settings)
        self.delays: Dict[str, float] = dict(delays or {})
        self.script: Dict[str, List[Any]] = {
            key: list(outcomes) for key, outcomes in (script or {}).items()
        }
        self.calls: List[List[str]] = []
        self.configs: List[TaskConfig] = []
        self.attempts: Dict[str, int] = defaultdict(int)

    async def send_data(
        self, records: List[str], correlation_id: str, config: TaskConfig
    ) -> BatchResult:
        if config.id in self.delays:
            await asyncio.sleep(self.delays[config.id])
        self.calls.append(list(records))
        self.configs.append(config)
        self.attempts[records[0]] += 1
        key = config.id if config.id in self.script else records[0]
        outcomes = self.script.get(key)
        if outcomes:
            outcome = outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            if isinstance(outcome, ErrorKind):
                return BatchResult.failure(records, f"{outcome.value} failure", outcome)
            return outcome
        return BatchResult.success(len(records))


class HandlerProvider:
    """handler_factory stand-in handing out ScriptedHandlers"""

    def __init__(
        self,
        script: Optional[Dict[str, List[Any]]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.script = script or {}
        self.delays = delays or {}
        self.handlers: List[ScriptedHandler] = []

    def __call__(self, task_type, settings=None) -> ScriptedHandler:
        handler = ScriptedHandler(
            settings=settings, script=self.script, delays=self.delays
        )
        self.handlers.append(handler)
        return handler

    @property
    def calls(self) -> List[List[str]]:
        return [call for handler in self.handlers for call in handler.calls]


@pytest.fixture
def handler_provider():
    """Factory of scripted handler providers"""
    return HandlerProvider


@pytest.fixture
def test_settings() -> Settings:
    """Settings with zero backoff so retries do not wait"""
    return Settings(
        ENVIRONMENT="testing",
        DEBUG=True,
        LOG_LEVEL="DEBUG",
        RETRY_BACKOFF_SECONDS=0.0,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def records() -> List[str]:
    """Five newline-delimited JSON records"""
    return [f'{{"id": {i}, "user_id": "u{i}"}}' for i in range(1, 6)]


@pytest.fixture
def store() -> InMemoryTaskConfigStore:
    return InMemoryTaskConfigStore()


@pytest.fixture
def sample_task_documents() -> Dict[str, Dict[str, Any]]:
    """A predict task fanning out to two http tasks"""
    return {
        "score": {
            "type": "predict",
            "endpoint": "https://ml.example.com/v1/models/churn:predict",
            "recordsPerRequest": 2,
            "errorOptions": {"retryTimes": 2, "ignoreError": False},
            "next": "A,B",
        },
        "A": {"type": "http", "url": "https://a.example.com/ingest"},
        "B": {"type": "http", "url": "https://b.example.com/ingest"},
    }
