"""
Pytest configuration and shared fixtures.
"""

from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer
from redis.asyncio import Redis

from jobqueue.config import Settings
from jobqueue.constants import EVENT_ERROR, EVENT_JOB_COMPLETE
from jobqueue.queue.main import Queue
from jobqueue.store.repository import JobRepository
from jobqueue.worker.handlers import JobHandler
from jobqueue.worker.main import Worker

TEST_PREFIX = "test"


class EventRecorder:
    """Collects what a queue publishes on its error and completion channels."""

    def __init__(self, queue: Queue):
        self.errors: list[BaseException] = []
        self.completed: list[Any] = []
        queue.on(EVENT_ERROR, self.errors.append)
        queue.on(EVENT_JOB_COMPLETE, self.completed.append)


@pytest.fixture
def redis_server() -> FakeServer:
    """A fresh in-memory Redis server per test."""
    return FakeServer()


@pytest.fixture
def client_factory(redis_server: FakeServer) -> Callable[[], Redis]:
    """Create independent clients (separate connections) to one server."""
    def factory() -> Redis:
        return FakeAsyncRedis(server=redis_server, decode_responses=True)
    return factory


@pytest_asyncio.fixture
async def redis_client(client_factory) -> AsyncGenerator[Redis]:
    """Create a Redis client for tests."""
    client = client_factory()
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def repo(redis_client: Redis) -> JobRepository:
    """Create a repository instance."""
    return JobRepository(redis_client, prefix=TEST_PREFIX)


@pytest_asyncio.fixture
async def queue(redis_client: Redis, client_factory) -> AsyncGenerator[Queue]:
    """Create a queue sharing the test server."""
    queue = Queue(
        client=redis_client,
        client_factory=client_factory,
        prefix=TEST_PREFIX,
    )
    yield queue
    await queue.shutdown()


@pytest.fixture
def recorder(queue: Queue) -> EventRecorder:
    """Record errors and completions published by the queue."""
    return EventRecorder(queue)


@pytest_asyncio.fixture
async def make_worker(queue: Queue, client_factory) -> AsyncGenerator[Callable[..., Worker]]:
    """Build workers bound to the test queue, each with its own client."""
    clients: list[Redis] = []

    def factory(job_type: str, handler: JobHandler, **kwargs: Any) -> Worker:
        if "client" not in kwargs and "claim_store" not in kwargs:
            kwargs["client"] = client_factory()
            clients.append(kwargs["client"])
        kwargs.setdefault("poll_interval", 0.01)
        return Worker(queue, job_type, handler, **kwargs)

    yield factory

    for client in clients:
        await client.aclose()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        redis_url="redis://localhost:6379/15",
        queue_key_prefix=TEST_PREFIX,
        log_level="DEBUG",
        log_format="console",
        worker_poll_interval_seconds=0.01,
        prometheus_enabled=False,
    )
