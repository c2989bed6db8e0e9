"""
Queue: creates jobs, runs workers and carries their notifications.

Workers report through two channels on the queue:
- ``emit_error(err)`` publishes "error"; unobserved errors are logged
- ``emit_event(name, payload)`` publishes lifecycle events such as
  "job complete"

Both are fire-and-forget, a worker never waits on a listener.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from redis.asyncio import Redis

from jobqueue.config import get_settings
from jobqueue.constants import EVENT_ERROR, JobPriority, JobState
from jobqueue.observability.metrics import get_metrics
from jobqueue.queue.events import EventBus, EventListener
from jobqueue.store.connection import create_client
from jobqueue.store.models import Job
from jobqueue.store.repository import JobRepository
from jobqueue.worker.handlers import JobHandler
from jobqueue.worker.main import Worker

logger = logging.getLogger(__name__)


class Queue:
    """
    Job queue backed by Redis.

    Example:
        queue = Queue()
        queue.on("job complete", lambda job: print(job.id, job.duration))
        await queue.create_job("email", {"to": "a@example.com"})
        queue.process("email", send_email, concurrency=2)
        ...
        await queue.shutdown()
    """

    def __init__(
        self,
        client: Redis | None = None,
        client_factory: Callable[[], Redis] | None = None,
        prefix: str | None = None,
    ):
        """
        Initialize the queue.

        Args:
            client: Client for job records. Created from the factory if omitted.
            client_factory: Creates clients; each worker gets its own.
                Defaults to create_client().
            prefix: Redis key prefix. Defaults to the configured prefix.
        """
        self._settings = get_settings()
        self._client_factory = client_factory or create_client
        self._owns_client = client is None

        self.client = client if client is not None else self._client_factory()
        self.repository = JobRepository(self.client, prefix)
        self.events = EventBus()

        self._workers: list[Worker] = []
        self._tasks: list[asyncio.Task] = []
        self._metrics = get_metrics()

    async def __aenter__(self) -> "Queue":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    @property
    def workers(self) -> list[Worker]:
        return list(self._workers)

    def on(self, event: str, listener: EventListener) -> "Queue":
        """Subscribe to a queue event. Returns the queue for chaining."""
        self.events.subscribe(event, listener)
        return self

    def off(self, event: str, listener: EventListener) -> "Queue":
        """Unsubscribe from a queue event."""
        self.events.unsubscribe(event, listener)
        return self

    def emit_error(self, err: BaseException) -> None:
        """Publish an error. Logged when nothing listens for errors."""
        if not self.events.has_listeners(EVENT_ERROR):
            logger.error(f"Unhandled queue error: {err}", exc_info=err)
            return
        self.events.publish(EVENT_ERROR, err)

    def emit_event(self, name: str, payload: Any) -> None:
        """Publish a lifecycle event."""
        self.events.publish(name, payload)

    async def create_job(
        self,
        job_type: str,
        data: dict[str, Any] | None = None,
        priority: JobPriority | int = JobPriority.NORMAL,
        max_attempts: int | None = None,
    ) -> Job:
        """Create a job in the pending set of its type."""
        job = await self.repository.create_job(
            job_type=job_type,
            data=data,
            priority=priority,
            max_attempts=max_attempts,
        )
        self._metrics.record_job_created(job_type)
        return job

    async def get_job(self, job_id: int | str) -> Job:
        """Fetch a job by id."""
        return await self.repository.get_job(job_id)

    async def count(self, state: JobState, job_type: str | None = None) -> int:
        """Count jobs in a state, optionally for one type."""
        count = await self.repository.count(state, job_type)
        if state == JobState.INACTIVE and job_type is not None:
            self._metrics.update_queue_depth(job_type, count)
        return count

    def process(
        self,
        job_type: str,
        handler: JobHandler,
        concurrency: int = 1,
        poll_interval: float | None = None,
    ) -> list[Worker]:
        """
        Start workers for a job type.

        Must be called from a running event loop. Each worker runs as its
        own task with its own Redis client.

        Args:
            job_type: The job type to process.
            handler: Handler run against each job.
            concurrency: Number of workers to start.
            poll_interval: Seconds to wait after an empty poll.

        Returns:
            The started workers.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        started = []
        for _ in range(concurrency):
            worker_id = f"{job_type}-{len(self._workers) + 1}"
            worker = Worker(
                queue=self,
                job_type=job_type,
                handler=handler,
                client=self._client_factory(),
                poll_interval=poll_interval,
                worker_id=worker_id,
            )
            task = asyncio.create_task(worker.start(), name=f"worker:{worker_id}")
            self._workers.append(worker)
            self._tasks.append(task)
            started.append(worker)

        logger.info(
            "Started workers",
            extra={"job_type": job_type, "concurrency": concurrency}
        )
        return started

    async def shutdown(self) -> None:
        """
        Stop all workers, wait for jobs in flight, and close clients.
        """
        for worker in self._workers:
            await worker.stop()

        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} workers to stop")
            await asyncio.gather(*self._tasks, return_exceptions=True)

        for worker in self._workers:
            if worker.client is not None:
                await worker.client.aclose()

        await self.events.drain()

        if self._owns_client:
            await self.client.aclose()

        self._workers.clear()
        self._tasks.clear()
        logger.info("Queue shut down")
