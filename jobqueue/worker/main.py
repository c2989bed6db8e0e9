"""
Worker process for executing jobs.

A worker claims one pending job of its type at a time, runs the handler
against it, and records the outcome:

- success: state COMPLETE, duration stored, "job complete" published
- failure: state FAILED and the error reported; the job goes back to
  INACTIVE while attempts remain, and stays FAILED otherwise

An empty pending set, a lost claim race or a claim/fetch error all wait
one poll interval before the next claim. Any processed job, whatever its
outcome, is followed immediately by the next claim.
"""

import asyncio
import logging
import os
import signal
import time
from typing import TYPE_CHECKING

from redis.asyncio import Redis

from jobqueue.config import get_settings
from jobqueue.constants import EVENT_JOB_COMPLETE, SPAN_CLAIM_JOB, SPAN_EXECUTE_JOB, JobState
from jobqueue.observability.logging import bind_context, setup_logging, unbind_context
from jobqueue.observability.metrics import get_metrics, serve_metrics
from jobqueue.observability.tracing import get_tracer, setup_tracing
from jobqueue.store.claim import ClaimStore, RedisClaimStore
from jobqueue.store.connection import close_client, create_client, get_client
from jobqueue.store.models import Job
from jobqueue.worker.handlers import JobHandler, execute_job, get_handler, list_handlers

if TYPE_CHECKING:
    from jobqueue.queue.main import Queue

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that polls one job type and executes its jobs.

    Features:
    - Race-safe claims through an optimistic WATCH/MULTI transaction
    - Attempts-based retry of failed jobs
    - Graceful stop: the job in flight finishes first
    """

    def __init__(
        self,
        queue: "Queue",
        job_type: str,
        handler: JobHandler,
        client: Redis | None = None,
        claim_store: ClaimStore | None = None,
        poll_interval: float | None = None,
        job_timeout: float | None = None,
        worker_id: str | None = None,
    ):
        """
        Initialize the worker.

        Args:
            queue: Queue receiving errors and events, and owning job records.
            job_type: The job type whose pending set is polled.
            handler: Handler run against each claimed job.
            client: Dedicated Redis client for claims. Created if omitted.
            claim_store: Claim primitive. Defaults to one backed by ``client``.
            poll_interval: Seconds to wait after an empty or failed poll.
            job_timeout: Optional handler time limit in seconds.
            worker_id: Identifier used in logs. Defaults to hostname + PID.
        """
        settings = get_settings()

        self.queue = queue
        self.job_type = job_type
        self.handler = handler
        self.worker_id = worker_id or f"{os.uname().nodename}-{os.getpid()}"

        if claim_store is None:
            if client is None:
                client = create_client()
            claim_store = RedisClaimStore(client)
        self.client = client
        self.claim_store = claim_store

        if poll_interval is None:
            poll_interval = settings.worker_poll_interval_seconds
        if poll_interval <= 0:
            raise ValueError("poll_interval must be greater than 0")
        self.poll_interval = poll_interval

        if job_timeout is None:
            job_timeout = settings.worker_job_timeout_seconds
        self.job_timeout = job_timeout

        self._running = False
        self._current_job: Job | None = None
        self._metrics = get_metrics()

    @property
    def pending_key(self) -> str:
        """Key of the pending set this worker claims from."""
        return self.queue.repository.keys.pending(self.job_type)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def current_job(self) -> Job | None:
        return self._current_job

    async def start(self) -> None:
        """Run the poll loop until stop() is called."""
        logger.info(
            "Worker starting",
            extra={"worker_id": self.worker_id, "job_type": self.job_type}
        )
        bind_context(worker_id=self.worker_id, job_type=self.job_type)

        self._running = True

        while self._running:
            try:
                processed = await self._poll_and_execute()

                # Nothing to do: wait before polling again
                if not processed:
                    await asyncio.sleep(self.poll_interval)

            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id}
                )
                await asyncio.sleep(self.poll_interval)

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """Stop the worker after the job in flight, if any."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._running = False

    def error(self, err: BaseException) -> None:
        """Report an error through the queue's error channel."""
        self._metrics.record_worker_error(self.job_type, err)
        self.queue.emit_error(err)

    async def _poll_and_execute(self) -> bool:
        """
        Run one claim/process cycle.

        Returns:
            True if a job was processed (the next claim follows
            immediately), False if the caller should wait.
        """
        try:
            job = await self.get_job()
        except Exception as e:
            self.error(e)
            return False

        if job is None:
            return False

        try:
            await self.process(job)
        except Exception as e:
            # Store error while recording the outcome
            self.error(e)
        finally:
            self._current_job = None
            unbind_context("job_id")

        return True

    async def get_job(self) -> Job | None:
        """
        Claim the next pending job and load it.

        Returns:
            The claimed job, or None when there is nothing to claim or
            the claim lost a race.

        Raises:
            redis.exceptions.RedisError: On store errors.
            JobNotFoundError: If the claimed id has no stored job.
            JobDecodeError: If the stored job is malformed.
        """
        with get_tracer().start_as_current_span(SPAN_CLAIM_JOB) as span:
            span.set_attribute("key", self.pending_key)
            member = await self.claim_store.try_claim_lowest_rank(self.pending_key)
        if member is None:
            return None

        self._metrics.record_job_claimed(self.job_type)

        return await self.queue.repository.get_job(member)

    async def process(self, job: Job) -> None:
        """
        Process a claimed job.

        Handles the lifecycle:
        1. Transition to ACTIVE
        2. Run the handler
        3. Mark as COMPLETE, or hand over to failed()

        Args:
            job: The claimed job.
        """
        repo = self.queue.repository
        start_time = time.monotonic()

        self._current_job = job
        bind_context(job_id=job.id)

        await repo.set_state(job, JobState.ACTIVE)

        logger.info(
            "Executing job",
            extra={"job_id": job.id, "attempt": job.attempts + 1}
        )

        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("job_id", job.id)
                span.set_attribute("job_type", job.type)
                span.set_attribute("attempt", job.attempts + 1)

                result = await execute_job(self.handler, job, timeout=self.job_timeout)
        except Exception as e:
            await self.failed(job, e, time.monotonic() - start_time)
            return

        duration = time.monotonic() - start_time

        await repo.set_state(job, JobState.COMPLETE)
        await repo.set_field(job, "duration", int(duration * 1000))
        if result.output is not None:
            await repo.set_field(job, "result", result.output)

        logger.info(
            "Job completed successfully",
            extra={"job_id": job.id, "duration": f"{duration:.2f}s"}
        )

        self._metrics.record_job_completed(
            job_type=job.type,
            status=JobState.COMPLETE,
            duration_seconds=duration,
        )

        self.queue.emit_event(EVENT_JOB_COMPLETE, job)

    async def failed(self, job: Job, err: BaseException, duration: float = 0.0) -> None:
        """
        Handle a failed attempt.

        The job is marked FAILED and the error reported. It then goes back
        to INACTIVE if attempts remain, or stays FAILED otherwise.

        Args:
            job: The job whose handler failed.
            err: The failure.
            duration: Seconds spent on the attempt.
        """
        repo = self.queue.repository

        try:
            await repo.set_state(job, JobState.FAILED)
            await repo.set_field(job, "error", str(err))
        finally:
            self.error(err)

        try:
            remaining, used, max_attempts = await repo.attempts(job)
        except Exception as e:
            self.error(e)
            return

        if remaining:
            await repo.set_state(job, JobState.INACTIVE)
        else:
            await repo.set_state(job, JobState.FAILED)

        logger.warning(
            "Job failed",
            extra={
                "job_id": job.id,
                "error": str(err),
                "attempt": used,
                "max_attempts": max_attempts,
                "will_retry": bool(remaining),
            }
        )

        self._metrics.record_job_completed(
            job_type=job.type,
            status="retried" if remaining else JobState.FAILED,
            duration_seconds=duration,
        )


async def run_async() -> None:
    """Run workers for every configured job type until signalled."""
    # Imported here: the queue module imports this one
    from jobqueue.queue.main import Queue

    settings = get_settings()
    setup_logging()
    setup_tracing()

    if settings.prometheus_enabled:
        serve_metrics(settings.prometheus_port)

    job_types = settings.worker_job_types or list_handlers()

    queue = Queue(client=get_client())

    for job_type in job_types:
        handler = get_handler(job_type)
        if handler is None:
            logger.error(f"No handler registered for job type: {job_type}")
            continue
        queue.process(job_type, handler, concurrency=settings.worker_concurrency)

    # Handle shutdown signals
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        await queue.shutdown()
        await close_client()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
