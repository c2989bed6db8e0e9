"""
Job handlers registry and implementations.

A handler is an async callable taking the claimed Job. Returning None or
a successful JobResult marks the job complete; raising, or returning an
unsuccessful JobResult, fails the attempt.

Job handlers must be idempotent - a job that fails with attempts left is
put back in the pending set and runs again, possibly on another worker.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable

from jobqueue.errors import JobFailedError
from jobqueue.store.models import Job
from jobqueue.types.job import JobResult

logger = logging.getLogger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[Job], Awaitable[JobResult | None]]

# Handler registry
_handlers: dict[str, JobHandler] = {}


def register_handler(job_type: str) -> Callable[[JobHandler], JobHandler]:
    """
    Decorator to register a job handler.

    Args:
        job_type: The job type this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler("send_email")
        async def handle_send_email(job: Job) -> JobResult:
            ...
    """
    def decorator(handler: JobHandler) -> JobHandler:
        _handlers[job_type] = handler
        logger.debug(f"Registered handler for job type: {job_type}")
        return handler
    return decorator


def get_handler(job_type: str) -> JobHandler | None:
    """
    Get the handler for a job type.

    Args:
        job_type: The job type.

    Returns:
        The handler function or None if not found.
    """
    return _handlers.get(job_type)


def list_handlers() -> list[str]:
    """List all registered job types."""
    return list(_handlers.keys())


# ============================================================================
# Built-in job handlers
# ============================================================================


@register_handler("echo")
async def handle_echo(job: Job) -> JobResult:
    """
    Echo handler for testing.

    Simply returns the job data as output.
    """
    logger.info(
        "Echo job executing",
        extra={"job_id": job.id, "attempt": job.attempts + 1}
    )

    return JobResult.ok({"echo": job.data})


@register_handler("sleep")
async def handle_sleep(job: Job) -> JobResult:
    """
    Sleep handler for testing delays.

    Data should contain:
    - duration_seconds: How long to sleep
    """
    duration = job.data.get("duration_seconds", 1)

    logger.info(
        "Sleep job starting",
        extra={"job_id": job.id, "duration": duration}
    )

    await asyncio.sleep(duration)

    return JobResult.ok({"slept_for": duration})


@register_handler("failing_job")
async def handle_failing_job(job: Job) -> JobResult:
    """
    Handler that always fails - for testing retry logic.
    """
    logger.info(
        "Failing job executing (will fail)",
        extra={"job_id": job.id, "attempt": job.attempts + 1}
    )

    return JobResult.fail(f"Intentional failure on attempt {job.attempts + 1}")


@register_handler("random_failure")
async def handle_random_failure(job: Job) -> JobResult:
    """
    Handler that randomly fails - for testing retry behavior.

    Data should contain:
    - failure_rate: Probability of failure (0.0 to 1.0)
    """
    failure_rate = job.data.get("failure_rate", 0.5)

    if random.random() < failure_rate:
        logger.warning(
            "Random failure triggered",
            extra={"job_id": job.id, "attempt": job.attempts + 1}
        )
        return JobResult.fail(f"Random failure on attempt {job.attempts + 1}")

    return JobResult.ok({"message": "Succeeded this time!"})


async def execute_job(
    handler: JobHandler,
    job: Job,
    timeout: float | None = None,
) -> JobResult:
    """
    Run a handler against a job.

    Args:
        handler: The handler to run.
        job: The claimed job.
        timeout: Optional limit in seconds on the handler's run time.

    Returns:
        The successful JobResult.

    Raises:
        JobFailedError: If the handler reported failure or timed out.
        Exception: Whatever the handler itself raised.
    """
    if timeout is not None:
        try:
            result = await asyncio.wait_for(handler(job), timeout)
        except asyncio.TimeoutError as e:
            raise JobFailedError(job.id, f"Job timed out after {timeout}s") from e
    else:
        result = await handler(job)

    if result is None:
        return JobResult.ok()

    if not result.success:
        raise JobFailedError(job.id, result.error or "Unknown error")

    return result
