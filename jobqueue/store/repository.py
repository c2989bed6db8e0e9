"""
Job repository for Redis operations.
Implements the data access patterns for job management.
"""

import json
import logging
from typing import Any

from redis.asyncio import Redis

from jobqueue.config import get_settings
from jobqueue.constants import (
    PRIORITY_SCORES,
    JobPriority,
    JobState,
    format_member,
    parse_member,
)
from jobqueue.errors import JobNotFoundError
from jobqueue.store.models import Job, now_ms

logger = logging.getLogger(__name__)


class JobKeys:
    """Builds the Redis keys used for jobs under a prefix."""

    def __init__(self, prefix: str):
        self.prefix = prefix

    @property
    def ids(self) -> str:
        return f"{self.prefix}:ids"

    @property
    def types(self) -> str:
        return f"{self.prefix}:job:types"

    @property
    def all_jobs(self) -> str:
        return f"{self.prefix}:jobs"

    def job(self, job_id: int) -> str:
        return f"{self.prefix}:job:{job_id}"

    def state(self, state: JobState | str) -> str:
        return f"{self.prefix}:jobs:{state}"

    def typed_state(self, job_type: str, state: JobState | str) -> str:
        return f"{self.prefix}:jobs:{job_type}:{state}"

    def pending(self, job_type: str) -> str:
        """The pending set workers claim from."""
        return self.typed_state(job_type, JobState.INACTIVE)


class JobRepository:
    """
    Repository for job operations.

    Implements:
    - Job creation, entering the pending set of its type
    - Fetch by id
    - State transitions that keep the state indexes consistent
    - Attempts accounting
    """

    def __init__(self, client: Redis, prefix: str | None = None):
        """
        Initialize the repository with a Redis client.

        Args:
            client: The async Redis client.
            prefix: Key prefix. Defaults to the configured prefix.
        """
        self._client = client
        self._settings = get_settings()
        self.keys = JobKeys(prefix or self._settings.queue_key_prefix)

    async def create_job(
        self,
        job_type: str,
        data: dict[str, Any] | None = None,
        priority: JobPriority | int = JobPriority.NORMAL,
        max_attempts: int | None = None,
    ) -> Job:
        """
        Create a new job and place it in the pending set of its type.

        Args:
            job_type: The job type.
            data: JSON-serializable job data.
            priority: Priority level or raw score (lower runs first).
            max_attempts: Maximum attempts. Defaults to the configured value.

        Returns:
            The created Job in state INACTIVE.
        """
        if isinstance(priority, JobPriority):
            score = PRIORITY_SCORES[priority]
        else:
            score = int(priority)

        if max_attempts is None:
            max_attempts = self._settings.default_max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        job_id = await self._client.incr(self.keys.ids)
        job = Job(
            id=job_id,
            type=job_type,
            data=data or {},
            priority=score,
            max_attempts=max_attempts,
        )

        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hset(self.keys.job(job.id), mapping=job.to_hash())
            pipe.sadd(self.keys.types, job_type)
            await pipe.execute()

        await self.set_state(job, JobState.INACTIVE)

        logger.info(
            "Created new job",
            extra={"job_id": job.id, "job_type": job_type, "priority": score}
        )
        return job

    async def get_job(self, job_id: int | str) -> Job:
        """
        Get a job by id.

        Args:
            job_id: The job id, or its sorted-set member form.

        Returns:
            The Job.

        Raises:
            JobNotFoundError: If no job is stored under the id.
            JobDecodeError: If the stored job is malformed.
        """
        try:
            job_id = parse_member(str(job_id))
        except ValueError as e:
            raise JobNotFoundError(job_id) from e

        fields = await self._client.hgetall(self.keys.job(job_id))
        if not fields:
            raise JobNotFoundError(job_id)

        return Job.from_hash(job_id, fields)

    async def set_state(self, job: Job, state: JobState) -> Job:
        """
        Move a job to a new state.

        The job is removed from every other state index and added to the
        indexes of the new state in a single transaction. Entering
        INACTIVE places it back in the pending set of its type.

        Args:
            job: The job.
            state: The new state.

        Returns:
            The job, updated in place.
        """
        member = format_member(job.id)
        updated_at = now_ms()

        async with self._client.pipeline(transaction=True) as pipe:
            for other in JobState:
                if other == state:
                    continue
                pipe.zrem(self.keys.state(other), member)
                pipe.zrem(self.keys.typed_state(job.type, other), member)
            pipe.zadd(self.keys.all_jobs, {member: job.priority})
            pipe.zadd(self.keys.state(state), {member: job.priority})
            pipe.zadd(self.keys.typed_state(job.type, state), {member: job.priority})
            pipe.hset(
                self.keys.job(job.id),
                mapping={"state": str(state), "updated_at": str(updated_at)},
            )
            await pipe.execute()

        job.state = state
        job.updated_at = updated_at

        logger.debug(
            "Job state changed",
            extra={"job_id": job.id, "job_type": job.type, "state": str(state)}
        )
        return job

    async def attempts(self, job: Job) -> tuple[int, int, int]:
        """
        Record an attempt and report what is left.

        Increments the used-attempts counter. A job without a stored
        maximum is given a maximum of 1.

        Args:
            job: The job.

        Returns:
            Tuple of (remaining, used, max).
        """
        key = self.keys.job(job.id)

        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hsetnx(key, "max_attempts", 1)
            pipe.hget(key, "max_attempts")
            pipe.hincrby(key, "attempts", 1)
            _, max_attempts, used = await pipe.execute()

        max_attempts = int(max_attempts)
        used = int(used)
        remaining = max(0, max_attempts - used)

        job.attempts = used
        job.max_attempts = max_attempts

        return remaining, used, max_attempts

    async def set_field(self, job: Job, name: str, value: Any) -> None:
        """
        Set a single field on a job.

        Dicts and lists are stored as JSON; other values as strings.
        """
        if isinstance(value, (dict, list)):
            encoded = json.dumps(value)
        else:
            encoded = str(value)
        await self._client.hset(self.keys.job(job.id), name, encoded)

        if hasattr(job, name):
            setattr(job, name, value)

    async def get_field(self, job: Job, name: str) -> str | None:
        """Get the raw value of a single job field."""
        return await self._client.hget(self.keys.job(job.id), name)

    async def count(self, state: JobState, job_type: str | None = None) -> int:
        """
        Count jobs in a state.

        Args:
            state: The state.
            job_type: Optional job type filter.

        Returns:
            Number of jobs in the state.
        """
        if job_type is None:
            key = self.keys.state(state)
        else:
            key = self.keys.typed_state(job_type, state)
        return await self._client.zcard(key)

    async def job_types(self) -> list[str]:
        """List every job type ever created."""
        return sorted(await self._client.smembers(self.keys.types))

    async def remove_job(self, job: Job) -> None:
        """Delete a job and all of its index entries."""
        member = format_member(job.id)

        async with self._client.pipeline(transaction=True) as pipe:
            pipe.zrem(self.keys.all_jobs, member)
            for state in JobState:
                pipe.zrem(self.keys.state(state), member)
                pipe.zrem(self.keys.typed_state(job.type, state), member)
            pipe.delete(self.keys.job(job.id))
            await pipe.execute()

        logger.info("Removed job", extra={"job_id": job.id, "job_type": job.type})
