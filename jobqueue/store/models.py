"""
Job model stored as a Redis hash.

Each job lives at ``<prefix>:job:<id>`` with one hash field per attribute.
Structured values (``data``, ``result``) are JSON-encoded.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any

from jobqueue.constants import JobState
from jobqueue.errors import JobDecodeError


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class Job:
    """
    A unit of work of a given type.

    The worker never mutates these fields directly; state changes go
    through JobRepository so the Redis indexes stay in sync.
    """

    id: int
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    priority: int = 0
    state: JobState = JobState.INACTIVE
    attempts: int = 0
    max_attempts: int = 1
    duration: int | None = None
    error: str | None = None
    result: dict[str, Any] | None = None
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    @property
    def remaining_attempts(self) -> int:
        """Attempts left according to the last known counters."""
        return max(0, self.max_attempts - self.attempts)

    def to_hash(self) -> dict[str, str]:
        """Encode the job as Redis hash fields."""
        fields = {
            "id": str(self.id),
            "type": self.type,
            "data": json.dumps(self.data),
            "priority": str(self.priority),
            "state": str(self.state),
            "attempts": str(self.attempts),
            "max_attempts": str(self.max_attempts),
            "created_at": str(self.created_at),
            "updated_at": str(self.updated_at),
        }
        if self.duration is not None:
            fields["duration"] = str(self.duration)
        if self.error is not None:
            fields["error"] = self.error
        if self.result is not None:
            fields["result"] = json.dumps(self.result)
        return fields

    @classmethod
    def from_hash(cls, job_id: int, fields: dict[str, str]) -> "Job":
        """
        Decode a job from its Redis hash fields.

        Raises:
            JobDecodeError: If a required field is missing or malformed.
        """
        try:
            duration = fields.get("duration")
            result = fields.get("result")
            return cls(
                id=job_id,
                type=fields["type"],
                data=json.loads(fields.get("data") or "{}"),
                priority=int(fields.get("priority", 0)),
                state=JobState(fields.get("state", JobState.INACTIVE)),
                attempts=int(fields.get("attempts", 0)),
                max_attempts=int(fields.get("max_attempts", 1)),
                duration=int(duration) if duration is not None else None,
                error=fields.get("error"),
                result=json.loads(result) if result is not None else None,
                created_at=int(fields.get("created_at", 0)),
                updated_at=int(fields.get("updated_at", 0)),
            )
        except KeyError as e:
            raise JobDecodeError(job_id, f"missing field {e}") from e
        except ValueError as e:
            # json.JSONDecodeError is a ValueError too
            raise JobDecodeError(job_id, str(e)) from e
