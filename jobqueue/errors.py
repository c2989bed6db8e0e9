"""
Exception hierarchy for the job queue.

JobQueueError
├── JobNotFoundError   : no job hash stored for the id
├── JobDecodeError     : job hash present but its fields are malformed
└── JobFailedError     : a handler reported failure
"""


class JobQueueError(Exception):
    """Base class for all job queue exceptions."""


class JobNotFoundError(JobQueueError):
    """Raised when a job id has no stored job."""

    def __init__(self, job_id: int | str) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id!r} does not exist")


class JobDecodeError(JobQueueError):
    """Raised when a stored job cannot be decoded."""

    def __init__(self, job_id: int | str, reason: str) -> None:
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Job {job_id!r} could not be decoded: {reason}")


class JobFailedError(JobQueueError):
    """
    Raised on behalf of a handler that reported failure.

    Carries the handler's error message so it can be stored on the job
    and reported through the queue's error channel.
    """

    def __init__(self, job_id: int, message: str) -> None:
        self.job_id = job_id
        self.message = message
        super().__init__(message)
