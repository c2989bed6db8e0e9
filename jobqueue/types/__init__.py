"""
Type definitions for the job queue.
"""

from jobqueue.types.job import JobResult

__all__ = [
    "JobResult",
]
