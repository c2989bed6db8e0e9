"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobState(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - INACTIVE -> ACTIVE (claimed by a worker)
    - ACTIVE -> COMPLETE (handler succeeded)
    - ACTIVE -> FAILED (handler failed)
    - FAILED -> INACTIVE (attempts remain, job is re-queued)
    """

    INACTIVE = "inactive"
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed"


class JobPriority(StrEnum):
    """Job priority levels for queue ordering."""

    LOW = "low"
    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Sorted-set scores (lower = claimed first)
PRIORITY_SCORES: dict[JobPriority, int] = {
    JobPriority.LOW: 10,
    JobPriority.NORMAL: 0,
    JobPriority.MEDIUM: -5,
    JobPriority.HIGH: -10,
    JobPriority.CRITICAL: -15,
}

# Width of zero-padded ids stored as sorted-set members, so equal scores
# sort in creation order.
MEMBER_ID_WIDTH = 12

# Queue event names
EVENT_ERROR = "error"
EVENT_JOB_COMPLETE = "job complete"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_CREATED = "jobs_created_total"
METRIC_JOBS_CLAIMED = "jobs_claimed_total"
METRIC_CLAIM_CONFLICTS = "claim_conflicts_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_WORKER_ERRORS = "worker_errors_total"

# Trace span names
SPAN_CLAIM_JOB = "claim_job"
SPAN_EXECUTE_JOB = "execute_job"


def format_member(job_id: int) -> str:
    """Format a job id as a sorted-set member."""
    return f"{job_id:0{MEMBER_ID_WIDTH}d}"


def parse_member(member: str) -> int:
    """Parse a sorted-set member back into a job id."""
    return int(member)
