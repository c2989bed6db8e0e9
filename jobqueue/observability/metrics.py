"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from jobqueue.constants import (
    METRIC_CLAIM_CONFLICTS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_CLAIMED,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_CREATED,
    METRIC_QUEUE_DEPTH,
    METRIC_WORKER_ERRORS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Pending-set depth
    - Job creation, claims and claim conflicts
    - Job outcomes and execution duration
    - Errors reported by workers
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        # Pending-set depth gauge (by job type)
        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs waiting in the pending set",
            ["job_type"],
            registry=self._registry,
        )

        self.jobs_created = Counter(
            METRIC_JOBS_CREATED,
            "Total number of jobs created",
            ["job_type"],
            registry=self._registry,
        )

        self.jobs_claimed = Counter(
            METRIC_JOBS_CLAIMED,
            "Total number of jobs claimed by workers",
            ["job_type"],
            registry=self._registry,
        )

        # Transactions aborted because another client touched the set
        self.claim_conflicts = Counter(
            METRIC_CLAIM_CONFLICTS,
            "Total number of claim transactions aborted by a concurrent change",
            ["key"],
            registry=self._registry,
        )

        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of jobs finished, by outcome",
            ["job_type", "status"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["job_type", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.worker_errors = Counter(
            METRIC_WORKER_ERRORS,
            "Total number of errors reported by workers",
            ["job_type", "error_type"],
            registry=self._registry,
        )

    def record_job_created(self, job_type: str) -> None:
        """Record a job creation."""
        self.jobs_created.labels(job_type=job_type).inc()

    def record_job_claimed(self, job_type: str) -> None:
        """Record a successful claim."""
        self.jobs_claimed.labels(job_type=job_type).inc()

    def record_claim_conflict(self, key: str) -> None:
        """Record an aborted claim transaction."""
        self.claim_conflicts.labels(key=key).inc()

    def record_job_completed(
        self,
        job_type: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record a job outcome."""
        self.jobs_completed.labels(job_type=job_type, status=status).inc()
        self.job_duration.labels(job_type=job_type, status=status).observe(
            duration_seconds
        )

    def record_worker_error(self, job_type: str, error: BaseException) -> None:
        """Record an error reported by a worker."""
        self.worker_errors.labels(
            job_type=job_type,
            error_type=type(error).__name__,
        ).inc()

    def update_queue_depth(self, job_type: str, depth: int) -> None:
        """Update pending-set depth for a job type."""
        self.queue_depth.labels(job_type=job_type).set(depth)


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics


def serve_metrics(port: int) -> None:
    """Expose metrics over HTTP for Prometheus to scrape."""
    setup_metrics()
    start_http_server(port)
