"""
Unit tests for the metrics collector.
"""

import pytest
from prometheus_client import CollectorRegistry

from jobqueue.observability.metrics import MetricsCollector


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def collector(registry: CollectorRegistry) -> MetricsCollector:
    return MetricsCollector(registry=registry)


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_job_outcomes(self, collector, registry):
        """Test outcomes are counted per type and status."""
        collector.record_job_completed("email", "complete", 0.2)
        collector.record_job_completed("email", "complete", 0.3)
        collector.record_job_completed("email", "retried", 0.1)

        labels = {"job_type": "email", "status": "complete"}
        assert registry.get_sample_value("jobs_completed_total", labels) == 2.0
        assert registry.get_sample_value(
            "jobs_completed_total", {"job_type": "email", "status": "retried"}
        ) == 1.0

    def test_worker_errors_by_class(self, collector, registry):
        """Test errors are labelled with their class name."""
        collector.record_worker_error("email", ValueError("bad"))
        collector.record_worker_error("email", ValueError("worse"))

        value = registry.get_sample_value(
            "worker_errors_total", {"job_type": "email", "error_type": "ValueError"}
        )
        assert value == 2.0

    def test_queue_depth(self, collector, registry):
        """Test the depth gauge keeps the latest value."""
        collector.update_queue_depth("email", 5)
        collector.update_queue_depth("email", 2)

        assert registry.get_sample_value("job_queue_depth", {"job_type": "email"}) == 2.0

    def test_claims_and_conflicts(self, collector, registry):
        """Test claim counters."""
        collector.record_job_claimed("email")
        collector.record_claim_conflict("q:jobs:email:inactive")

        assert registry.get_sample_value(
            "jobs_claimed_total", {"job_type": "email"}
        ) == 1.0
        assert registry.get_sample_value(
            "claim_conflicts_total", {"key": "q:jobs:email:inactive"}
        ) == 1.0
