"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from docqueue.constants import (
    METRIC_JOB_DURATION,
    METRIC_JOBS_ADDED,
    METRIC_JOBS_CLAIMED,
    METRIC_JOBS_CLEANED,
    METRIC_JOBS_FINISHED,
    METRIC_QUEUE_DEPTH,
)

_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for queues and workers.

    Collects metrics for:
    - Queue depth
    - Job additions, claims and terminal transitions
    - Cleanup deletions
    - Job processing duration
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Register the queue metrics on ``registry`` (the default registry if None)."""
        self._registry = registry or REGISTRY

        # Claimable jobs gauge (by queue)
        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of claimable jobs in the queue",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_added = Counter(
            METRIC_JOBS_ADDED,
            "Total number of jobs added",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_claimed = Counter(
            METRIC_JOBS_CLAIMED,
            "Total number of successful claims",
            ["queue", "worker_id"],
            registry=self._registry,
        )

        # Terminal transitions (acked / errored)
        self.jobs_finished = Counter(
            METRIC_JOBS_FINISHED,
            "Total number of jobs marked done",
            ["queue", "status"],
            registry=self._registry,
        )

        self.jobs_cleaned = Counter(
            METRIC_JOBS_CLEANED,
            "Total number of jobs removed by cleanup",
            ["queue"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job processing duration in seconds",
            ["queue", "status"],
            buckets=(0.01, 0.05, 0.25, 1.0, 5.0, 15.0, 30.0, 60.0),
            registry=self._registry,
        )

    def record_job_added(self, queue: str) -> None:
        """Record a job addition."""
        self.jobs_added.labels(queue=queue).inc()

    def record_job_claimed(self, queue: str, worker_id: str) -> None:
        """Record a successful claim."""
        self.jobs_claimed.labels(queue=queue, worker_id=worker_id).inc()

    def record_job_finished(self, queue: str, status: str) -> None:
        """Record an ack or error transition."""
        self.jobs_finished.labels(queue=queue, status=status).inc()

    def record_jobs_cleaned(self, queue: str, count: int) -> None:
        """Record jobs deleted by clean()."""
        self.jobs_cleaned.labels(queue=queue).inc(count)

    def record_job_duration(
        self,
        queue: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record how long a worker spent on a job."""
        self.job_duration.labels(queue=queue, status=status).observe(
            duration_seconds
        )

    def update_queue_depth(self, queue: str, depth: int) -> None:
        """Update the claimable job count for a queue."""
        self.queue_depth.labels(queue=queue).set(depth)

    def get_metrics(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Content type of get_metrics() output."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """Create the process-wide collector on the default registry, once."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """Process-wide collector used by queues built without one."""
    return _metrics or setup_metrics()
