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

from jobqueue.constants import (
    METRIC_API_LATENCY,
    METRIC_API_REQUESTS,
    METRIC_FLEET_SIZE,
    METRIC_JOB_DURATION,
    METRIC_JOB_RETRIES,
    METRIC_JOBS_DEAD_LETTERED,
    METRIC_JOBS_FINISHED,
    METRIC_JOBS_SUBMITTED,
    METRIC_LEASE_EXPIRED,
    METRIC_QUEUE_DEPTH,
    METRIC_SCALING_ACTIONS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Lane depth
    - Job submissions, outcomes and durations
    - Retries and dead-lettered jobs
    - Expired leases
    - Autoscaler actions and fleet size
    - API requests
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        # Queue depth gauge (by lane)
        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of job ids waiting in a lane",
            ["lane"],
            registry=self._registry,
        )

        # Jobs submitted counter
        self.jobs_submitted = Counter(
            METRIC_JOBS_SUBMITTED,
            "Total number of jobs submitted",
            ["priority"],
            registry=self._registry,
        )

        # Jobs finished counter
        self.jobs_finished = Counter(
            METRIC_JOBS_FINISHED,
            "Total number of jobs reaching a final status",
            ["status"],
            registry=self._registry,
        )

        # Job duration histogram
        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.job_retries = Counter(
            METRIC_JOB_RETRIES,
            "Total number of failed attempts sent back to a lane",
            ["priority"],
            registry=self._registry,
        )

        self.jobs_dead_lettered = Counter(
            METRIC_JOBS_DEAD_LETTERED,
            "Total number of jobs moved to the dead-letter queue",
            ["priority"],
            registry=self._registry,
        )

        # Lease expired counter
        self.lease_expired = Counter(
            METRIC_LEASE_EXPIRED,
            "Total number of expired job leases recovered by the reaper",
            registry=self._registry,
        )

        # Autoscaler counters and gauge
        self.scaling_actions = Counter(
            METRIC_SCALING_ACTIONS,
            "Total number of instances launched or terminated by the autoscaler",
            ["action"],
            registry=self._registry,
        )

        self.fleet_size = Gauge(
            METRIC_FLEET_SIZE,
            "Active worker instances seen by the autoscaler",
            registry=self._registry,
        )

        # API requests counter
        self.api_requests = Counter(
            METRIC_API_REQUESTS,
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self._registry,
        )

        # API latency histogram
        self.api_latency = Histogram(
            METRIC_API_LATENCY,
            "API request latency in seconds",
            ["method", "endpoint"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self._registry,
        )

    def record_job_submitted(self, priority: str) -> None:
        """Record a job submission."""
        self.jobs_submitted.labels(priority=priority).inc()

    def record_job_finished(self, status: str, duration_seconds: float) -> None:
        """Record a job reaching COMPLETED, FAILED or CANCELLED."""
        self.jobs_finished.labels(status=status).inc()
        self.job_duration.labels(status=status).observe(duration_seconds)

    def record_retry(self, priority: str) -> None:
        self.job_retries.labels(priority=priority).inc()

    def record_dead_lettered(self, priority: str) -> None:
        self.jobs_dead_lettered.labels(priority=priority).inc()

    def record_lease_expired(self) -> None:
        """Record an expired lease."""
        self.lease_expired.inc()

    def record_scaling_action(self, action: str, count: int) -> None:
        """Record instances launched or terminated in one cycle."""
        self.scaling_actions.labels(action=action).inc(count)

    def update_fleet_size(self, size: int) -> None:
        self.fleet_size.set(size)

    def update_queue_depth(self, lane: str, depth: int) -> None:
        """Update depth for a lane."""
        self.queue_depth.labels(lane=lane).set(depth)

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        """Record an API request."""
        self.api_requests.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        self.api_latency.labels(method=method, endpoint=endpoint).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


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
