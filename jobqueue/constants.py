"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - PENDING -> PROCESSING (dequeued, dependencies met)
    - PENDING -> CANCELLED (cancel request)
    - PROCESSING -> COMPLETED (success)
    - PROCESSING -> PENDING (retry, re-appended to its lane)
    - PROCESSING -> FAILED (retries exhausted, dead-lettered)
    - PROCESSING -> CANCELLED (cancel request observed at a checkpoint)
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class JobPriority(StrEnum):
    """Job priority classes. Each class has its own lane."""

    HIGH = "high"
    NORMAL = "normal"


class WorkerStatus(StrEnum):
    """Derived worker liveness."""

    ALIVE = "ALIVE"
    DEAD = "DEAD"


class ScalingAction(StrEnum):
    """Autoscaler cycle outcome."""

    SCALE_UP = "scale_up"
    SCALE_DOWN = "scale_down"
    NONE = "none"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)
CANCELLABLE_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.PENDING, JobStatus.PROCESSING}
)

# Default values
DEFAULT_PRIORITY = JobPriority.NORMAL
DEFAULT_JOB_TYPE = "simulate"

# Dependency edge key suffixes
DEPENDENCIES_SUFFIX = ":dependencies"
DEPENDENTS_SUFFIX = ":dependents"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_SUBMITTED = "jobs_submitted_total"
METRIC_JOBS_FINISHED = "jobs_finished_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_JOB_RETRIES = "job_retries_total"
METRIC_JOBS_DEAD_LETTERED = "jobs_dead_lettered_total"
METRIC_LEASE_EXPIRED = "lease_expired_total"
METRIC_SCALING_ACTIONS = "autoscaler_actions_total"
METRIC_FLEET_SIZE = "autoscaler_fleet_size"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_SUBMIT_JOB = "submit_job"
SPAN_EXECUTE_JOB = "execute_job"
SPAN_SCALING_CYCLE = "scaling_cycle"
SPAN_REAP_LEASES = "reap_leases"
