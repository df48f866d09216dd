"""
Type definitions for the job queue.
Contains input/output type definitions, grouped by module.
"""

from jobqueue.types.api import (
    ErrorResponse,
    HealthResponse,
    JobIdsResponse,
    JobListResponse,
    JobResultResponse,
    JobStatsResponse,
    JobStatusResponse,
    MessageResponse,
    SubmitJobRequest,
    SubmitJobResponse,
    WorkerHealthResponse,
)
from jobqueue.types.job import (
    Job,
    JobContext,
    JobResult,
    WorkerHealth,
)

__all__ = [
    # API types
    "SubmitJobRequest",
    "SubmitJobResponse",
    "JobStatusResponse",
    "JobResultResponse",
    "JobListResponse",
    "JobIdsResponse",
    "JobStatsResponse",
    "MessageResponse",
    "WorkerHealthResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "Job",
    "JobContext",
    "JobResult",
    "WorkerHealth",
]
