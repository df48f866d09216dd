"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from jobqueue.constants import DEFAULT_JOB_TYPE, JobPriority, JobStatus, WorkerStatus


class SubmitJobRequest(BaseModel):
    """Request body for submitting a new job."""

    type: str = Field(default=DEFAULT_JOB_TYPE, min_length=1, description="Job handler type")
    data: Any = Field(default=None, description="Job payload data")
    priority: JobPriority = Field(default=JobPriority.NORMAL, description="Job priority lane")
    dependencies: list[str] = Field(
        default_factory=list,
        description="Ids of jobs that must complete before this one runs",
    )


class SubmitJobResponse(BaseModel):
    """Response body after submitting a job."""

    job_id: str


class JobStatusResponse(BaseModel):
    """Current state of a job."""

    id: str
    type: str
    status: JobStatus
    priority: JobPriority
    progress: int
    retries: int
    created_at: datetime
    updated_at: datetime | None
    last_error: str | None
    worker_id: str | None


class JobResultResponse(BaseModel):
    """Result of a job. The result is null until it COMPLETED."""

    id: str
    status: JobStatus
    result: Any = None


class JobListResponse(BaseModel):
    """All known jobs, oldest first."""

    jobs: list[JobStatusResponse]
    total: int


class JobIdsResponse(BaseModel):
    job_ids: list[str]


class JobStatsResponse(BaseModel):
    """Job counts per status and current lane depths."""

    stats: dict[str, int]
    lanes: dict[str, int]
    blocked: int
    dead_letter: int


class MessageResponse(BaseModel):
    message: str


class WorkerHealthResponse(BaseModel):
    """Derived liveness of one worker."""

    worker_id: str
    queue: str | None
    status: WorkerStatus
    last_seen: datetime | None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    store: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
