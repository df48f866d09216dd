"""
Job-related type definitions for internal use.
"""

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from jobqueue.constants import (
    TERMINAL_STATUSES,
    JobPriority,
    JobStatus,
    WorkerStatus,
)


def now_millis() -> int:
    """Current wall clock time as epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def from_millis(value: str | int | None) -> datetime | None:
    """Convert epoch milliseconds to an aware UTC datetime."""
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def _decode_json(value: str | None) -> Any:
    if value in (None, ""):
        return None
    try:
        return json.loads(value)
    except ValueError:
        return value


class Job(BaseModel):
    """
    A job as stored in its hash record.

    The record is the source of truth for job state; this model is a
    read snapshot of it.
    """

    id: str
    type: str
    data: Any = None
    priority: JobPriority = JobPriority.NORMAL
    status: JobStatus = JobStatus.PENDING
    retries: int = 0
    progress: int = 0
    created_at: datetime
    updated_at: datetime | None = None
    result: Any = None
    last_error: str | None = None
    worker_id: str | None = None

    @classmethod
    def from_record(cls, job_id: str, record: dict[str, str]) -> "Job":
        """Build a Job from the raw hash fields."""
        return cls(
            id=job_id,
            type=record.get("type", ""),
            data=_decode_json(record.get("data")),
            priority=JobPriority(record.get("priority", JobPriority.NORMAL)),
            status=JobStatus(record.get("status", JobStatus.PENDING)),
            retries=int(record.get("retries", 0)),
            progress=int(record.get("progress", 0)),
            created_at=from_millis(record.get("created_at")) or datetime.now(timezone.utc),
            updated_at=from_millis(record.get("updated_at")),
            result=_decode_json(record.get("result")),
            last_error=record.get("last_error") or None,
            worker_id=record.get("worker_id") or None,
        )

    @property
    def is_terminal(self) -> bool:
        """Check if the job reached a state that accepts no transition."""
        return self.status in TERMINAL_STATUSES


class JobResult(BaseModel):
    """
    Result of job execution.
    Returned by job handlers after processing.
    """

    success: bool
    output: Any = None
    error: str | None = None


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.

    Handlers report progress through checkpoint(), which raises
    JobCancelledError once the job has left PROCESSING.
    """

    job_id: str
    job_type: str
    payload: Any
    attempt: int
    max_attempts: int
    worker_id: str
    progress_step: int = 10
    step_delay_seconds: float = 0.0
    on_progress: Callable[[int], Awaitable[None]] | None = field(
        default=None, repr=False
    )

    async def checkpoint(self, progress: int) -> None:
        """Record progress and stop if the job was cancelled."""
        if self.on_progress is not None:
            await self.on_progress(progress)

    @property
    def is_last_attempt(self) -> bool:
        """Check if this is the last retry attempt."""
        return self.attempt >= self.max_attempts

    @property
    def remaining_attempts(self) -> int:
        """Get remaining retry attempts."""
        return max(0, self.max_attempts - self.attempt)


class WorkerHealth(BaseModel):
    """Derived liveness of a worker."""

    worker_id: str
    queue: str | None
    status: WorkerStatus
    last_seen: datetime | None
