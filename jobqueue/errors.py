"""
Job queue error types.

All errors inherit from JobQueueError for easy catching.
"""


class JobQueueError(Exception):
    """Base exception for all job queue failures."""


class StoreUnavailableError(JobQueueError):
    """Raised when the shared store cannot be reached. Transient."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store unavailable during {operation}: {reason}")


class JobNotFoundError(JobQueueError):
    """Raised when a job id is unknown."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidJobOperationError(JobQueueError):
    """Raised when a request is not allowed for the job's current state."""

    def __init__(self, job_id: str | None, reason: str):
        self.job_id = job_id
        self.reason = reason
        if job_id is None:
            super().__init__(reason)
        else:
            super().__init__(f"Invalid operation on job {job_id}: {reason}")


class JobExecutionError(JobQueueError):
    """Raised by handlers to signal a failed attempt."""


class JobCancelledError(JobQueueError):
    """Raised at a progress checkpoint once the job left PROCESSING."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is no longer processing")


class FleetError(JobQueueError):
    """Raised when the fleet-management API call fails."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Fleet operation {operation} failed: {reason}")
