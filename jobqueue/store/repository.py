"""
Job repository for store operations.
Implements the data access patterns for job records.
"""

import json
import logging
from typing import Any, Iterable, Mapping
from uuid import uuid4

from jobqueue.config import Settings, get_settings
from jobqueue.constants import (
    CANCELLABLE_STATUSES,
    DEPENDENCIES_SUFFIX,
    DEPENDENTS_SUFFIX,
    JobPriority,
    JobStatus,
)
from jobqueue.errors import JobNotFoundError
from jobqueue.store.base import Store
from jobqueue.types.job import Job, now_millis

logger = logging.getLogger(__name__)


class JobRepository:
    """
    Repository for job records.

    Every status change is a compare-and-set on the record's status
    field, so a terminal status can never be overwritten.
    """

    def __init__(self, store: Store, settings: Settings | None = None):
        """
        Initialize the repository.

        Args:
            store: The shared store.
            settings: Optional settings. Uses cached settings if not provided.
        """
        self._store = store
        self._settings = settings or get_settings()

    @property
    def store(self) -> Store:
        return self._store

    def new_job_id(self) -> str:
        """Generate a fresh job id, which is also the record key."""
        return f"{self._settings.job_key_prefix}{uuid4()}"

    @staticmethod
    def dependencies_key(job_id: str) -> str:
        return f"{job_id}{DEPENDENCIES_SUFFIX}"

    @staticmethod
    def dependents_key(job_id: str) -> str:
        return f"{job_id}{DEPENDENTS_SUFFIX}"

    async def create_job(
        self,
        job_id: str,
        job_type: str,
        payload: Any,
        priority: JobPriority = JobPriority.NORMAL,
    ) -> Job:
        """
        Write a new PENDING job record and index it.

        Args:
            job_id: Id from new_job_id().
            job_type: Opaque type tag.
            payload: JSON-serializable payload.
            priority: Priority class.

        Returns:
            The created Job.
        """
        now = str(now_millis())
        record = {
            "status": JobStatus.PENDING.value,
            "type": job_type,
            "data": json.dumps(payload),
            "priority": JobPriority(priority).value,
            "retries": "0",
            "progress": "0",
            "created_at": now,
            "updated_at": now,
        }
        await self._store.hset(job_id, record)
        await self._store.sadd(self._settings.job_index_set, job_id)

        logger.info(
            "Created job record",
            extra={"job_id": job_id, "job_type": job_type, "priority": record["priority"]},
        )
        return Job.from_record(job_id, record)

    async def is_job(self, job_id: str) -> bool:
        """
        Check that an id names a job record.

        Job ids share the keyspace with lanes, worker records and edge
        sets; only ids in the job index are jobs.
        """
        if not job_id.startswith(self._settings.job_key_prefix):
            return False
        return await self._store.sismember(self._settings.job_index_set, job_id)

    async def get_job(self, job_id: str) -> Job | None:
        """
        Get a job by id.

        Returns:
            The Job or None if not found.
        """
        if not await self.is_job(job_id):
            return None
        record = await self._store.hgetall(job_id)
        if not record:
            return None
        return Job.from_record(job_id, record)

    async def require_job(self, job_id: str) -> Job:
        """Get a job by id or raise JobNotFoundError."""
        job = await self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def get_status(self, job_id: str) -> JobStatus | None:
        status = await self._store.hget(job_id, "status")
        return JobStatus(status) if status else None

    async def list_job_ids(self) -> list[str]:
        """List all indexed job ids."""
        return sorted(await self._store.smembers(self._settings.job_index_set))

    async def list_jobs(self) -> list[Job]:
        """List all jobs, oldest first."""
        jobs = []
        for job_id in await self.list_job_ids():
            job = await self.get_job(job_id)
            if job is not None:
                jobs.append(job)
        return sorted(jobs, key=lambda job: job.created_at)

    async def transition(
        self,
        job_id: str,
        expected: Iterable[JobStatus],
        target: JobStatus,
        extra: Mapping[str, str] | None = None,
    ) -> bool:
        """
        Move a job to target if its status is one of expected.

        Args:
            job_id: The job id.
            expected: Statuses the job may currently be in.
            target: The new status.
            extra: Additional fields written in the same operation.

        Returns:
            True if the transition was applied.
        """
        mapping = {
            "status": target.value,
            "updated_at": str(now_millis()),
            **(extra or {}),
        }
        applied = await self._store.hset_if(
            job_id,
            "status",
            [status.value for status in expected],
            mapping,
        )
        if not applied:
            logger.debug(
                "Transition rejected",
                extra={"job_id": job_id, "target": target.value},
            )
        return applied

    async def start_job(self, job_id: str, worker_id: str) -> bool:
        """Transition PENDING -> PROCESSING."""
        return await self.transition(
            job_id,
            [JobStatus.PENDING],
            JobStatus.PROCESSING,
            {"progress": "0", "worker_id": worker_id},
        )

    async def update_progress(self, job_id: str, progress: int) -> bool:
        """
        Write progress while the job is PROCESSING.

        Returns:
            False if the job left PROCESSING (cancelled or deleted).
        """
        return await self._store.hset_if(
            job_id,
            "status",
            [JobStatus.PROCESSING.value],
            {"progress": str(progress), "updated_at": str(now_millis())},
        )

    async def complete_job(self, job_id: str, result: Any = None) -> bool:
        """Transition PROCESSING -> COMPLETED with a result payload."""
        completed = await self.transition(
            job_id,
            [JobStatus.PROCESSING],
            JobStatus.COMPLETED,
            {"progress": "100", "result": json.dumps(result)},
        )
        if completed:
            logger.info("Job completed successfully", extra={"job_id": job_id})
        return completed

    async def cancel_job(self, job_id: str) -> bool:
        """Transition PENDING/PROCESSING -> CANCELLED."""
        return await self.transition(job_id, CANCELLABLE_STATUSES, JobStatus.CANCELLED)

    async def increment_retries(self, job_id: str) -> int:
        """Increment the durable retry counter. Never reset."""
        return await self._store.hincrby(job_id, "retries", 1)

    async def delete_job(self, job_id: str) -> bool:
        """
        Remove a job record, its edge sets and its index entry.

        Returns:
            True if the record existed.
        """
        removed = await self._store.delete(job_id)
        await self._store.delete(self.dependencies_key(job_id), self.dependents_key(job_id))
        await self._store.srem(self._settings.job_index_set, job_id)
        return removed > 0

    async def get_job_stats(self) -> dict[str, int]:
        """
        Get job counts by status.

        Returns:
            Dictionary of status -> count, with every status present.
        """
        stats = {status.value: 0 for status in JobStatus}
        for job_id in await self.list_job_ids():
            status = await self._store.hget(job_id, "status")
            if status:
                stats[status] = stats.get(status, 0) + 1
        return stats
