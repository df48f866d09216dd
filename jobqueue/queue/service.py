"""
Job service.

Facade over the queue components exposing the operations external
callers use: submit, query, list, stats, cancel, delete and worker
health.
"""

import logging
from collections.abc import Sequence
from typing import Any

from jobqueue.config import Settings, get_settings
from jobqueue.constants import CANCELLABLE_STATUSES, DEFAULT_PRIORITY, JobPriority
from jobqueue.errors import InvalidJobOperationError, JobNotFoundError
from jobqueue.queue.dependencies import DependencyTracker
from jobqueue.queue.dispatcher import QueueDispatcher
from jobqueue.queue.leases import LeaseManager
from jobqueue.queue.retry import RetryPolicy
from jobqueue.store.base import Store
from jobqueue.store.repository import JobRepository
from jobqueue.types.job import Job, WorkerHealth
from jobqueue.worker.heartbeat import HeartbeatRegistry

logger = logging.getLogger(__name__)


class JobService:
    """Job operations for API handlers."""

    def __init__(self, store: Store, settings: Settings | None = None):
        self._store = store
        self._settings = settings or get_settings()
        self.repository = JobRepository(store, self._settings)
        self.tracker = DependencyTracker(store, self.repository, self._settings)
        self.dispatcher = QueueDispatcher(
            store, self._settings, self.repository, self.tracker
        )
        self.retry_policy = RetryPolicy(
            store, self.dispatcher, self._settings, self.repository
        )
        self.leases = LeaseManager(store, self._settings)
        self.heartbeats = HeartbeatRegistry(store, self._settings)

    async def submit(
        self,
        job_type: str,
        payload: Any = None,
        priority: JobPriority | str = DEFAULT_PRIORITY,
        dependencies: Sequence[str] = (),
    ) -> str:
        """Submit a job and return its id."""
        return await self.dispatcher.enqueue(job_type, payload, priority, dependencies)

    async def get_job(self, job_id: str) -> Job:
        """
        Get a job's current state.

        Raises:
            JobNotFoundError: If the job id is unknown.
        """
        return await self.repository.require_job(job_id)

    async def get_result(self, job_id: str) -> Any:
        """Result payload of a job, None until it COMPLETED."""
        job = await self.repository.require_job(job_id)
        return job.result

    async def list_jobs(self) -> list[Job]:
        return await self.repository.list_jobs()

    async def list_job_ids(self) -> list[str]:
        return await self.repository.list_job_ids()

    async def stats(self) -> dict[str, int]:
        return await self.repository.get_job_stats()

    async def queue_overview(self) -> dict[str, Any]:
        """Lane depths and dead-letter size."""
        return {
            "lanes": await self.dispatcher.lane_depths(),
            "blocked": await self._store.scard(self._settings.blocked_set),
            "dead_letter": await self.retry_policy.dead_letter_count(),
        }

    async def dependencies(self, job_id: str) -> set[str]:
        """Prerequisites the job is still waiting for."""
        await self.repository.require_job(job_id)
        return await self.tracker.pending_dependencies(job_id)

    async def cancel(self, job_id: str) -> Job:
        """
        Cancel a PENDING or PROCESSING job.

        A PROCESSING job stops at its next progress checkpoint.

        Raises:
            JobNotFoundError: If the job id is unknown.
            InvalidJobOperationError: If the job is already terminal.
        """
        job = await self.repository.require_job(job_id)
        if job.status not in CANCELLABLE_STATUSES or not await self.repository.cancel_job(job_id):
            current = await self.repository.get_status(job_id)
            raise InvalidJobOperationError(
                job_id,
                f"cannot cancel a job in status {current.value if current else 'DELETED'}",
            )

        await self.tracker.unblock(job_id)
        logger.info("Job cancelled", extra={"job_id": job_id, "previous_status": job.status.value})
        return await self.repository.require_job(job_id)

    async def delete(self, job_id: str) -> None:
        """
        Delete a job record and every reference to it.

        Raises:
            JobNotFoundError: If the job id is unknown.
        """
        if not await self.repository.is_job(job_id):
            raise JobNotFoundError(job_id)

        await self.tracker.forget(job_id)
        await self.dispatcher.remove(job_id)
        await self._store.lrem(self._settings.dead_letter_queue, 0, job_id)
        await self.leases.drop(job_id)
        await self.repository.delete_job(job_id)
        logger.info("Job deleted", extra={"job_id": job_id})

    async def worker_health(self) -> list[WorkerHealth]:
        return await self.heartbeats.list_workers()
