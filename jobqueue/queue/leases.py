"""
Job leases.

A worker holding a PROCESSING job keeps a self-expiring lease key for
it and lists the job in the processing set. If the worker dies or its
instance is terminated, the lease expires and the reaper hands the job
back to the retry policy instead of leaving it PROCESSING forever.
"""

import logging

from jobqueue.config import Settings, get_settings
from jobqueue.store.base import Store

logger = logging.getLogger(__name__)


class LeaseManager:
    """Acquire, refresh and inspect job leases."""

    def __init__(self, store: Store, settings: Settings | None = None):
        self._store = store
        self._settings = settings or get_settings()

    @property
    def ttl(self) -> int:
        return self._settings.lease_ttl_seconds

    def lease_key(self, job_id: str) -> str:
        return f"{self._settings.lease_key_prefix}{job_id}"

    async def acquire(self, job_id: str, worker_id: str) -> None:
        """Take the lease on a job the worker just moved to PROCESSING."""
        await self._store.set(self.lease_key(job_id), worker_id, ttl=self.ttl)
        await self._store.sadd(self._settings.processing_set, job_id)
        logger.debug("Lease acquired", extra={"job_id": job_id, "worker_id": worker_id})

    async def refresh(self, job_id: str, worker_id: str) -> bool:
        """
        Extend the lease.

        Returns:
            False if the lease expired or belongs to another worker.
        """
        owner = await self._store.get(self.lease_key(job_id))
        if owner != worker_id:
            return False
        return await self._store.expire(self.lease_key(job_id), self.ttl)

    async def release(self, job_id: str, worker_id: str) -> bool:
        """
        Drop the lease and the processing entry if worker_id owns them.

        Must run before the job is handed back to a lane, so a worker that
        pops it next never has its own lease removed.

        Returns:
            False if the lease already expired or belongs to another
            worker; the job is then left to the reaper.
        """
        released = await self._store.delete_if(
            self.lease_key(job_id),
            worker_id,
            self._settings.processing_set,
            job_id,
        )
        if not released:
            logger.warning(
                "Lease not held at release",
                extra={"job_id": job_id, "worker_id": worker_id},
            )
        return released

    async def reclaim(self, job_id: str) -> bool:
        """
        Take an ownerless job out of the processing set.

        Returns:
            True for exactly one caller, and only while no worker holds a
            lease on the job.
        """
        if not await self._store.srem(self._settings.processing_set, job_id):
            return False
        if await self.owner(job_id) is not None:
            # A worker acquired the job after our scan
            await self._store.sadd(self._settings.processing_set, job_id)
            return False
        return True

    async def drop(self, job_id: str) -> None:
        """Remove any lease on a deleted job, whoever holds it."""
        await self._store.delete(self.lease_key(job_id))
        await self._store.srem(self._settings.processing_set, job_id)

    async def owner(self, job_id: str) -> str | None:
        return await self._store.get(self.lease_key(job_id))

    async def held_jobs(self) -> set[str]:
        """Jobs listed as being processed by some worker."""
        return await self._store.smembers(self._settings.processing_set)
