"""
Dependency tracking between jobs.

Each job has a depends-on set and a reverse dependents set. A job whose
depends-on set is non-empty is parked in the blocked set at submission
and moved to its lane by release() when its last prerequisite completes.
"""

import logging
from collections.abc import Sequence

from jobqueue.config import Settings, get_settings
from jobqueue.constants import JobStatus
from jobqueue.errors import InvalidJobOperationError
from jobqueue.store.base import Store
from jobqueue.store.repository import JobRepository

logger = logging.getLogger(__name__)


class DependencyTracker:
    """
    Maintains dependency edges and resolves readiness.

    Cycles cannot be formed: a job may only depend on jobs that already
    exist, and an existing job cannot depend on an id created after it.
    """

    def __init__(
        self,
        store: Store,
        repository: JobRepository | None = None,
        settings: Settings | None = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._repo = repository or JobRepository(store, self._settings)

    async def validate(self, dependencies: Sequence[str]) -> None:
        """
        Reject dependency lists that could never resolve.

        Raises:
            InvalidJobOperationError: On duplicates, unknown ids, or
                prerequisites that already FAILED or were CANCELLED.
        """
        seen: set[str] = set()
        for dependency in dependencies:
            if dependency in seen:
                raise InvalidJobOperationError(None, f"Duplicate dependency: {dependency}")
            seen.add(dependency)

            if not await self._repo.is_job(dependency):
                raise InvalidJobOperationError(None, f"Unknown dependency: {dependency}")
            status = await self._repo.get_status(dependency)
            if status is None:
                raise InvalidJobOperationError(None, f"Unknown dependency: {dependency}")
            if status in (JobStatus.FAILED, JobStatus.CANCELLED):
                raise InvalidJobOperationError(
                    None,
                    f"Dependency {dependency} is {status.value} and will never complete",
                )

    async def register(self, job_id: str, dependencies: Sequence[str]) -> bool:
        """
        Add edges in both directions for every incomplete prerequisite.

        Returns:
            True if the job has no outstanding prerequisites.
        """
        for dependency in dependencies:
            if await self._repo.get_status(dependency) == JobStatus.COMPLETED:
                continue
            await self._store.sadd(self._repo.dependencies_key(job_id), dependency)
            await self._store.sadd(self._repo.dependents_key(dependency), job_id)

        # A prerequisite may have completed between the status read and the
        # edge write; drop edges whose release already ran.
        for dependency in await self._store.smembers(self._repo.dependencies_key(job_id)):
            if await self._repo.get_status(dependency) == JobStatus.COMPLETED:
                await self._store.srem(self._repo.dependencies_key(job_id), dependency)

        return await self.is_ready(job_id)

    async def is_ready(self, job_id: str) -> bool:
        """Check whether the depends-on set is empty."""
        return await self._store.scard(self._repo.dependencies_key(job_id)) == 0

    async def pending_dependencies(self, job_id: str) -> set[str]:
        return await self._store.smembers(self._repo.dependencies_key(job_id))

    async def block(self, job_id: str) -> None:
        """Park a job until its prerequisites complete."""
        await self._store.sadd(self._settings.blocked_set, job_id)

    async def unblock(self, job_id: str) -> bool:
        """
        Claim a parked job.

        Returns:
            True for exactly one caller per parked job.
        """
        return await self._store.srem(self._settings.blocked_set, job_id) > 0

    async def release(self, prerequisite_id: str) -> list[str]:
        """
        Remove a completed prerequisite from every dependent.

        Returns:
            Dependents that became ready and were claimed from the
            blocked set; the caller dispatches them to their lanes.
        """
        released: list[str] = []
        dependents = await self._store.smembers(self._repo.dependents_key(prerequisite_id))

        for dependent in sorted(dependents):
            removed = await self._store.srem(
                self._repo.dependencies_key(dependent), prerequisite_id
            )
            if removed:
                logger.info(
                    "Notified dependent job",
                    extra={"job_id": dependent, "prerequisite": prerequisite_id},
                )
            if await self.is_ready(dependent) and await self.unblock(dependent):
                released.append(dependent)

        return released

    async def forget(self, job_id: str) -> None:
        """Drop a job's edges in both directions."""
        for dependency in await self._store.smembers(self._repo.dependencies_key(job_id)):
            await self._store.srem(self._repo.dependents_key(dependency), job_id)
        await self._store.delete(
            self._repo.dependencies_key(job_id),
            self._repo.dependents_key(job_id),
        )
        await self._store.srem(self._settings.blocked_set, job_id)
