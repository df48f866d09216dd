"""
Integration tests for lease recovery.
"""

import pytest

from jobqueue.config import Settings
from jobqueue.constants import JobStatus
from jobqueue.queue.service import JobService
from jobqueue.reaper.main import Reaper
from jobqueue.store import InMemoryStore


@pytest.fixture
def clocked_store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def clocked_service(clocked_store: InMemoryStore, test_settings: Settings) -> JobService:
    return JobService(clocked_store, test_settings)


@pytest.fixture
def reaper(clocked_store: InMemoryStore, test_settings: Settings) -> Reaper:
    return Reaper(clocked_store, test_settings)


async def _abandon(service: JobService, worker_id: str = "worker:gone") -> str:
    """Leave a job PROCESSING under a lease, as a crashed worker would."""
    job_id = await service.submit("echo")
    assert await service.dispatcher.dequeue(timeout=0.01) == job_id
    await service.repository.start_job(job_id, worker_id)
    await service.leases.acquire(job_id, worker_id)
    return job_id


class TestReaper:
    """Tests for expired lease recovery."""

    @pytest.mark.asyncio
    async def test_live_lease_is_left_alone(self, clocked_service: JobService, reaper: Reaper, clock):
        job_id = await _abandon(clocked_service)
        clock.advance(1)

        assert await reaper.run_once() == 0
        assert (await clocked_service.get_job(job_id)).status == JobStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_expired_lease_is_retried(
        self,
        clocked_service: JobService,
        reaper: Reaper,
        clock,
        test_settings: Settings,
    ):
        job_id = await _abandon(clocked_service)
        clock.advance(test_settings.lease_ttl_seconds + 1)

        assert await reaper.run_once() == 1

        job = await clocked_service.get_job(job_id)
        assert job.status == JobStatus.PENDING
        assert job.retries == 1
        assert job.last_error == "Lease expired"
        assert await clocked_service.dispatcher.dequeue(timeout=0.01) == job_id
        assert await clocked_service.leases.held_jobs() == set()

    @pytest.mark.asyncio
    async def test_expired_lease_on_last_attempt_dead_letters(
        self,
        clocked_service: JobService,
        reaper: Reaper,
        clock,
        test_settings: Settings,
        clocked_store: InMemoryStore,
    ):
        job_id = await _abandon(clocked_service)
        await clocked_store.hset(job_id, {"retries": "2"})
        clock.advance(test_settings.lease_ttl_seconds + 1)

        await reaper.run_once()

        assert (await clocked_service.get_job(job_id)).status == JobStatus.FAILED
        assert await clocked_service.retry_policy.dead_letters() == [job_id]

    @pytest.mark.asyncio
    async def test_finished_job_is_dropped_from_processing_set(
        self,
        clocked_service: JobService,
        reaper: Reaper,
        clock,
        test_settings: Settings,
    ):
        job_id = await _abandon(clocked_service)
        await clocked_service.cancel(job_id)
        clock.advance(test_settings.lease_ttl_seconds + 1)

        assert await reaper.run_once() == 0
        assert (await clocked_service.get_job(job_id)).status == JobStatus.CANCELLED
        assert await clocked_service.leases.held_jobs() == set()

    @pytest.mark.asyncio
    async def test_refresh_keeps_lease(
        self,
        clocked_service: JobService,
        reaper: Reaper,
        clock,
        test_settings: Settings,
    ):
        job_id = await _abandon(clocked_service, "worker:a")
        clock.advance(test_settings.lease_ttl_seconds - 1)
        assert await clocked_service.leases.refresh(job_id, "worker:a")
        assert not await clocked_service.leases.refresh(job_id, "worker:b")
        clock.advance(test_settings.lease_ttl_seconds - 1)

        assert await reaper.run_once() == 0

    @pytest.mark.asyncio
    async def test_release_only_by_owner(self, clocked_service: JobService, reaper: Reaper):
        job_id = await _abandon(clocked_service, "worker:a")

        assert not await clocked_service.leases.release(job_id, "worker:b")
        assert await clocked_service.leases.owner(job_id) == "worker:a"
        assert await clocked_service.leases.held_jobs() == {job_id}

        assert await clocked_service.leases.release(job_id, "worker:a")
        assert await clocked_service.leases.held_jobs() == set()

    @pytest.mark.asyncio
    async def test_late_release_after_expiry_leaves_job_to_reaper(
        self,
        clocked_service: JobService,
        reaper: Reaper,
        clock,
        test_settings: Settings,
    ):
        job_id = await _abandon(clocked_service, "worker:a")
        clock.advance(test_settings.lease_ttl_seconds + 1)

        assert not await clocked_service.leases.release(job_id, "worker:a")
        assert await clocked_service.leases.held_jobs() == {job_id}
        assert await reaper.run_once() == 1
        assert (await clocked_service.get_job(job_id)).retries == 1

    @pytest.mark.asyncio
    async def test_reclaim_is_exclusive(
        self,
        clocked_service: JobService,
        clock,
        test_settings: Settings,
    ):
        job_id = await _abandon(clocked_service)
        assert not await clocked_service.leases.reclaim(job_id)

        clock.advance(test_settings.lease_ttl_seconds + 1)

        assert await clocked_service.leases.reclaim(job_id)
        assert not await clocked_service.leases.reclaim(job_id)

    @pytest.mark.asyncio
    async def test_second_reaper_does_not_retry_twice(
        self,
        clocked_service: JobService,
        clocked_store: InMemoryStore,
        reaper: Reaper,
        clock,
        test_settings: Settings,
    ):
        job_id = await _abandon(clocked_service)
        clock.advance(test_settings.lease_ttl_seconds + 1)

        assert await reaper.run_once() == 1
        assert await Reaper(clocked_store, test_settings).run_once() == 0
        assert (await clocked_service.get_job(job_id)).retries == 1
