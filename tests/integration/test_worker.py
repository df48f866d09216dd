"""
Integration tests for worker functionality.
"""

import asyncio

import pytest
import pytest_asyncio

from jobqueue.config import Settings
from jobqueue.constants import JobPriority, JobStatus, WorkerStatus
from jobqueue.errors import JobCancelledError
from jobqueue.queue.service import JobService
from jobqueue.store import InMemoryStore
from jobqueue.types.job import JobContext, JobResult
from jobqueue.worker import handlers
from jobqueue.worker.main import Worker


class TestWorkerIntegration:
    """Integration tests for worker job processing."""

    @pytest.mark.asyncio
    async def test_full_job_lifecycle_success(self, service: JobService, worker: Worker):
        """Test complete job lifecycle: submit -> process -> complete."""
        job_id = await service.submit("echo", {"message": "test"})

        assert await worker.process_next() is True

        job = await service.get_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.worker_id == "worker:test"
        assert await service.get_result(job_id) == {"echo": {"message": "test"}}
        assert await service.leases.held_jobs() == set()

    @pytest.mark.asyncio
    async def test_simulated_job_completes(self, service: JobService, worker: Worker):
        job_id = await service.submit("simulate")

        await worker.process_next()

        assert await service.get_result(job_id) == f"Success Result of Job {job_id}"

    @pytest.mark.asyncio
    async def test_empty_lanes(self, worker: Worker):
        assert await worker.process_next() is False

    @pytest.mark.asyncio
    async def test_high_priority_processed_first(self, service: JobService, worker: Worker):
        normal = await service.submit("echo", priority=JobPriority.NORMAL)
        high = await service.submit("echo", priority=JobPriority.HIGH)

        await worker.process_next()

        assert (await service.get_job(high)).status == JobStatus.COMPLETED
        assert (await service.get_job(normal)).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_dependent_runs_after_all_prerequisites(
        self,
        service: JobService,
        worker: Worker,
        store,
    ):
        """A waits for B and C and only reaches PROCESSING after both completed."""
        b = await service.submit("echo")
        c = await service.submit("echo")
        a = await service.submit("echo", dependencies=[b, c])

        assert await store.lrange("normal_jobs", 0, -1) == [c, b]

        await worker.process_next()
        assert (await service.get_job(b)).status == JobStatus.COMPLETED
        assert (await service.get_job(a)).status == JobStatus.PENDING
        assert await service.dependencies(a) == {c}
        assert a not in await store.lrange("normal_jobs", 0, -1)

        await worker.process_next()
        assert (await service.get_job(c)).status == JobStatus.COMPLETED
        assert await service.dependencies(a) == set()
        assert await store.lrange("normal_jobs", 0, -1) == [a]

        await worker.process_next()
        assert (await service.get_job(a)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unready_job_in_lane_is_requeued(
        self,
        service: JobService,
        worker: Worker,
        store,
    ):
        parent = await service.submit("echo")
        child = await service.submit("echo", dependencies=[parent])
        await service.dispatcher.remove(parent)
        await store.lpush("normal_jobs", child)

        assert await worker.process_job(await service.dispatcher.dequeue(timeout=0.01)) == JobStatus.PENDING
        assert await store.lrange("normal_jobs", 0, -1) == [child]

    @pytest.mark.asyncio
    async def test_failing_job_is_dead_lettered(self, service: JobService, worker: Worker):
        """Three failed attempts, then FAILED and dead-lettered with no fourth attempt."""
        job_id = await service.submit("failing_job")

        for _ in range(3):
            assert await worker.process_next() is True

        job = await service.get_job(job_id)
        assert job.status == JobStatus.FAILED
        assert job.retries == 3
        assert "Intentional failure on attempt 3" in job.last_error
        assert await service.retry_policy.dead_letters() == [job_id]

        assert await worker.process_next() is False

    @pytest.mark.asyncio
    async def test_failed_prerequisite_keeps_dependent_blocked(
        self,
        service: JobService,
        worker: Worker,
        store,
    ):
        parent = await service.submit("failing_job")
        child = await service.submit("echo", dependencies=[parent])

        for _ in range(3):
            await worker.process_next()

        assert (await service.get_job(child)).status == JobStatus.PENDING
        assert await store.sismember("blocked_jobs", child)

    @pytest.mark.asyncio
    async def test_cancelled_job_is_skipped(self, service: JobService, worker: Worker):
        job_id = await service.submit("echo")
        await service.cancel(job_id)

        assert await worker.process_next() is True
        assert (await service.get_job(job_id)).status == JobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_deleted_job_is_dropped(self, service: JobService, worker: Worker, store):
        job_id = await service.submit("echo")
        await store.delete(job_id)

        assert await worker.process_job(await service.dispatcher.dequeue(timeout=0.01)) is None


class TestCancellationMidProcessing:
    """A job cancelled while PROCESSING stops at its next checkpoint."""

    @pytest.fixture
    def observed(self) -> list[int]:
        return []

    @pytest.fixture(autouse=True)
    def cancelling_handler(self, service: JobService, observed: list[int]):
        async def handle(context: JobContext) -> JobResult:
            for progress in range(0, 101, context.progress_step):
                await context.checkpoint(progress)
                observed.append(progress)
                if progress == 30:
                    await service.cancel(context.job_id)
            return JobResult(success=True, output="done")

        handlers.register_handler("cancel_midway")(handle)
        yield
        handlers._handlers.pop("cancel_midway", None)

    @pytest.mark.asyncio
    async def test_cancel_stops_progress(
        self,
        service: JobService,
        worker: Worker,
        observed: list[int],
    ):
        job_id = await service.submit("cancel_midway")

        status = await worker.process_next()

        assert status is True
        assert observed == [0, 10, 20, 30]
        job = await service.get_job(job_id)
        assert job.status == JobStatus.CANCELLED
        assert job.progress == 30
        assert job.result is None

    @pytest.mark.asyncio
    async def test_cancelled_job_stays_cancelled(self, service: JobService, worker: Worker):
        job_id = await service.submit("cancel_midway")
        await worker.process_next()

        assert not await service.repository.complete_job(job_id, "late")
        assert not await service.repository.update_progress(job_id, 90)
        with pytest.raises(JobCancelledError):
            await worker._checkpoint(job_id, 40)
        assert (await service.get_job(job_id)).status == JobStatus.CANCELLED


class TestWorkerLoop:
    """Tests for the scheduling loop, heartbeats and shutdown."""

    @pytest_asyncio.fixture
    async def running_worker(self, worker: Worker):
        task = asyncio.create_task(worker.start())
        yield worker
        await worker.stop()
        await asyncio.wait_for(task, timeout=2)

    @pytest.mark.asyncio
    async def test_loop_processes_jobs(self, service: JobService, running_worker: Worker):
        job_ids = [await service.submit("echo", {"n": i}) for i in range(3)]

        for _ in range(50):
            stats = await service.stats()
            if stats["COMPLETED"] == 3:
                break
            await asyncio.sleep(0.02)

        for job_id in job_ids:
            assert (await service.get_job(job_id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_worker_reports_alive(self, service: JobService, running_worker: Worker):
        await asyncio.sleep(0.1)

        workers = await service.worker_health()

        assert [w.worker_id for w in workers] == ["worker:test"]
        assert workers[0].status == WorkerStatus.ALIVE
        assert workers[0].queue == "high_priority_jobs,normal_jobs"

    @pytest.mark.asyncio
    async def test_stop_ends_loop(self, worker: Worker):
        task = asyncio.create_task(worker.start())
        await asyncio.sleep(0.05)

        await worker.stop()

        await asyncio.wait_for(task, timeout=2)
        assert task.done()

    def test_lanes_from_settings(self, store, test_settings: Settings):
        settings = test_settings.model_copy(update={"worker_lanes": ["normal_jobs"]})

        assert Worker(store, settings).lanes == ["normal_jobs"]
        assert Worker(store, test_settings).lanes == ["high_priority_jobs", "normal_jobs"]


class RoundTripStore(InMemoryStore):
    """In-memory store that yields to the loop before every write, like a network round-trip."""

    async def lpush(self, key, *values):
        await asyncio.sleep(0)
        return await super().lpush(key, *values)

    async def rpush(self, key, *values):
        await asyncio.sleep(0)
        return await super().rpush(key, *values)

    async def hset_if(self, key, field, expected, mapping):
        await asyncio.sleep(0)
        return await super().hset_if(key, field, expected, mapping)

    async def hincrby(self, key, field, amount=1):
        await asyncio.sleep(0)
        return await super().hincrby(key, field, amount)

    async def sadd(self, key, *members):
        await asyncio.sleep(0)
        return await super().sadd(key, *members)

    async def srem(self, key, *members):
        await asyncio.sleep(0)
        return await super().srem(key, *members)

    async def set(self, key, value, ttl=None):
        await asyncio.sleep(0)
        return await super().set(key, value, ttl)

    async def delete(self, *keys):
        await asyncio.sleep(0)
        return await super().delete(*keys)

    async def delete_if(self, key, expected, set_key, member):
        await asyncio.sleep(0)
        return await super().delete_if(key, expected, set_key, member)


class TestSharedStoreWorkers:
    """Several workers on one store never share a job and never lose a lease."""

    @pytest_asyncio.fixture
    async def shared_store(self):
        store = RoundTripStore()
        yield store
        await store.close()

    @pytest.fixture
    def shared_service(self, shared_store, test_settings: Settings) -> JobService:
        return JobService(shared_store, test_settings)

    @pytest.fixture
    def executions(self) -> list[tuple[str, str, str | None, bool]]:
        return []

    @pytest.fixture(autouse=True)
    def fail_first_attempt_handler(
        self,
        shared_service: JobService,
        executions: list[tuple[str, str, str | None, bool]],
    ):
        active: dict[str, str] = {}

        async def observe(context: JobContext) -> None:
            executions.append(
                (
                    context.job_id,
                    context.worker_id,
                    await shared_service.leases.owner(context.job_id),
                    context.job_id in await shared_service.leases.held_jobs(),
                )
            )

        async def handle(context: JobContext) -> JobResult:
            if context.job_id in active:
                executions.append((context.job_id, context.worker_id, "overlap", False))
            active[context.job_id] = context.worker_id
            try:
                await observe(context)
                await asyncio.sleep(0.02)
                await observe(context)
            finally:
                active.pop(context.job_id)

            if context.attempt == 1:
                return JobResult(success=False, error="first attempt fails")
            return JobResult(success=True, output=context.worker_id)

        handlers.register_handler("fail_first_attempt")(handle)
        yield
        handlers._handlers.pop("fail_first_attempt", None)

    @pytest.mark.asyncio
    async def test_requeued_job_keeps_new_owner_lease(
        self,
        shared_store,
        shared_service: JobService,
        test_settings: Settings,
        executions: list[tuple[str, str, str | None, bool]],
    ):
        patient = test_settings.model_copy(update={"worker_dequeue_timeout_seconds": 2})
        first = Worker(shared_store, test_settings, worker_id="worker:a")
        second = Worker(shared_store, patient, worker_id="worker:b")
        job_id = await shared_service.submit("fail_first_attempt")
        assert await shared_service.dispatcher.dequeue(timeout=0.01) == job_id

        waiting = asyncio.create_task(second.process_next())
        await asyncio.sleep(0)
        assert await first.process_job(job_id) == JobStatus.PENDING
        assert await waiting is True

        assert (await shared_service.get_job(job_id)).status == JobStatus.COMPLETED
        assert [worker_id for _, worker_id, _, _ in executions] == [
            "worker:a", "worker:a", "worker:b", "worker:b",
        ]
        for _, worker_id, owner, held in executions:
            assert owner == worker_id
            assert held
        assert await shared_service.leases.held_jobs() == set()

    @pytest.mark.asyncio
    async def test_each_execution_has_a_single_live_owner(
        self,
        shared_store,
        shared_service: JobService,
        test_settings: Settings,
        executions: list[tuple[str, str, str | None, bool]],
    ):
        workers = [
            Worker(shared_store, test_settings, worker_id=f"worker:{n}") for n in range(3)
        ]
        tasks = [asyncio.create_task(w.start()) for w in workers]
        job_ids = [await shared_service.submit("fail_first_attempt") for _ in range(6)]

        try:
            for _ in range(200):
                if (await shared_service.stats())["COMPLETED"] == len(job_ids):
                    break
                await asyncio.sleep(0.02)
        finally:
            for w in workers:
                await w.stop()
            await asyncio.wait_for(asyncio.gather(*tasks), timeout=5)

        for job_id in job_ids:
            job = await shared_service.get_job(job_id)
            assert job.status == JobStatus.COMPLETED
            assert job.retries == 1

        assert len(executions) == 2 * 2 * len(job_ids)
        for job_id, worker_id, owner, held in executions:
            assert owner == worker_id, f"{job_id} ran on {worker_id} under lease {owner}"
            assert held
        assert await shared_service.leases.held_jobs() == set()
