"""
Worker process for executing jobs.

The worker pops one job id at a time from its lanes, drives the job
through its state machine, and releases dependents when it completes.
Failures are handed to the retry policy.
"""

import asyncio
import logging
import signal
import sys
import time
from collections.abc import Sequence
from functools import partial
from uuid import uuid4

from jobqueue.config import Settings, get_settings
from jobqueue.constants import SPAN_EXECUTE_JOB, JobStatus
from jobqueue.errors import JobCancelledError, StoreUnavailableError
from jobqueue.observability.logging import bind_context, setup_logging
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer, setup_tracing
from jobqueue.queue.dependencies import DependencyTracker
from jobqueue.queue.dispatcher import QueueDispatcher
from jobqueue.queue.leases import LeaseManager
from jobqueue.queue.retry import RetryPolicy
from jobqueue.store import close_store, init_store
from jobqueue.store.base import Store
from jobqueue.store.repository import JobRepository
from jobqueue.types.job import Job, JobContext
from jobqueue.worker.handlers import execute_job
from jobqueue.worker.heartbeat import HeartbeatRegistry

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that pops and executes jobs.

    Features:
    - Priority drain across lanes with an atomic blocking pop
    - Dependency check at dequeue, unready jobs go back to the lane tail
    - Progress checkpoints that observe cancellation
    - Heartbeat for liveness and lease refresh
    - Graceful shutdown on SIGTERM/SIGINT between jobs
    """

    def __init__(
        self,
        store: Store,
        settings: Settings | None = None,
        worker_id: str | None = None,
        lanes: Sequence[str] | None = None,
    ):
        """
        Initialize the worker.

        Args:
            store: The shared store.
            settings: Optional settings. Uses cached settings if not provided.
            worker_id: Worker record key. Defaults to a fresh prefixed uuid.
            lanes: Lanes to pop from, in priority order.
        """
        self._settings = settings or get_settings()
        self.worker_id = worker_id or f"{self._settings.worker_key_prefix}{uuid4()}"
        self.lanes = list(
            lanes
            or self._settings.worker_lanes
            or [self._settings.high_priority_lane, self._settings.normal_lane]
        )

        self._repo = JobRepository(store, self._settings)
        self._tracker = DependencyTracker(store, self._repo, self._settings)
        self._dispatcher = QueueDispatcher(store, self._settings, self._repo, self._tracker)
        self._retry = RetryPolicy(store, self._dispatcher, self._settings, self._repo)
        self._leases = LeaseManager(store, self._settings)
        self._heartbeats = HeartbeatRegistry(store, self._settings)

        self._stopping = asyncio.Event()
        self._current_job: str | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._metrics = get_metrics()

    @property
    def current_job(self) -> str | None:
        return self._current_job

    async def start(self) -> None:
        """Run the scheduling loop until stop() is called."""
        logger.info(
            "Worker starting",
            extra={"worker_id": self.worker_id, "lanes": self.lanes},
        )
        self._stopping.clear()

        await self._heartbeats.beat(self.worker_id, self.lanes)
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        while not self._stopping.is_set():
            try:
                await self.process_next()
            except StoreUnavailableError as e:
                logger.warning(
                    f"Store unavailable in worker loop: {e}",
                    extra={"worker_id": self.worker_id},
                )
                await asyncio.sleep(self._settings.worker_poll_interval_seconds)
            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id},
                )
                await asyncio.sleep(self._settings.worker_poll_interval_seconds)

        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """Stop the worker after the in-flight job."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._stopping.set()

    async def process_next(self) -> bool:
        """
        Pop and process at most one job.

        Returns:
            True if a job id was dequeued.
        """
        job_id = await self._dispatcher.dequeue(
            self.lanes,
            timeout=self._settings.worker_dequeue_timeout_seconds,
        )
        if job_id is None:
            return False

        logger.info("Retrieved job", extra={"job_id": job_id, "worker_id": self.worker_id})
        await self.process_job(job_id)
        return True

    async def process_job(self, job_id: str) -> JobStatus | None:
        """
        Drive one dequeued job through its state machine.

        Args:
            job_id: Id handed over by the blocking pop.

        Returns:
            The job's status after this step, or None if the job was
            deleted.
        """
        job = await self._repo.get_job(job_id)
        if job is None:
            logger.info("Job record gone, dropping", extra={"job_id": job_id})
            return None

        if job.status == JobStatus.CANCELLED:
            logger.info("Job is cancelled. Skipping", extra={"job_id": job_id})
            return job.status

        if job.status != JobStatus.PENDING:
            logger.warning(
                "Dequeued job is not pending, dropping",
                extra={"job_id": job_id, "status": job.status.value},
            )
            return job.status

        if not await self._tracker.is_ready(job_id):
            logger.info(
                "Job is waiting for dependencies",
                extra={
                    "job_id": job_id,
                    "dependencies": sorted(await self._tracker.pending_dependencies(job_id)),
                },
            )
            await self._dispatcher.requeue(job)
            return JobStatus.PENDING

        if not await self._repo.start_job(job_id, self.worker_id):
            # Lost to a concurrent cancel or delete
            return await self._repo.get_status(job_id)

        await self._leases.acquire(job_id, self.worker_id)
        self._current_job = job_id
        try:
            return await self._execute(job)
        finally:
            if self._current_job == job_id:
                self._current_job = None
                await self._leases.release(job_id, self.worker_id)

    async def _fail(self, job: Job, error: str) -> JobStatus | None:
        """Give up the lease, then let the retry policy requeue or dead-letter."""
        self._current_job = None
        if not await self._leases.release(job.id, self.worker_id):
            logger.warning(
                "Lease lost before failure handling, leaving job to the reaper",
                extra={"job_id": job.id, "worker_id": self.worker_id},
            )
            return await self._repo.get_status(job.id)
        return await self._retry.handle_failure(job, error)

    async def _execute(self, job: Job) -> JobStatus | None:
        start_time = time.time()
        context = JobContext(
            job_id=job.id,
            job_type=job.type,
            payload=job.data,
            attempt=job.retries + 1,
            max_attempts=self._settings.max_attempts,
            worker_id=self.worker_id,
            progress_step=self._settings.progress_step,
            step_delay_seconds=self._settings.progress_step_delay_seconds,
            on_progress=partial(self._checkpoint, job.id),
        )

        logger.info(
            "Processing job",
            extra={"job_id": job.id, "job_type": job.type, "attempt": context.attempt},
        )

        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("job_id", job.id)
                span.set_attribute("job_type", job.type)
                span.set_attribute("attempt", context.attempt)

                result = await execute_job(context)

        except JobCancelledError:
            logger.info("Job cancelled mid-progress. Stopping", extra={"job_id": job.id})
            self._metrics.record_job_finished(
                JobStatus.CANCELLED.value, time.time() - start_time
            )
            return await self._repo.get_status(job.id)

        except StoreUnavailableError:
            raise

        except Exception as e:
            logger.exception("Exception executing job", extra={"job_id": job.id})
            return await self._fail(job, f"Worker exception: {str(e)}")

        duration = time.time() - start_time

        if not result.success:
            status = await self._fail(job, result.error or "Unknown error")
            logger.warning(
                "Job failed",
                extra={"job_id": job.id, "error": result.error, "attempt": context.attempt},
            )
            if status == JobStatus.FAILED:
                self._metrics.record_job_finished(status.value, duration)
            return status if status is not None else await self._repo.get_status(job.id)

        if not await self._repo.complete_job(job.id, result.output):
            # Cancelled after the last checkpoint
            return await self._repo.get_status(job.id)

        self._metrics.record_job_finished(JobStatus.COMPLETED.value, duration)
        logger.info(
            "Job completed",
            extra={"job_id": job.id, "duration": f"{duration:.2f}s"},
        )

        for dependent in await self._tracker.release(job.id):
            await self._dispatcher.dispatch(dependent)

        return JobStatus.COMPLETED

    async def _checkpoint(self, job_id: str, progress: int) -> None:
        if not await self._repo.update_progress(job_id, progress):
            raise JobCancelledError(job_id)
        await self._leases.refresh(job_id, self.worker_id)
        logger.debug("Job progress updated", extra={"job_id": job_id, "progress": progress})

    async def _heartbeat_loop(self) -> None:
        """
        Periodically assert liveness and extend the current lease.
        """
        while not self._stopping.is_set():
            try:
                await asyncio.sleep(self._settings.heartbeat_interval_seconds)
                await self._heartbeats.beat(self.worker_id, self.lanes)

                if self._current_job is not None:
                    await self._leases.refresh(self._current_job, self.worker_id)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error sending heartbeat: {e}")


async def run_async(lanes: Sequence[str] | None = None) -> None:
    """Run the worker asynchronously."""
    setup_logging(process="worker")
    setup_tracing()
    store = await init_store()

    worker = Worker(store, lanes=lanes)
    bind_context(worker_id=worker.worker_id)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    finally:
        await close_store()


def run() -> None:
    """Run the worker. Lanes may be given as command line arguments."""
    asyncio.run(run_async(sys.argv[1:] or None))


if __name__ == "__main__":
    run()
