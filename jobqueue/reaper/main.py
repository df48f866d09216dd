"""
Lease reaper for recovering abandoned jobs.

The reaper runs periodically to find PROCESSING jobs whose lease has
expired, which happens when a worker crashes or its instance is
terminated by the autoscaler, and hands them to the retry policy.
"""

import asyncio
import logging
import signal

from jobqueue.config import Settings, get_settings
from jobqueue.constants import SPAN_REAP_LEASES, JobStatus
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer, setup_tracing
from jobqueue.queue.dispatcher import QueueDispatcher
from jobqueue.queue.leases import LeaseManager
from jobqueue.queue.retry import RetryPolicy
from jobqueue.store import close_store, init_store
from jobqueue.store.base import Store
from jobqueue.store.repository import JobRepository

logger = logging.getLogger(__name__)


class Reaper:
    """
    Lease reaper that recovers jobs from dead workers.

    Runs periodically to:
    1. Scan the processing set for jobs without a live lease
    2. Apply the retry policy to those still PROCESSING
    3. Drop processing-set entries for jobs that already moved on
    """

    def __init__(
        self,
        store: Store,
        settings: Settings | None = None,
        interval_seconds: int | None = None,
    ):
        """
        Initialize the reaper.

        Args:
            store: The shared store.
            settings: Optional settings. Uses cached settings if not provided.
            interval_seconds: Seconds between reaper runs.
        """
        self._settings = settings or get_settings()
        self.interval = interval_seconds or self._settings.reaper_interval_seconds
        self._repo = JobRepository(store, self._settings)
        self._leases = LeaseManager(store, self._settings)
        self._retry = RetryPolicy(
            store,
            QueueDispatcher(store, self._settings, self._repo),
            self._settings,
            self._repo,
        )
        self._running = False
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Start the reaper loop."""
        logger.info(f"Reaper starting with interval {self.interval}s")
        self._running = True

        while self._running:
            try:
                recovered = await self._recover_expired_leases()

                if recovered > 0:
                    logger.info(f"Recovered {recovered} expired leases")

            except Exception as e:
                logger.exception(f"Error in reaper loop: {e}")

            await asyncio.sleep(self.interval)

        logger.info("Reaper stopped")

    async def stop(self) -> None:
        """Stop the reaper."""
        logger.info("Reaper stopping")
        self._running = False

    async def _recover_expired_leases(self) -> int:
        """
        Find and recover jobs with expired leases.

        Returns:
            Number of jobs recovered.
        """
        recovered = 0

        with get_tracer().start_as_current_span(SPAN_REAP_LEASES):
            for job_id in sorted(await self._leases.held_jobs()):
                if await self._leases.owner(job_id) is not None:
                    continue

                # Leave the processing set before any requeue
                if not await self._leases.reclaim(job_id):
                    continue

                job = await self._repo.get_job(job_id)
                if job is None or job.status != JobStatus.PROCESSING:
                    continue

                status = await self._retry.handle_failure(job, "Lease expired")

                if status is not None:
                    recovered += 1
                    self._metrics.record_lease_expired()
                    logger.warning(
                        "Recovered job from expired lease",
                        extra={
                            "job_id": job_id,
                            "worker_id": job.worker_id,
                            "status": status.value,
                        },
                    )

        return recovered

    async def run_once(self) -> int:
        """
        Run the reaper once (for testing or cron-style execution).

        Returns:
            Number of jobs recovered.
        """
        return await self._recover_expired_leases()


async def run_async() -> None:
    """Run the reaper asynchronously."""
    setup_logging(process="reaper")
    setup_tracing()
    store = await init_store()

    reaper = Reaper(store)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(reaper.stop())
        )

    try:
        await reaper.start()
    finally:
        await close_store()


def run() -> None:
    """Run the reaper."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
