"""
Queue dispatcher.

Routes jobs into one of two FIFO lanes by priority. Producers push on
the left and consumers pop on the right, so a requeued job goes to the
tail of its lane behind every job already waiting.
"""

import logging
from collections.abc import Sequence
from typing import Any

from jobqueue.config import Settings, get_settings
from jobqueue.constants import DEFAULT_PRIORITY, SPAN_SUBMIT_JOB, JobPriority
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer
from jobqueue.queue.dependencies import DependencyTracker
from jobqueue.store.base import Store
from jobqueue.store.repository import JobRepository
from jobqueue.types.job import Job

logger = logging.getLogger(__name__)


class QueueDispatcher:
    """
    Writes new jobs and moves job ids in and out of lanes.

    The blocking pop in dequeue() is the only mutual-exclusion point of
    the system: it hands each id to exactly one worker.
    """

    def __init__(
        self,
        store: Store,
        settings: Settings | None = None,
        repository: JobRepository | None = None,
        tracker: DependencyTracker | None = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._repo = repository or JobRepository(store, self._settings)
        self._tracker = tracker or DependencyTracker(store, self._repo, self._settings)
        self._metrics = get_metrics()

    @property
    def lanes(self) -> list[str]:
        """Lanes in drain order, high priority first."""
        return [self._settings.high_priority_lane, self._settings.normal_lane]

    def lane_for(self, priority: JobPriority | str) -> str:
        """Select the lane for a priority class."""
        if JobPriority(priority) == JobPriority.HIGH:
            return self._settings.high_priority_lane
        return self._settings.normal_lane

    async def enqueue(
        self,
        job_type: str,
        payload: Any = None,
        priority: JobPriority | str = DEFAULT_PRIORITY,
        dependencies: Sequence[str] = (),
    ) -> str:
        """
        Submit a new job.

        The record is written before the id becomes visible in a lane, so
        a dequeuer never sees an id without its record.

        Args:
            job_type: Opaque type tag.
            payload: JSON-serializable payload.
            priority: "high" or "normal".
            dependencies: Ids of jobs that must complete first.

        Returns:
            The new job id.

        Raises:
            InvalidJobOperationError: If the dependency list is invalid.
            StoreUnavailableError: If the store cannot be reached.
        """
        priority = JobPriority(priority)
        dependencies = list(dependencies)

        with get_tracer().start_as_current_span(SPAN_SUBMIT_JOB) as span:
            await self._tracker.validate(dependencies)

            job_id = self._repo.new_job_id()
            span.set_attribute("job_id", job_id)
            span.set_attribute("priority", priority.value)

            await self._repo.create_job(job_id, job_type, payload, priority)
            ready = await self._tracker.register(job_id, dependencies)

            if ready:
                await self._push(job_id, priority)
            else:
                await self._tracker.block(job_id)
                # The last prerequisite may have completed before the job
                # was parked; claim it back if nobody else did.
                if await self._tracker.is_ready(job_id) and await self._tracker.unblock(job_id):
                    await self._push(job_id, priority)
                else:
                    logger.info(
                        "Job waiting for dependencies",
                        extra={"job_id": job_id, "dependencies": dependencies},
                    )

        self._metrics.record_job_submitted(priority.value)
        return job_id

    async def _push(self, job_id: str, priority: JobPriority) -> None:
        lane = self.lane_for(priority)
        await self._store.lpush(lane, job_id)
        logger.info("Job enqueued", extra={"job_id": job_id, "lane": lane})

    async def dispatch(self, job_id: str) -> bool:
        """
        Push an existing job to its lane, e.g. once it is unblocked.

        Returns:
            False if the job no longer exists.
        """
        job = await self._repo.get_job(job_id)
        if job is None:
            return False
        await self._push(job_id, job.priority)
        return True

    async def requeue(self, job: Job) -> None:
        """Append a job to the tail of its original lane."""
        lane = self.lane_for(job.priority)
        await self._store.lpush(lane, job.id)
        logger.debug("Job requeued", extra={"job_id": job.id, "lane": lane})

    async def dequeue(
        self,
        lanes: Sequence[str] | None = None,
        timeout: float = 0,
    ) -> str | None:
        """
        Block until a job id is available in one of the lanes.

        Lanes are checked in order, so passing the high lane first drains
        it before the normal lane.

        Args:
            lanes: Lanes to pop from. Defaults to all lanes by priority.
            timeout: Seconds to wait; 0 waits indefinitely.

        Returns:
            The job id, or None on timeout.
        """
        item = await self._store.brpop(lanes or self.lanes, timeout=timeout)
        if item is None:
            return None
        _, job_id = item
        return job_id

    async def remove(self, job_id: str) -> None:
        """Remove every occurrence of a job id from the lanes."""
        for lane in self.lanes:
            await self._store.lrem(lane, 0, job_id)

    async def lane_depths(self) -> dict[str, int]:
        """Current length of each lane."""
        depths = {lane: await self._store.llen(lane) for lane in self.lanes}
        for lane, depth in depths.items():
            self._metrics.update_queue_depth(lane, depth)
        return depths

    async def total_depth(self) -> int:
        """Sum of all lane lengths."""
        return sum((await self.lane_depths()).values())
