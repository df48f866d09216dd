"""
Retry and dead-letter policy.

A failed attempt increments the job's durable retry counter. Below the
limit the job goes back to PENDING at the tail of its original lane with
no backoff; at the limit it becomes FAILED and its id is appended to the
dead-letter queue.
"""

import logging

from jobqueue.config import Settings, get_settings
from jobqueue.constants import JobStatus
from jobqueue.observability.metrics import get_metrics
from jobqueue.queue.dispatcher import QueueDispatcher
from jobqueue.store.base import Store
from jobqueue.store.repository import JobRepository
from jobqueue.types.job import Job

logger = logging.getLogger(__name__)


class RetryPolicy:
    """Fixed-attempt retry policy with a dead-letter queue."""

    def __init__(
        self,
        store: Store,
        dispatcher: QueueDispatcher,
        settings: Settings | None = None,
        repository: JobRepository | None = None,
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._settings = settings or get_settings()
        self._repo = repository or JobRepository(store, self._settings)
        self._metrics = get_metrics()

    @property
    def max_attempts(self) -> int:
        return self._settings.max_attempts

    async def handle_failure(self, job: Job, error: str) -> JobStatus | None:
        """
        Apply the policy to a failed PROCESSING job.

        Args:
            job: The job snapshot taken when it was dequeued.
            error: Failure description stored as last_error.

        Returns:
            PENDING if requeued, FAILED if dead-lettered, or None if the
            job had already left PROCESSING (cancelled or deleted).
        """
        if await self._repo.get_status(job.id) != JobStatus.PROCESSING:
            logger.info("Job left processing, no retry", extra={"job_id": job.id})
            return None

        retries = await self._repo.increment_retries(job.id)
        extra = {"last_error": error[:1000]}

        if retries < self.max_attempts:
            if not await self._repo.transition(
                job.id, [JobStatus.PROCESSING], JobStatus.PENDING, extra
            ):
                return None
            await self._dispatcher.requeue(job)
            self._metrics.record_retry(job.priority.value)
            logger.info(
                "Retrying job",
                extra={"job_id": job.id, "retries": retries, "error": error},
            )
            return JobStatus.PENDING

        if not await self._repo.transition(
            job.id, [JobStatus.PROCESSING], JobStatus.FAILED, extra
        ):
            return None
        await self._store.lpush(self._settings.dead_letter_queue, job.id)
        self._metrics.record_dead_lettered(job.priority.value)
        logger.warning(
            "Job moved to dead letter queue",
            extra={"job_id": job.id, "retries": retries, "error": error},
        )
        return JobStatus.FAILED

    async def dead_letters(self) -> list[str]:
        """Ids in the dead-letter queue, oldest first."""
        return list(reversed(await self._store.lrange(self._settings.dead_letter_queue, 0, -1)))

    async def dead_letter_count(self) -> int:
        return await self._store.llen(self._settings.dead_letter_queue)
