"""
Worker heartbeat and liveness registry.

Each worker rewrites its own record every heartbeat interval. Liveness
is derived by readers: a worker is ALIVE while its last heartbeat is
younger than the heartbeat TTL, DEAD afterwards. The record itself is
kept for a longer retention period as a tombstone, then expires.
"""

import logging
from datetime import datetime, timezone

from jobqueue.config import Settings, get_settings
from jobqueue.constants import WorkerStatus
from jobqueue.store.base import Store
from jobqueue.types.job import WorkerHealth, from_millis

logger = logging.getLogger(__name__)


class HeartbeatRegistry:
    """Store-backed registry of worker heartbeats."""

    def __init__(self, store: Store, settings: Settings | None = None):
        self._store = store
        self._settings = settings or get_settings()

    @property
    def ttl_seconds(self) -> float:
        return self._settings.heartbeat_ttl_seconds

    @property
    def retention_seconds(self) -> float:
        return max(self._settings.worker_record_retention_seconds, self.ttl_seconds)

    async def beat(self, worker_id: str, lanes: list[str], now: datetime | None = None) -> None:
        """
        Assert liveness for a worker.

        Args:
            worker_id: The worker's record key.
            lanes: Lanes the worker pops from.
            now: Heartbeat time. Defaults to the current time.
        """
        now = now or datetime.now(timezone.utc)
        await self._store.hset(
            worker_id,
            {
                "status": WorkerStatus.ALIVE.value,
                "queue": ",".join(lanes),
                "last_seen": str(int(now.timestamp() * 1000)),
            },
        )
        await self._store.expire(worker_id, self.retention_seconds)
        logger.debug("Heartbeat sent", extra={"worker_id": worker_id})

    def derive_status(self, last_seen: datetime | None, now: datetime | None = None) -> WorkerStatus:
        """ALIVE iff the last heartbeat is younger than the TTL."""
        if last_seen is None:
            return WorkerStatus.DEAD
        now = now or datetime.now(timezone.utc)
        age = (now - last_seen).total_seconds()
        return WorkerStatus.ALIVE if age < self.ttl_seconds else WorkerStatus.DEAD

    async def get_worker(self, worker_id: str, now: datetime | None = None) -> WorkerHealth | None:
        record = await self._store.hgetall(worker_id)
        if not record:
            return None
        last_seen = from_millis(record.get("last_seen"))
        return WorkerHealth(
            worker_id=worker_id,
            queue=record.get("queue") or None,
            status=self.derive_status(last_seen, now),
            last_seen=last_seen,
        )

    async def list_workers(self, now: datetime | None = None) -> list[WorkerHealth]:
        """All known workers with derived status."""
        workers = []
        pattern = f"{self._settings.worker_key_prefix}*"
        for worker_id in sorted(await self._store.scan_keys(pattern)):
            worker = await self.get_worker(worker_id, now)
            if worker is not None:
                workers.append(worker)
        return workers

    async def remove(self, worker_id: str) -> None:
        await self._store.delete(worker_id)
