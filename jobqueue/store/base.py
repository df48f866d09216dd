"""
Store protocol.

The store is the only shared state between API processes, workers, the
reaper and the autoscaler. Every operation is atomic on a single key;
nothing is transactional across keys.
"""

from typing import Mapping, Protocol, Sequence


class Store(Protocol):
    """Key-value/hash/set/list primitive required by the job queue."""

    # Lists
    async def lpush(self, key: str, *values: str) -> int: ...

    async def rpush(self, key: str, *values: str) -> int: ...

    async def brpop(
        self, keys: Sequence[str], timeout: float = 0
    ) -> tuple[str, str] | None:
        """
        Blocking right-pop across keys, checked in order.

        Returns (key, value) or None on timeout. A timeout of 0 blocks
        indefinitely.
        """
        ...

    async def llen(self, key: str) -> int: ...

    async def lrange(self, key: str, start: int, end: int) -> list[str]: ...

    async def lrem(self, key: str, count: int, value: str) -> int: ...

    # Hashes
    async def hset(self, key: str, mapping: Mapping[str, str]) -> int: ...

    async def hget(self, key: str, field: str) -> str | None: ...

    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int: ...

    async def hset_if(
        self,
        key: str,
        field: str,
        expected: Sequence[str],
        mapping: Mapping[str, str],
    ) -> bool:
        """
        Compare-and-set on a hash.

        Writes mapping only if the key exists and field currently holds
        one of the expected values. Returns True when written.
        """
        ...

    # Sets
    async def sadd(self, key: str, *members: str) -> int: ...

    async def srem(self, key: str, *members: str) -> int: ...

    async def smembers(self, key: str) -> set[str]: ...

    async def scard(self, key: str) -> int: ...

    async def sismember(self, key: str, member: str) -> bool: ...

    # Plain keys and expiry
    async def set(self, key: str, value: str, ttl: float | None = None) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def expire(self, key: str, seconds: float) -> bool: ...

    async def exists(self, key: str) -> bool: ...

    async def delete(self, *keys: str) -> int: ...

    async def delete_if(
        self, key: str, expected: str, set_key: str, member: str
    ) -> bool:
        """
        Compare-and-delete on a plain key.

        Deletes key and removes member from set_key in one operation,
        only if key currently holds expected. Returns True when deleted.
        """
        ...

    async def scan_keys(self, pattern: str) -> list[str]: ...

    # Connection
    async def ping(self) -> bool: ...

    async def close(self) -> None: ...
