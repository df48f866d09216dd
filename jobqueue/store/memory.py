"""
In-process store.

Single event loop implementation of the Store protocol, used for tests
and local development. Every operation runs without yielding to the loop
so it is atomic with respect to other coroutines. Keys with an expiry
are purged lazily on access.
"""

import asyncio
import fnmatch
import time
from collections.abc import Callable
from typing import Any, Mapping, Sequence


class InMemoryStore:
    """Store implementation backed by Python containers."""

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Initialize the store.

        Args:
            clock: Wall clock in seconds used for key expiry.
        """
        self._clock = clock
        self._data: dict[str, Any] = {}
        self._expiry: dict[str, float] = {}
        self._condition = asyncio.Condition()

    def _purge(self, key: str) -> None:
        expires_at = self._expiry.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._data.pop(key, None)
            self._expiry.pop(key, None)

    def _lookup(self, key: str, kind: type) -> Any:
        self._purge(key)
        value = self._data.get(key)
        if value is not None and not isinstance(value, kind):
            raise TypeError(f"WRONGTYPE key {key} holds {type(value).__name__}")
        return value

    def _drop_if_empty(self, key: str) -> None:
        if not self._data.get(key):
            self._data.pop(key, None)
            self._expiry.pop(key, None)

    # Lists

    async def lpush(self, key: str, *values: str) -> int:
        async with self._condition:
            items = self._lookup(key, list)
            if items is None:
                items = self._data[key] = []
            for value in values:
                items.insert(0, value)
            self._condition.notify_all()
            return len(items)

    async def rpush(self, key: str, *values: str) -> int:
        async with self._condition:
            items = self._lookup(key, list)
            if items is None:
                items = self._data[key] = []
            items.extend(values)
            self._condition.notify_all()
            return len(items)

    def _pop_first(self, keys: Sequence[str]) -> tuple[str, str] | None:
        for key in keys:
            items = self._lookup(key, list)
            if items:
                value = items.pop()
                self._drop_if_empty(key)
                return key, value
        return None

    async def brpop(
        self, keys: Sequence[str], timeout: float = 0
    ) -> tuple[str, str] | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None
        async with self._condition:
            while True:
                item = self._pop_first(keys)
                if item is not None:
                    return item
                if deadline is None:
                    await self._condition.wait()
                    continue
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return None
                try:
                    await asyncio.wait_for(self._condition.wait(), remaining)
                except TimeoutError:
                    return self._pop_first(keys)

    async def llen(self, key: str) -> int:
        return len(self._lookup(key, list) or [])

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        items = self._lookup(key, list) or []
        stop = None if end == -1 else end + 1
        return list(items[start:stop])

    async def lrem(self, key: str, count: int, value: str) -> int:
        items = self._lookup(key, list)
        if not items:
            return 0
        removed = 0
        kept: list[str] = []
        for item in items:
            if item == value and (count == 0 or removed < abs(count)):
                removed += 1
                continue
            kept.append(item)
        self._data[key] = kept
        self._drop_if_empty(key)
        return removed

    # Hashes

    async def hset(self, key: str, mapping: Mapping[str, str]) -> int:
        fields = self._lookup(key, dict)
        if fields is None:
            fields = self._data[key] = {}
        added = sum(1 for name in mapping if name not in fields)
        fields.update({name: str(value) for name, value in mapping.items()})
        return added

    async def hget(self, key: str, field: str) -> str | None:
        return (self._lookup(key, dict) or {}).get(field)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self._lookup(key, dict) or {})

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        fields = self._lookup(key, dict)
        if fields is None:
            fields = self._data[key] = {}
        value = int(fields.get(field, "0")) + amount
        fields[field] = str(value)
        return value

    async def hset_if(
        self,
        key: str,
        field: str,
        expected: Sequence[str],
        mapping: Mapping[str, str],
    ) -> bool:
        fields = self._lookup(key, dict)
        if not fields or fields.get(field) not in expected:
            return False
        fields.update({name: str(value) for name, value in mapping.items()})
        return True

    # Sets

    async def sadd(self, key: str, *members: str) -> int:
        current = self._lookup(key, set)
        if current is None:
            current = self._data[key] = set()
        added = len(set(members) - current)
        current.update(members)
        return added

    async def srem(self, key: str, *members: str) -> int:
        current = self._lookup(key, set)
        if not current:
            return 0
        removed = len(current & set(members))
        current.difference_update(members)
        self._drop_if_empty(key)
        return removed

    async def smembers(self, key: str) -> set[str]:
        return set(self._lookup(key, set) or ())

    async def scard(self, key: str) -> int:
        return len(self._lookup(key, set) or ())

    async def sismember(self, key: str, member: str) -> bool:
        return member in (self._lookup(key, set) or ())

    # Plain keys and expiry

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        self._data[key] = str(value)
        if ttl is None:
            self._expiry.pop(key, None)
        else:
            self._expiry[key] = self._clock() + ttl

    async def get(self, key: str) -> str | None:
        return self._lookup(key, str)

    async def expire(self, key: str, seconds: float) -> bool:
        self._purge(key)
        if key not in self._data:
            return False
        self._expiry[key] = self._clock() + seconds
        return True

    async def exists(self, key: str) -> bool:
        self._purge(key)
        return key in self._data

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self._data:
                removed += 1
            self._data.pop(key, None)
            self._expiry.pop(key, None)
        return removed

    async def delete_if(
        self, key: str, expected: str, set_key: str, member: str
    ) -> bool:
        if self._lookup(key, str) != expected:
            return False
        self._data.pop(key, None)
        self._expiry.pop(key, None)
        members = self._lookup(set_key, set)
        if members:
            members.discard(member)
            self._drop_if_empty(set_key)
        return True

    async def scan_keys(self, pattern: str) -> list[str]:
        for key in list(self._data):
            self._purge(key)
        return [key for key in self._data if fnmatch.fnmatchcase(key, pattern)]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()
        self._expiry.clear()
