"""
Redis-backed store.

Uses the redis-py asyncio client. Connection and timeout errors are
translated to StoreUnavailableError so callers see one transient error
type regardless of backend.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Mapping, Sequence

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from jobqueue.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

# KEYS[1] = hash key
# ARGV[1] = field, ARGV[2] = number of expected values,
# ARGV[3 .. 2+n] = expected values, remaining ARGV = field/value pairs
_HSET_IF_SCRIPT = """
local current = redis.call('HGET', KEYS[1], ARGV[1])
if not current then
    return 0
end
local n = tonumber(ARGV[2])
for i = 1, n do
    if current == ARGV[2 + i] then
        redis.call('HSET', KEYS[1], unpack(ARGV, 3 + n))
        return 1
    end
end
return 0
"""

# KEYS[1] = plain key, KEYS[2] = set key
# ARGV[1] = expected value, ARGV[2] = set member
_DELETE_IF_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    redis.call('DEL', KEYS[1])
    redis.call('SREM', KEYS[2], ARGV[2])
    return 1
end
return 0
"""


@contextmanager
def _guard(operation: str) -> Iterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.warning(
            "Store unavailable",
            extra={"operation": operation, "error": str(e)},
        )
        raise StoreUnavailableError(operation, str(e)) from e


class RedisStore:
    """Store implementation on top of a Redis server."""

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        socket_timeout: float | None = None,
        client: aioredis.Redis | None = None,
    ):
        """
        Initialize the store.

        Args:
            url: Redis connection URL.
            socket_timeout: Optional socket timeout in seconds.
            client: Pre-built client, mostly for tests.
        """
        self._client = client or aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
        )
        self._hset_if = self._client.register_script(_HSET_IF_SCRIPT)
        self._delete_if = self._client.register_script(_DELETE_IF_SCRIPT)

    @property
    def client(self) -> aioredis.Redis:
        return self._client

    async def lpush(self, key: str, *values: str) -> int:
        with _guard("lpush"):
            return await self._client.lpush(key, *values)

    async def rpush(self, key: str, *values: str) -> int:
        with _guard("rpush"):
            return await self._client.rpush(key, *values)

    async def brpop(
        self, keys: Sequence[str], timeout: float = 0
    ) -> tuple[str, str] | None:
        with _guard("brpop"):
            item = await self._client.brpop(list(keys), timeout=timeout)
        if item is None:
            return None
        key, value = item
        return key, value

    async def llen(self, key: str) -> int:
        with _guard("llen"):
            return await self._client.llen(key)

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        with _guard("lrange"):
            return await self._client.lrange(key, start, end)

    async def lrem(self, key: str, count: int, value: str) -> int:
        with _guard("lrem"):
            return await self._client.lrem(key, count, value)

    async def hset(self, key: str, mapping: Mapping[str, str]) -> int:
        with _guard("hset"):
            return await self._client.hset(key, mapping=dict(mapping))

    async def hget(self, key: str, field: str) -> str | None:
        with _guard("hget"):
            return await self._client.hget(key, field)

    async def hgetall(self, key: str) -> dict[str, str]:
        with _guard("hgetall"):
            return await self._client.hgetall(key)

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        with _guard("hincrby"):
            return await self._client.hincrby(key, field, amount)

    async def hset_if(
        self,
        key: str,
        field: str,
        expected: Sequence[str],
        mapping: Mapping[str, str],
    ) -> bool:
        pairs: list[str] = []
        for name, value in mapping.items():
            pairs.extend((name, value))
        with _guard("hset_if"):
            written = await self._hset_if(
                keys=[key],
                args=[field, len(expected), *expected, *pairs],
            )
        return bool(written)

    async def sadd(self, key: str, *members: str) -> int:
        with _guard("sadd"):
            return await self._client.sadd(key, *members)

    async def srem(self, key: str, *members: str) -> int:
        with _guard("srem"):
            return await self._client.srem(key, *members)

    async def smembers(self, key: str) -> set[str]:
        with _guard("smembers"):
            return set(await self._client.smembers(key))

    async def scard(self, key: str) -> int:
        with _guard("scard"):
            return await self._client.scard(key)

    async def sismember(self, key: str, member: str) -> bool:
        with _guard("sismember"):
            return bool(await self._client.sismember(key, member))

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        with _guard("set"):
            if ttl is None:
                await self._client.set(key, value)
            else:
                await self._client.set(key, value, px=int(ttl * 1000))

    async def get(self, key: str) -> str | None:
        with _guard("get"):
            return await self._client.get(key)

    async def expire(self, key: str, seconds: float) -> bool:
        with _guard("expire"):
            return bool(await self._client.pexpire(key, int(seconds * 1000)))

    async def exists(self, key: str) -> bool:
        with _guard("exists"):
            return await self._client.exists(key) > 0

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        with _guard("delete"):
            return await self._client.delete(*keys)

    async def delete_if(
        self, key: str, expected: str, set_key: str, member: str
    ) -> bool:
        with _guard("delete_if"):
            deleted = await self._delete_if(keys=[key, set_key], args=[expected, member])
        return bool(deleted)

    async def scan_keys(self, pattern: str) -> list[str]:
        with _guard("scan"):
            return [key async for key in self._client.scan_iter(match=pattern)]

    async def ping(self) -> bool:
        with _guard("ping"):
            return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()
