"""
Unit tests for the Redis store against a mocked client.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from jobqueue.errors import StoreUnavailableError
from jobqueue.store import RedisStore


@pytest.fixture
def redis_client() -> MagicMock:
    client = MagicMock()
    client.register_script.return_value = AsyncMock(return_value=1)
    return client


@pytest.fixture
def redis_store(redis_client: MagicMock) -> RedisStore:
    return RedisStore(client=redis_client)


class TestRedisStore:
    """Tests for command mapping and error translation."""

    @pytest.mark.asyncio
    async def test_brpop_passes_keys_in_order(self, redis_store, redis_client):
        redis_client.brpop = AsyncMock(return_value=["high_priority_jobs", "job:1"])

        item = await redis_store.brpop(["high_priority_jobs", "normal_jobs"], timeout=1)

        assert item == ("high_priority_jobs", "job:1")
        redis_client.brpop.assert_awaited_once_with(
            ["high_priority_jobs", "normal_jobs"], timeout=1
        )

    @pytest.mark.asyncio
    async def test_brpop_timeout(self, redis_store, redis_client):
        redis_client.brpop = AsyncMock(return_value=None)

        assert await redis_store.brpop(["normal_jobs"], timeout=1) is None

    @pytest.mark.asyncio
    async def test_set_with_ttl_uses_milliseconds(self, redis_store, redis_client):
        redis_client.set = AsyncMock()

        await redis_store.set("lease:job:1", "worker:a", ttl=1.5)

        redis_client.set.assert_awaited_once_with("lease:job:1", "worker:a", px=1500)

    @pytest.mark.asyncio
    async def test_hset_if_script_arguments(self, redis_store, redis_client):
        script = redis_client.register_script.return_value

        applied = await redis_store.hset_if(
            "job:1", "status", ["PENDING", "PROCESSING"], {"status": "CANCELLED"}
        )

        assert applied is True
        script.assert_awaited_once_with(
            keys=["job:1"],
            args=["status", 2, "PENDING", "PROCESSING", "status", "CANCELLED"],
        )

    @pytest.mark.asyncio
    async def test_hset_if_not_applied(self, redis_store, redis_client):
        redis_client.register_script.return_value.return_value = 0

        assert await redis_store.hset_if("job:1", "status", ["PENDING"], {"status": "X"}) is False

    @pytest.mark.asyncio
    async def test_connection_error_becomes_store_unavailable(self, redis_store, redis_client):
        redis_client.lpush = AsyncMock(side_effect=RedisConnectionError("connection refused"))

        with pytest.raises(StoreUnavailableError) as exc_info:
            await redis_store.lpush("normal_jobs", "job:1")

        assert exc_info.value.operation == "lpush"

    @pytest.mark.asyncio
    async def test_delete_without_keys(self, redis_store, redis_client):
        redis_client.delete = AsyncMock()

        assert await redis_store.delete() == 0
        redis_client.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_if_script_arguments(self, redis_store, redis_client):
        script = redis_client.register_script.return_value

        deleted = await redis_store.delete_if(
            "lease:job:1", "worker:a", "processing_jobs", "job:1"
        )

        assert deleted is True
        script.assert_awaited_once_with(
            keys=["lease:job:1", "processing_jobs"],
            args=["worker:a", "job:1"],
        )

    @pytest.mark.asyncio
    async def test_delete_if_other_owner(self, redis_store, redis_client):
        redis_client.register_script.return_value.return_value = 0

        assert await redis_store.delete_if(
            "lease:job:1", "worker:a", "processing_jobs", "job:1"
        ) is False
