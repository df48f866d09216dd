"""
Unit tests for the in-memory store.
"""

import asyncio

import pytest

from jobqueue.store import InMemoryStore


class TestInMemoryLists:
    """Tests for list operations and the blocking pop."""

    @pytest.mark.asyncio
    async def test_lpush_brpop_is_fifo(self, store: InMemoryStore):
        await store.lpush("lane", "a")
        await store.lpush("lane", "b")
        await store.lpush("lane", "c")

        popped = [await store.brpop(["lane"], timeout=0.01) for _ in range(3)]

        assert [value for _, value in popped] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_brpop_checks_keys_in_order(self, store: InMemoryStore):
        await store.lpush("normal", "n1")
        await store.lpush("high", "h1")

        assert await store.brpop(["high", "normal"], timeout=0.01) == ("high", "h1")
        assert await store.brpop(["high", "normal"], timeout=0.01) == ("normal", "n1")

    @pytest.mark.asyncio
    async def test_brpop_times_out(self, store: InMemoryStore):
        assert await store.brpop(["empty"], timeout=0.02) is None

    @pytest.mark.asyncio
    async def test_brpop_wakes_on_push(self, store: InMemoryStore):
        waiter = asyncio.create_task(store.brpop(["lane"], timeout=1))
        await asyncio.sleep(0.01)
        await store.lpush("lane", "late")

        assert await waiter == ("lane", "late")

    @pytest.mark.asyncio
    async def test_each_item_goes_to_one_consumer(self, store: InMemoryStore):
        consumers = [asyncio.create_task(store.brpop(["lane"], timeout=0.1)) for _ in range(3)]
        await asyncio.sleep(0.01)
        await store.lpush("lane", "only")

        results = await asyncio.gather(*consumers)

        assert [r for r in results if r is not None] == [("lane", "only")]

    @pytest.mark.asyncio
    async def test_lrem_and_llen(self, store: InMemoryStore):
        await store.lpush("lane", "a", "b", "a")

        assert await store.lrem("lane", 0, "a") == 2
        assert await store.llen("lane") == 1
        assert await store.lrange("lane", 0, -1) == ["b"]

    @pytest.mark.asyncio
    async def test_wrong_type_raises(self, store: InMemoryStore):
        await store.sadd("key", "member")

        with pytest.raises(TypeError):
            await store.lpush("key", "value")


class TestInMemoryHashes:
    """Tests for hashes and the conditional write."""

    @pytest.mark.asyncio
    async def test_hset_if_applies_on_match(self, store: InMemoryStore):
        await store.hset("job:1", {"status": "PENDING"})

        applied = await store.hset_if("job:1", "status", ["PENDING"], {"status": "PROCESSING"})

        assert applied is True
        assert await store.hget("job:1", "status") == "PROCESSING"

    @pytest.mark.asyncio
    async def test_hset_if_rejects_mismatch(self, store: InMemoryStore):
        await store.hset("job:1", {"status": "CANCELLED"})

        applied = await store.hset_if("job:1", "status", ["PROCESSING"], {"status": "COMPLETED"})

        assert applied is False
        assert await store.hget("job:1", "status") == "CANCELLED"

    @pytest.mark.asyncio
    async def test_hset_if_missing_key(self, store: InMemoryStore):
        assert await store.hset_if("job:none", "status", ["PENDING"], {"status": "X"}) is False
        assert await store.exists("job:none") is False

    @pytest.mark.asyncio
    async def test_hincrby(self, store: InMemoryStore):
        await store.hset("job:1", {"retries": "0"})

        assert await store.hincrby("job:1", "retries") == 1
        assert await store.hincrby("job:1", "retries") == 2


class TestInMemoryExpiry:
    """Tests for key expiry against a fake clock."""

    @pytest.mark.asyncio
    async def test_set_with_ttl_expires(self, clock):
        store = InMemoryStore(clock=clock)
        await store.set("lease:job:1", "worker:a", ttl=30)

        clock.advance(29)
        assert await store.get("lease:job:1") == "worker:a"

        clock.advance(1)
        assert await store.get("lease:job:1") is None

    @pytest.mark.asyncio
    async def test_expire_hash_and_scan(self, clock):
        store = InMemoryStore(clock=clock)
        await store.hset("worker:a", {"status": "ALIVE"})
        await store.hset("worker:b", {"status": "ALIVE"})
        await store.expire("worker:a", 10)

        assert sorted(await store.scan_keys("worker:*")) == ["worker:a", "worker:b"]

        clock.advance(11)
        assert await store.scan_keys("worker:*") == ["worker:b"]

    @pytest.mark.asyncio
    async def test_expire_missing_key(self, store: InMemoryStore):
        assert await store.expire("nothing", 5) is False

    @pytest.mark.asyncio
    async def test_delete_if_owner_matches(self, store: InMemoryStore):
        await store.set("lease:job:1", "worker:a", ttl=30)
        await store.sadd("processing_jobs", "job:1")

        assert await store.delete_if("lease:job:1", "worker:a", "processing_jobs", "job:1")
        assert await store.get("lease:job:1") is None
        assert await store.smembers("processing_jobs") == set()

    @pytest.mark.asyncio
    async def test_delete_if_other_owner_keeps_both(self, store: InMemoryStore):
        await store.set("lease:job:1", "worker:b", ttl=30)
        await store.sadd("processing_jobs", "job:1")

        assert not await store.delete_if("lease:job:1", "worker:a", "processing_jobs", "job:1")
        assert await store.get("lease:job:1") == "worker:b"
        assert await store.smembers("processing_jobs") == {"job:1"}

    @pytest.mark.asyncio
    async def test_delete_if_expired_key(self, clock):
        store = InMemoryStore(clock=clock)
        await store.set("lease:job:1", "worker:a", ttl=5)
        await store.sadd("processing_jobs", "job:1")
        clock.advance(6)

        assert not await store.delete_if("lease:job:1", "worker:a", "processing_jobs", "job:1")
        assert await store.smembers("processing_jobs") == {"job:1"}
