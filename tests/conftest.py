"""
Pytest configuration and shared fixtures.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from jobqueue.api.main import create_app
from jobqueue.api.routes.jobs import get_job_service
from jobqueue.config import Settings
from jobqueue.queue.service import JobService
from jobqueue.store import InMemoryStore, close_store, init_store
from jobqueue.worker.main import Worker


class FakeClock:
    """Manually advanced wall clock for expiry tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        store_backend="memory",
        log_level="DEBUG",
        log_format="console",
        tracing_enabled=False,
        progress_step_delay_seconds=0,
        worker_dequeue_timeout_seconds=0.05,
        worker_poll_interval_seconds=0.01,
        heartbeat_interval_seconds=0.05,
        lease_ttl_seconds=5,
        reaper_interval_seconds=1,
        autoscaler_interval_seconds=0.05,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def store() -> AsyncGenerator[InMemoryStore]:
    """Create an empty in-memory store."""
    store = InMemoryStore()
    yield store
    await store.close()


@pytest.fixture
def service(store: InMemoryStore, test_settings: Settings) -> JobService:
    return JobService(store, test_settings)


@pytest.fixture
def worker(store: InMemoryStore, test_settings: Settings) -> Worker:
    return Worker(store, test_settings, worker_id="worker:test")


@pytest_asyncio.fixture
async def app(store: InMemoryStore, test_settings: Settings) -> AsyncGenerator[FastAPI]:
    """Create a FastAPI app wired to the in-memory store."""
    await init_store(store=store)

    app = create_app(store=store)
    app.dependency_overrides[get_job_service] = lambda: JobService(store, test_settings)
    yield app

    await close_store()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_job_payload() -> dict[str, Any]:
    """Create a sample job payload."""
    return {
        "type": "echo",
        "data": {"message": "Hello, World!"},
    }
