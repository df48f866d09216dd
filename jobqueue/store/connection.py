"""
Store connection management.
Handles creation and lifetime of the process-wide store instance.
"""

import logging

from jobqueue.config import Settings, get_settings
from jobqueue.store.base import Store
from jobqueue.store.memory import InMemoryStore
from jobqueue.store.redis import RedisStore

logger = logging.getLogger(__name__)

# Global store instance
_store: Store | None = None


def create_store(settings: Settings | None = None) -> Store:
    """
    Build a store for the configured backend.

    Args:
        settings: Optional settings. Uses cached settings if not provided.

    Returns:
        Store: A new, unshared store instance.

    Raises:
        ValueError: If the backend name is unknown.
    """
    settings = settings or get_settings()
    backend = settings.store_backend.lower()

    if backend == "redis":
        return RedisStore(
            settings.redis_url,
            socket_timeout=settings.redis_socket_timeout_seconds,
        )
    if backend == "memory":
        return InMemoryStore()

    raise ValueError(f"Unknown store backend: {settings.store_backend}")


async def init_store(settings: Settings | None = None, store: Store | None = None) -> Store:
    """
    Initialize the process-wide store.
    Should be called on process startup.

    Args:
        settings: Optional settings for backend selection.
        store: Pre-built store to install instead of creating one.

    Returns:
        Store: The installed store.
    """
    global _store
    _store = store or create_store(settings)
    logger.info("Store connection initialized", extra={"store": type(_store).__name__})
    return _store


async def close_store() -> None:
    """
    Close the process-wide store.
    Should be called on process shutdown.
    """
    global _store
    if _store is not None:
        await _store.close()
        _store = None
        logger.info("Store connection closed")


def get_store() -> Store:
    """
    Get the process-wide store.

    Returns:
        Store: The store instance.

    Raises:
        RuntimeError: If the store is not initialized.
    """
    if _store is None:
        raise RuntimeError("Store not initialized. Call init_store() first.")
    return _store
