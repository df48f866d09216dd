"""
Store module.
Contains the store protocol, its Redis and in-memory implementations,
connection management and the job repository.
"""

from jobqueue.store.base import Store
from jobqueue.store.connection import (
    close_store,
    create_store,
    get_store,
    init_store,
)
from jobqueue.store.memory import InMemoryStore
from jobqueue.store.redis import RedisStore
from jobqueue.store.repository import JobRepository

__all__ = [
    "Store",
    "RedisStore",
    "InMemoryStore",
    "create_store",
    "init_store",
    "close_store",
    "get_store",
    "JobRepository",
]
