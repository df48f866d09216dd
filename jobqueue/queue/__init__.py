"""
Queue module.
Contains the dispatcher, dependency tracker, retry policy, leases and
the service facade used by the API.
"""

from jobqueue.queue.dependencies import DependencyTracker
from jobqueue.queue.dispatcher import QueueDispatcher
from jobqueue.queue.leases import LeaseManager
from jobqueue.queue.retry import RetryPolicy
from jobqueue.queue.service import JobService

__all__ = [
    "DependencyTracker",
    "QueueDispatcher",
    "LeaseManager",
    "RetryPolicy",
    "JobService",
]
