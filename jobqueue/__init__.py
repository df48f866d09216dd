"""
Distributed Job Queue

A job queue over a shared key-value store with two priority lanes,
dependencies between jobs, bounded retries with a dead-letter queue,
worker heartbeats and a queue-depth driven autoscaler.
"""

__version__ = "1.0.0"
