"""
Worker module.
Contains the worker loop, job handlers and the heartbeat registry.
"""
