"""
Reaper module.
Contains the lease reaper that recovers jobs abandoned by dead workers.
"""

from jobqueue.reaper.main import Reaper, run

__all__ = ["Reaper", "run"]
