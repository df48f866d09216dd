"""
Autoscaler module.
Contains the queue-depth driven control loop and the fleet boundary.
"""

from jobqueue.autoscaler.fleet import EC2Fleet, FleetManager
from jobqueue.autoscaler.main import Autoscaler, run
from jobqueue.autoscaler.policy import ScalingDecision, ScalingPolicy

__all__ = [
    "Autoscaler",
    "EC2Fleet",
    "FleetManager",
    "ScalingDecision",
    "ScalingPolicy",
    "run",
]
