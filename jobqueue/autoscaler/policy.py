"""
Scaling policy for the autoscaler.
"""

from dataclasses import dataclass

from pydantic import BaseModel, Field, model_validator

from jobqueue.config import Settings
from jobqueue.constants import ScalingAction


class ScalingPolicy(BaseModel):
    """Thresholds and fleet bounds driving scaling decisions."""

    scale_up_threshold: int = Field(default=50, ge=0)
    scale_down_threshold: int = Field(default=10, ge=0)
    min_workers: int = Field(default=1, ge=0)
    max_workers: int = Field(default=10, ge=1)
    max_scale_step: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ScalingPolicy":
        if self.min_workers > self.max_workers:
            raise ValueError("min_workers must not exceed max_workers")
        if self.scale_down_threshold > self.scale_up_threshold:
            raise ValueError("scale_down_threshold must not exceed scale_up_threshold")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScalingPolicy":
        return cls(
            scale_up_threshold=settings.scale_up_threshold,
            scale_down_threshold=settings.scale_down_threshold,
            min_workers=settings.min_workers,
            max_workers=settings.max_workers,
            max_scale_step=settings.max_scale_step,
        )

    def _cap(self, count: int) -> int:
        if self.max_scale_step is not None:
            return min(count, self.max_scale_step)
        return count

    def decide(self, depth: int, active: int) -> "ScalingDecision":
        """
        Decide how to resize the fleet.

        Scale-up never takes the fleet above max_workers and scale-down
        never takes it below min_workers.

        Args:
            depth: Total jobs waiting across lanes.
            active: Worker instances currently running or pending.

        Returns:
            The decision for this cycle.
        """
        if depth > self.scale_up_threshold and active < self.max_workers:
            count = self._cap(
                min(depth - self.scale_up_threshold, self.max_workers - active)
            )
            return ScalingDecision(ScalingAction.SCALE_UP, count, depth, active)

        if depth < self.scale_down_threshold and active > self.min_workers:
            count = self._cap(
                min(active - self.min_workers, self.scale_down_threshold - depth)
            )
            return ScalingDecision(ScalingAction.SCALE_DOWN, count, depth, active)

        return ScalingDecision(ScalingAction.NONE, 0, depth, active)


@dataclass(frozen=True)
class ScalingDecision:
    """Outcome of one autoscaler cycle."""

    action: ScalingAction
    count: int
    depth: int
    active: int

    @property
    def target_size(self) -> int:
        """Fleet size once the decision is applied."""
        if self.action == ScalingAction.SCALE_UP:
            return self.active + self.count
        if self.action == ScalingAction.SCALE_DOWN:
            return self.active - self.count
        return self.active
