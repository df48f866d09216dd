"""
Autoscaler control loop.

Every interval the autoscaler samples total lane depth and the number of
active worker instances, then asks the fleet to grow or shrink. Cycles
run strictly one after another; stopping takes effect between cycles.
"""

import asyncio
import logging
import signal

from jobqueue.autoscaler.fleet import EC2Fleet, FleetManager
from jobqueue.autoscaler.policy import ScalingDecision, ScalingPolicy
from jobqueue.config import Settings, get_settings
from jobqueue.constants import SPAN_SCALING_CYCLE, ScalingAction
from jobqueue.errors import FleetError
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer, setup_tracing
from jobqueue.queue.dispatcher import QueueDispatcher
from jobqueue.store import close_store, init_store
from jobqueue.store.base import Store

logger = logging.getLogger(__name__)


class Autoscaler:
    """
    Queue-depth driven fleet autoscaler.

    Scale-down picks instances in listing order, with no preference for
    idle workers. Jobs running on a terminated instance are recovered by
    the reaper once their lease expires.
    """

    def __init__(
        self,
        store: Store,
        fleet: FleetManager,
        settings: Settings | None = None,
        policy: ScalingPolicy | None = None,
        interval_seconds: float | None = None,
    ):
        """
        Initialize the autoscaler.

        Args:
            store: The shared store.
            fleet: Fleet-management boundary.
            settings: Optional settings. Uses cached settings if not provided.
            policy: Scaling thresholds. Built from settings if not provided.
            interval_seconds: Seconds between cycles.
        """
        self._settings = settings or get_settings()
        self.policy = policy or ScalingPolicy.from_settings(self._settings)
        self.interval = interval_seconds or self._settings.autoscaler_interval_seconds
        self._fleet = fleet
        self._dispatcher = QueueDispatcher(store, self._settings)
        self._running = False
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Start the monitoring loop."""
        logger.info(f"Starting queue monitoring with interval {self.interval}s")
        self._running = True

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Error in monitoring loop: {e}")

            await asyncio.sleep(self.interval)

        logger.info("Autoscaler stopped")

    async def stop(self) -> None:
        """Stop the loop after the current cycle."""
        logger.info("Autoscaler stopping")
        self._running = False

    async def run_once(self) -> ScalingDecision | None:
        """
        Run a single scaling cycle.

        Returns:
            The decision taken, or None if the fleet could not be listed.
        """
        with get_tracer().start_as_current_span(SPAN_SCALING_CYCLE) as span:
            depths = await self._dispatcher.lane_depths()
            depth = sum(depths.values())

            try:
                active_instances = await self._fleet.list_active_instances()
            except FleetError:
                logger.warning("Skipping scaling cycle, fleet listing failed")
                return None

            self._metrics.update_fleet_size(len(active_instances))
            logger.info(
                "Queue sample",
                extra={
                    "lanes": depths,
                    "total": depth,
                    "active_instances": len(active_instances),
                },
            )

            decision = self.policy.decide(depth, len(active_instances))
            span.set_attribute("action", decision.action.value)
            span.set_attribute("count", decision.count)

            await self._apply(decision, active_instances)
            return decision

    async def _apply(self, decision: ScalingDecision, active_instances: list[str]) -> None:
        if decision.action == ScalingAction.NONE:
            logger.info("No scaling action required")
            return

        try:
            if decision.action == ScalingAction.SCALE_UP:
                logger.info(f"Scaling up by {decision.count} workers")
                await self._fleet.launch_instances(decision.count)
            else:
                logger.info(f"Scaling down by {decision.count} workers")
                await self._fleet.terminate_instances(active_instances[: decision.count])
        except FleetError as e:
            # Next cycle re-evaluates from fresh metrics
            logger.error(f"Error scaling: {e}", extra={"action": decision.action.value})
            return

        self._metrics.record_scaling_action(decision.action.value, decision.count)


async def run_async() -> None:
    """Run the autoscaler asynchronously."""
    setup_logging(process="autoscaler")
    setup_tracing()
    store = await init_store()

    autoscaler = Autoscaler(store, EC2Fleet.from_settings())

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(autoscaler.stop())
        )

    try:
        await autoscaler.start()
    finally:
        await close_store()


def run() -> None:
    """Run the autoscaler."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
