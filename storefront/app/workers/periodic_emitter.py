# storefront/app/workers/periodic_emitter.py

import asyncio
import logging
from typing import Awaitable, Callable, Dict

from storefront.app.config import settings
from storefront.app.exceptions import SchedulerFault
from storefront.app.services.realtime.broadcaster import EventBroadcaster
from storefront.app.services.realtime.metrics import REALTIME_SCHEDULER_FAULTS_TOTAL

logger = logging.getLogger(__name__)


class PeriodicEmitter:
    """
    Pushes stats, simulated visitors and heartbeats on fixed intervals,
    independent of any client action.

    Each loop is its own task: a slow or failing iteration in one loop
    never delays or cancels the others.
    """

    def __init__(self, broadcaster: EventBroadcaster,
                 stats_interval: float = settings.STATS_INTERVAL_SECONDS,
                 visitor_interval: float = settings.VISITOR_INTERVAL_SECONDS,
                 heartbeat_interval: float = settings.HEARTBEAT_INTERVAL_SECONDS,
                 sleep=asyncio.sleep):
        self.broadcaster = broadcaster
        self.intervals = {
            "system-stats": stats_interval,
            "visitors": visitor_interval,
            "heartbeat": heartbeat_interval,
        }
        self._sleep = sleep
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """Start once; later calls are no-ops."""
        if self._tasks:
            return
        jobs = {
            "system-stats": self.emit_system_stats,
            "visitors": self.emit_visitor_update,
            "heartbeat": self.emit_heartbeat,
        }
        for name, job in jobs.items():
            self._tasks[name] = asyncio.create_task(
                self._run_every(name, self.intervals[name], job), name=f"periodic-{name}"
            )
        logger.info("periodic emitter started: %s", self.intervals)

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_every(self, name: str, interval: float, job: Callable[[], Awaitable]) -> None:
        while True:
            await self._sleep(interval)
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                REALTIME_SCHEDULER_FAULTS_TOTAL.labels(loop=name).inc()
                logger.exception("%s", SchedulerFault(name, e))

    # -----------------------------
    # JOBS
    # -----------------------------
    async def emit_system_stats(self) -> None:
        await self.broadcaster.broadcast_system_stats()

    async def emit_visitor_update(self) -> None:
        await self.broadcaster.broadcast_visitor_update(self.broadcaster.dashboard.simulated_visitors())

    async def emit_heartbeat(self) -> None:
        await self.broadcaster.broadcast_heartbeat()
