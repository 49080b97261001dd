"""Scheduler service - drives periodic monitor checks, agent liveness and housekeeping.

Scalability Design:
- A short tick scans for due monitors instead of one job per monitor
- Due monitors are checked concurrently, bounded by a semaphore
- Each monitor check runs in its own session so one failure cannot poison the tick
- Ticks may overlap; an in-flight registry stops a slow check from being started twice
- One semaphore is shared by all ticks, so overlapping ticks respect the same limit

Capacity: With 10 concurrent checks and ~5s average check duration:
- Can handle ~120 monitors per minute on 60s intervals
- Scale by raising MAX_CONCURRENT_CHECKS
"""
import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select

from ..config import settings
from ..database import async_session
from ..models import Monitor
from ..utils.db_utils import retry_on_lock
from .agents import agent_service, AgentService
from .availability import build_daily_stats, cleanup_old_records
from .monitor_runner import monitor_check_service, MonitorCheckService, CheckOutcome

logger = logging.getLogger(__name__)

# Used when a monitor has no interval of its own
DEFAULT_INTERVAL_SECONDS = 60

# A slow probe keeps its tick running; later ticks must still start
MAX_OVERLAPPING_TICKS = 100


def select_due(monitors: Iterable[Monitor], now: datetime, in_flight: Iterable[int] = ()) -> List[Monitor]:
    """Monitors whose interval has elapsed since their last check.

    A monitor that was never checked is always due. Monitors with a check
    already running are skipped.
    """
    busy = set(in_flight)
    due = []
    for monitor in monitors:
        if monitor.id in busy:
            continue
        if monitor.last_checked is None:
            due.append(monitor)
            continue
        interval = timedelta(seconds=monitor.interval or DEFAULT_INTERVAL_SECONDS)
        if now > monitor.last_checked + interval:
            due.append(monitor)
    return due


class InFlightRegistry:
    """Ids of monitors with a check currently running, shared by all check paths."""

    def __init__(self):
        self._ids: Set[int] = set()
        self._lock = asyncio.Lock()

    async def claim(self, monitor_id: int) -> bool:
        """Mark a monitor as being checked. False if it already is."""
        async with self._lock:
            if monitor_id in self._ids:
                return False
            self._ids.add(monitor_id)
            return True

    async def release(self, monitor_id: int):
        async with self._lock:
            self._ids.discard(monitor_id)

    async def snapshot(self) -> Set[int]:
        async with self._lock:
            return set(self._ids)


class SchedulerService:
    """Service for scheduling and running periodic checks."""

    def __init__(
        self,
        check_service: MonitorCheckService = monitor_check_service,
        agents: AgentService = agent_service,
        registry: Optional[InFlightRegistry] = None,
        session_factory=async_session,
        tick_seconds: int = settings.scheduler_tick_seconds,
        max_concurrent: int = settings.max_concurrent_checks,
        liveness_seconds: int = settings.liveness_interval_seconds,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.check_service = check_service
        self.agents = agents
        self.registry = registry or InFlightRegistry()
        self.session_factory = session_factory
        self.tick_seconds = tick_seconds
        self.max_concurrent = max_concurrent
        self.liveness_seconds = liveness_seconds
        self.clock = clock
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")

        self.scheduler.add_job(
            self._run_checks,
            trigger=IntervalTrigger(seconds=self.tick_seconds),
            id="run_checks",
            replace_existing=True,
            max_instances=MAX_OVERLAPPING_TICKS,
            misfire_grace_time=self.tick_seconds,
        )

        self.scheduler.add_job(
            self._run_liveness,
            trigger=IntervalTrigger(seconds=self.liveness_seconds),
            id="agent_liveness",
            replace_existing=True,
            max_instances=1,
        )

        # Roll up yesterday once it is complete
        self.scheduler.add_job(
            self._build_daily_stats,
            trigger=CronTrigger(hour=0, minute=5),
            id="daily_stats",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.add_job(
            self._cleanup_old_records,
            trigger=CronTrigger(hour=0, minute=30),
            id="cleanup_old_records",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (tick={self.tick_seconds}s, max_concurrent={self.max_concurrent})")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def tick(self) -> List[CheckOutcome]:
        """Check every due monitor once.

        Monitors still being checked by an earlier tick are left out. Errors
        loading the monitor list propagate; errors in a single monitor's check
        are logged and do not affect the others.
        """
        now = self.clock()
        async with self.session_factory() as session:
            result = await session.execute(select(Monitor).where(Monitor.active.is_(True)))
            monitors = result.scalars().all()

        if not monitors:
            return []

        due = select_due(monitors, now, await self.registry.snapshot())
        if not due:
            return []

        logger.debug(f"Checking {len(due)} due monitors out of {len(monitors)} total")

        outcomes = await asyncio.gather(*[self._check_single_monitor(m.id) for m in due])
        return [o for o in outcomes if o is not None]

    async def _check_single_monitor(self, monitor_id: int) -> Optional[CheckOutcome]:
        """Check a single monitor in its own session.

        The monitor is claimed before waiting for a slot, so a queued check
        already counts as in flight for the next tick.
        """
        if not await self.registry.claim(monitor_id):
            return None
        try:
            async with self._semaphore:
                async with self.session_factory() as session:
                    return await self.check_service.check_monitor(session, monitor_id)
        except Exception as e:
            logger.error(f"Error checking monitor {monitor_id}: {e}")
            return None
        finally:
            await self.registry.release(monitor_id)

    async def _run_checks(self):
        try:
            await self.tick()
        except Exception as e:
            logger.error(f"Error running checks: {e}")

    async def _run_liveness(self):
        try:
            async with self.session_factory() as session:
                await self.agents.run_liveness_pass(session)
        except Exception as e:
            logger.error(f"Error running agent liveness pass: {e}")

    async def _build_daily_stats(self, day: Optional[date] = None):
        """Aggregate the previous day's checks."""
        day = day or (self.clock() - timedelta(days=1)).date()
        try:
            async with self.session_factory() as session:
                count = await build_daily_stats(session, day)
                await retry_on_lock(session.commit)
                logger.info(f"Built daily stats for {count} monitors on {day}")
        except Exception as e:
            logger.error(f"Error building daily stats for {day}: {e}")

    async def _cleanup_old_records(self):
        """Delete records older than the retention horizon."""
        try:
            async with self.session_factory() as session:
                await cleanup_old_records(session, self.clock())
                await retry_on_lock(session.commit)
                logger.info("Cleaned up old check and notification records")
        except Exception as e:
            logger.error(f"Error cleaning up records: {e}")


# Global instance
scheduler_service = SchedulerService()
