"""Monitor check pipeline - probe, classify, persist, then notify on a status change."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Monitor
from ..models.monitor import STATUS_ERROR
from ..utils.db_utils import retry_on_lock
from .alerter import alerter_service, Notifier
from .availability import record_check
from .checker import checker_service, CheckerService, ProbeResult, describe_expected
from .eligibility import ENTITY_MONITOR
from .state import classify, is_transition

logger = logging.getLogger(__name__)


class MonitorNotFoundError(LookupError):
    """The requested monitor does not exist."""


class CheckInProgressError(RuntimeError):
    """A check for this monitor is already running."""


@dataclass
class CheckOutcome:
    """What one pass through the pipeline produced for a monitor."""
    monitor_id: int
    status: str
    previous_status: Optional[str]
    checked_at: datetime
    status_code: Optional[int] = None
    response_time: Optional[int] = None
    error: Optional[str] = None


def monitor_variables(
    monitor: Monitor,
    previous_status: Optional[str],
    status: str,
    probe: ProbeResult,
    error: Optional[str],
    now: datetime,
) -> Dict[str, object]:
    """Template variables for a monitor status change."""
    expected = describe_expected(monitor.expected_status)
    status_code = probe.status_code if probe.status_code is not None else "N/A"
    return {
        "name": monitor.name,
        "status": status,
        "previous_status": previous_status or "unknown",
        "time": now.strftime("%Y-%m-%d %H:%M:%S UTC"),
        "url": monitor.url,
        "response_time": f"{probe.elapsed_ms}ms",
        "status_code": status_code,
        "expected_status_code": expected,
        "expected_status": expected,
        "error": error or "None",
        "details": (
            f"URL: {monitor.url}\n"
            f"Response time: {probe.elapsed_ms}ms\n"
            f"Status code: {status_code}\n"
            f"Expected status: {expected}"
        ),
    }


class MonitorCheckService:
    """Runs the check pipeline for a single monitor.

    Scheduled ticks and the manual "check now" endpoint both go through
    ``check_monitor`` so the two paths cannot diverge.
    """

    def __init__(
        self,
        checker: CheckerService = checker_service,
        notifier: Notifier = alerter_service,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.checker = checker
        self.notifier = notifier
        self.clock = clock

    async def check_monitor(self, session: AsyncSession, monitor_id: int) -> CheckOutcome:
        """Probe one monitor and persist the outcome.

        Raises MonitorNotFoundError for an unknown id. A failed write rolls the
        session back and yields status ``error`` without notifying.
        """
        monitor = await session.get(Monitor, monitor_id)
        if monitor is None:
            raise MonitorNotFoundError(f"Monitor {monitor_id} not found")

        # Read immediately before probing so the transition is relative to the stored state
        await session.refresh(monitor)
        previous_status = monitor.status

        probe = await self.checker.probe(monitor)
        status, error = classify(probe, monitor.expected_status)
        now = self.clock()

        try:
            record_check(session, monitor, previous_status, status, probe, error, now)
            await retry_on_lock(session.commit)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist check for monitor {monitor_id}: {type(e).__name__}: {e}")
            await session.rollback()
            return CheckOutcome(
                monitor_id=monitor_id,
                status=STATUS_ERROR,
                previous_status=previous_status,
                checked_at=now,
                status_code=probe.status_code,
                response_time=probe.elapsed_ms,
                error=f"Failed to record check: {type(e).__name__}",
            )

        logger.debug(
            f"Monitor {monitor.name} (ID: {monitor_id}) checked: {status} "
            f"({probe.elapsed_ms}ms, code {probe.status_code})"
        )

        if is_transition(previous_status, status):
            logger.info(f"Monitor {monitor.name} (ID: {monitor_id}) changed {previous_status} -> {status}")
            variables = monitor_variables(monitor, previous_status, status, probe, error, now)
            try:
                await self.notifier.notify_transition(
                    session, ENTITY_MONITOR, monitor_id, previous_status, status, variables
                )
            except Exception as e:
                logger.error(f"Notification for monitor {monitor_id} failed: {type(e).__name__}: {e}")
                await session.rollback()

        return CheckOutcome(
            monitor_id=monitor_id,
            status=status,
            previous_status=previous_status,
            checked_at=now,
            status_code=probe.status_code,
            response_time=probe.elapsed_ms,
            error=error,
        )

    async def check_now(self, session: AsyncSession, monitor_id: int, registry) -> CheckOutcome:
        """Run a manual check, refusing while a check for the monitor is in flight."""
        if not await registry.claim(monitor_id):
            raise CheckInProgressError(f"Monitor {monitor_id} is already being checked")
        try:
            return await self.check_monitor(session, monitor_id)
        finally:
            await registry.release(monitor_id)


# Global instance
monitor_check_service = MonitorCheckService()
