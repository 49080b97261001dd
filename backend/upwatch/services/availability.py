"""Availability bookkeeping - persists check results, status history and uptime."""
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import (
    Monitor,
    MonitorCheck,
    MonitorStatusHistory,
    MonitorDailyStats,
    NotificationHistory,
)
from ..models.monitor import STATUS_UP, STATUS_DOWN
from .checker import ProbeResult

logger = logging.getLogger(__name__)


def compute_uptime(
    uptime: Optional[float],
    previous_status: Optional[str],
    new_status: str,
    last_checked: Optional[datetime],
    now: datetime,
) -> float:
    """Blend the running uptime percentage on an up/down transition.

    The previous value is weighted by the hours elapsed since the last check and
    combined with the new instantaneous state. This is an approximation, not an
    integral over the check history. Anything other than an up<->down change
    leaves the value untouched.
    """
    current = 100.0 if uptime is None else float(uptime)

    if last_checked is None:
        return current
    if {previous_status, new_status} != {STATUS_UP, STATUS_DOWN}:
        return current

    hours = (now - last_checked).total_seconds() / 3600
    if hours <= 0:
        return current

    if new_status == STATUS_UP:
        total_hours = current * hours / 100 + hours
        blended = (total_hours / (hours * 2)) * 100
    else:
        total_hours = current * hours / 100 - hours
        blended = (total_hours / hours) * 100

    return max(0.0, min(100.0, blended))


def record_check(
    session: AsyncSession,
    monitor: Monitor,
    previous_status: Optional[str],
    new_status: str,
    probe: ProbeResult,
    error: Optional[str],
    now: datetime,
) -> bool:
    """Stage the outcome of one check on the session.

    Always appends a MonitorCheck; appends a MonitorStatusHistory row only when
    the status changed. The caller commits. Returns True if the status changed.
    """
    monitor.uptime = compute_uptime(monitor.uptime, previous_status, new_status, monitor.last_checked, now)
    monitor.status = new_status
    monitor.response_time = probe.elapsed_ms
    if monitor.last_checked is None or now > monitor.last_checked:
        monitor.last_checked = now

    session.add(MonitorCheck(
        monitor_id=monitor.id,
        status=new_status,
        response_time=probe.elapsed_ms,
        status_code=probe.status_code,
        error=error,
        checked_at=now,
    ))

    changed = previous_status != new_status
    if changed:
        session.add(MonitorStatusHistory(
            monitor_id=monitor.id,
            status=new_status,
            timestamp=now,
        ))
    return changed


async def build_daily_stats(session: AsyncSession, day: date) -> int:
    """Roll up one day's checks into MonitorDailyStats rows.

    Existing rows for the same monitor and day are overwritten. Returns the
    number of monitors processed.
    """
    start = datetime.combine(day, datetime.min.time())
    end = start + timedelta(days=1)

    result = await session.execute(
        select(MonitorCheck.monitor_id, MonitorCheck.status, MonitorCheck.response_time)
        .where(MonitorCheck.checked_at >= start, MonitorCheck.checked_at < end)
    )

    grouped: dict[int, dict] = {}
    for monitor_id, status, response_time in result.all():
        stats = grouped.setdefault(monitor_id, {"total": 0, "up": 0, "down": 0, "times": []})
        stats["total"] += 1
        if status == STATUS_UP:
            stats["up"] += 1
        elif status == STATUS_DOWN:
            stats["down"] += 1
        if response_time is not None and response_time > 0:
            stats["times"].append(response_time)

    for monitor_id, stats in grouped.items():
        times = stats["times"]
        existing = (await session.execute(
            select(MonitorDailyStats).where(
                MonitorDailyStats.monitor_id == monitor_id,
                MonitorDailyStats.date == day,
            )
        )).scalar_one_or_none()

        row = existing or MonitorDailyStats(monitor_id=monitor_id, date=day)
        row.total_checks = stats["total"]
        row.up_checks = stats["up"]
        row.down_checks = stats["down"]
        row.avg_response_time = sum(times) / len(times) if times else None
        row.min_response_time = min(times) if times else None
        row.max_response_time = max(times) if times else None
        row.availability = stats["up"] / stats["total"] * 100
        if existing is None:
            session.add(row)

        logger.debug(
            f"Daily stats for monitor {monitor_id} on {day}: "
            f"{stats['up']}/{stats['total']} up ({row.availability:.2f}%)"
        )

    return len(grouped)


async def cleanup_old_records(
    session: AsyncSession,
    now: Optional[datetime] = None,
    retention_days: int = settings.history_retention_days,
):
    """Delete checks, daily stats and notification history past the retention horizon."""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=retention_days)

    await session.execute(delete(MonitorCheck).where(MonitorCheck.checked_at < cutoff))
    await session.execute(delete(MonitorDailyStats).where(MonitorDailyStats.date < cutoff.date()))
    await session.execute(delete(NotificationHistory).where(NotificationHistory.sent_at < cutoff))
