"""Monitor API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.monitor import CheckResultResponse
from ..services.monitor_runner import (
    monitor_check_service,
    CheckInProgressError,
    MonitorNotFoundError,
)
from ..services.scheduler import scheduler_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/monitors", tags=["monitors"])


@router.post("/{monitor_id}/check", response_model=CheckResultResponse)
async def check_monitor_now(monitor_id: int, db: AsyncSession = Depends(get_db)):
    """Run a check immediately, outside the regular schedule.

    Goes through the same pipeline as scheduled checks, so the result is
    recorded and transitions notify as usual.
    """
    try:
        outcome = await monitor_check_service.check_now(db, monitor_id, scheduler_service.registry)
    except MonitorNotFoundError:
        raise HTTPException(status_code=404, detail="Monitor not found")
    except CheckInProgressError:
        raise HTTPException(status_code=409, detail="A check for this monitor is already running")

    logger.info(f"Manual check of monitor {monitor_id}: {outcome.status}")
    return CheckResultResponse(
        monitor_id=outcome.monitor_id,
        status=outcome.status,
        previous_status=outcome.previous_status,
        status_code=outcome.status_code,
        response_time=outcome.response_time,
        error=outcome.error,
        checked_at=outcome.checked_at,
    )
