"""Notification API endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import NotificationChannel
from ..schemas.notification import NotificationTestRequest, ChannelTestResponse
from ..services.alerter import alerter_service

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.post("/channels/{channel_id}/test", response_model=ChannelTestResponse)
async def test_channel(
    channel_id: int,
    data: Optional[NotificationTestRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """Send a test message through one channel. Nothing is written to the history."""
    data = data or NotificationTestRequest()
    channel = await db.get(NotificationChannel, channel_id)
    if not channel:
        raise HTTPException(status_code=404, detail="Channel not found")

    outcome = await alerter_service.send_test(db, channel_id, data.subject, data.content)
    return ChannelTestResponse(channel_id=channel_id, success=outcome.success, error=outcome.error)
