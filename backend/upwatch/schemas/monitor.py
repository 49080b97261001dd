"""Monitor schemas for API."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class CheckResultResponse(BaseModel):
    """Result of running a monitor check."""
    monitor_id: int
    status: str  # up, down, error
    previous_status: Optional[str] = None
    status_code: Optional[int] = None
    response_time: Optional[int] = None  # ms
    error: Optional[str] = None
    checked_at: datetime
