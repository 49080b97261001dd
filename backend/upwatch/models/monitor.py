"""Monitor model - HTTP endpoints being probed."""
import json
from datetime import datetime
from sqlalchemy import Boolean, Column, Float, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base

# Monitor status vocabulary
STATUS_PENDING = "pending"
STATUS_UP = "up"
STATUS_DOWN = "down"
STATUS_ERROR = "error"


class Monitor(Base):
    """A monitored HTTP endpoint."""

    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    method = Column(String, default="GET")
    interval = Column(Integer, default=60)  # seconds
    timeout = Column(Integer, default=30)  # seconds
    expected_status = Column(Integer, default=200)  # 1-5 = any code in that class
    headers = Column(String, nullable=True)  # JSON object of header name -> value
    body = Column(String, nullable=True)
    active = Column(Boolean, default=True)
    status = Column(String, default=STATUS_PENDING)  # pending, up, down, error
    response_time = Column(Integer, nullable=True)  # ms
    last_checked = Column(DateTime, nullable=True)
    uptime = Column(Float, default=100.0)  # percent
    created_by = Column(Integer, nullable=True)  # owning user, managed externally
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    checks = relationship("MonitorCheck", back_populates="monitor", cascade="all, delete-orphan")
    status_history = relationship("MonitorStatusHistory", back_populates="monitor", cascade="all, delete-orphan")

    def header_map(self) -> dict:
        """Parse the stored header JSON.

        Raises ValueError when the stored value is not a JSON object.
        """
        if not self.headers:
            return {}
        parsed = json.loads(self.headers)
        if not isinstance(parsed, dict):
            raise ValueError("headers must be a JSON object")
        return {str(k): str(v) for k, v in parsed.items()}
