"""Check audit trail models - one row per probe, one row per status change."""
from datetime import datetime
from sqlalchemy import Column, Integer, Float, String, DateTime, Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


class MonitorCheck(Base):
    """Result of one executed probe."""

    __tablename__ = "monitor_checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)  # up, down
    response_time = Column(Integer, nullable=True)  # ms
    status_code = Column(Integer, nullable=True)
    error = Column(String, nullable=True)
    checked_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationship
    monitor = relationship("Monitor", back_populates="checks")


class MonitorStatusHistory(Base):
    """Status change record - written only when a monitor's status changes."""

    __tablename__ = "monitor_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow)

    # Relationship
    monitor = relationship("Monitor", back_populates="status_history")


class MonitorDailyStats(Base):
    """Per-day rollup of a monitor's checks."""

    __tablename__ = "monitor_daily_stats"
    __table_args__ = (UniqueConstraint("monitor_id", "date", name="uq_daily_stats_monitor_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    total_checks = Column(Integer, default=0)
    up_checks = Column(Integer, default=0)
    down_checks = Column(Integer, default=0)
    avg_response_time = Column(Float, nullable=True)
    min_response_time = Column(Integer, nullable=True)
    max_response_time = Column(Integer, nullable=True)
    availability = Column(Float, default=0.0)  # percent
    created_at = Column(DateTime, default=datetime.utcnow)
