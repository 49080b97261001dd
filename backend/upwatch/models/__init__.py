"""Database models."""
from .monitor import Monitor
from .monitor_check import MonitorCheck, MonitorStatusHistory, MonitorDailyStats
from .agent import Agent
from .notification import (
    NotificationChannel,
    NotificationTemplate,
    NotificationSettings,
    NotificationHistory,
)

__all__ = [
    "Monitor",
    "MonitorCheck",
    "MonitorStatusHistory",
    "MonitorDailyStats",
    "Agent",
    "NotificationChannel",
    "NotificationTemplate",
    "NotificationSettings",
    "NotificationHistory",
]
