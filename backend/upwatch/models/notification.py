"""Notification models - channels, templates, settings and the delivery ledger."""
import json
import logging
from datetime import datetime
from sqlalchemy import Boolean, Column, Float, Integer, String, DateTime

from ..database import Base

logger = logging.getLogger(__name__)

# Settings scopes
GLOBAL_MONITOR = "global-monitor"
GLOBAL_AGENT = "global-agent"
GLOBAL_TARGETS = (GLOBAL_MONITOR, GLOBAL_AGENT)

# Delivery outcomes
DELIVERY_SUCCESS = "success"
DELIVERY_FAILED = "failed"

# Seeded default templates: type -> (name, subject, content)
DEFAULT_TEMPLATES = {
    "monitor": (
        "Monitor status template",
        "[${status}] ${name} status changed",
        "Monitor status change\n\n"
        "Service: ${name}\n"
        "Status: ${status} (was: ${previous_status})\n"
        "Time: ${time}\n\n"
        "URL: ${url}\n"
        "Response time: ${response_time}\n"
        "Status code: ${status_code}\n"
        "Expected status: ${expected_status_code}\n\n"
        "Error: ${error}",
    ),
    "agent": (
        "Agent status template",
        "[${status}] ${name} agent status changed",
        "Agent status change\n\n"
        "Host: ${name}\n"
        "Status: ${status} (was: ${previous_status})\n"
        "Time: ${time}\n\n"
        "Hostname: ${hostname}\n"
        "IP addresses: ${ip_addresses}\n"
        "OS: ${os}\n\n"
        "Error: ${error}",
    ),
}


class NotificationChannel(Base):
    """A configured notification transport."""

    __tablename__ = "notification_channels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # telegram, resend, email
    config = Column(String, nullable=False, default="{}")  # JSON, shape depends on type
    enabled = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationTemplate(Base):
    """Subject/body text with ${variable} placeholders."""

    __tablename__ = "notification_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # monitor, agent, system
    subject = Column(String, nullable=False)
    content = Column(String, nullable=False)
    is_default = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationSettings(Base):
    """Eligibility rules for one scope: global per entity type, or one monitor/agent."""

    __tablename__ = "notification_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    target_type = Column(String, nullable=False, index=True)  # global-monitor, global-agent, monitor, agent
    target_id = Column(Integer, default=0)  # 0 for global scopes
    enabled = Column(Boolean, default=True)
    on_down = Column(Boolean, default=True)
    on_recovery = Column(Boolean, default=True)
    on_offline = Column(Boolean, default=True)
    on_cpu_threshold = Column(Boolean, default=False)
    cpu_threshold = Column(Float, default=90.0)
    on_memory_threshold = Column(Boolean, default=False)
    memory_threshold = Column(Float, default=85.0)
    on_disk_threshold = Column(Boolean, default=False)
    disk_threshold = Column(Float, default=90.0)
    channels = Column(String, default="[]")  # JSON list of channel ids
    override_global = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def channel_ids(self) -> list[int]:
        """Parse the stored channel list; malformed values yield no channels."""
        try:
            parsed = json.loads(self.channels or "[]")
            return [int(c) for c in parsed]
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning(f"Malformed channel list on notification settings {self.id}: {self.channels!r}")
            return []


class NotificationHistory(Base):
    """Delivery ledger - one row per channel per dispatch."""

    __tablename__ = "notification_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String, nullable=False)  # monitor, agent, system
    target_id = Column(Integer, nullable=True)
    channel_id = Column(Integer, nullable=False)
    template_id = Column(Integer, nullable=True)
    status = Column(String, nullable=False)  # success, failed
    content = Column(String, nullable=True)  # JSON: subject, content, variables
    error = Column(String, nullable=True)
    sent_at = Column(DateTime, default=datetime.utcnow, index=True)
