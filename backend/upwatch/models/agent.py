"""Agent model - remote hosts pushing their own telemetry."""
import json
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from ..database import Base

AGENT_ACTIVE = "active"
AGENT_INACTIVE = "inactive"


class Agent(Base):
    """A registered agent and its latest pushed metrics snapshot."""

    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    token = Column(String, unique=True, nullable=False, index=True)
    status = Column(String, default=AGENT_ACTIVE)  # active, inactive
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)  # last heartbeat
    hostname = Column(String, nullable=True)
    os = Column(String, nullable=True)
    version = Column(String, nullable=True)
    ip_addresses = Column(String, nullable=True)  # JSON list
    metrics = Column(String, nullable=True)  # JSON: cpu, memory, disks, network

    def ip_list(self) -> list:
        """Stored IP addresses as a list; unparseable values yield an empty list."""
        if not self.ip_addresses:
            return []
        try:
            parsed = json.loads(self.ip_addresses)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []
