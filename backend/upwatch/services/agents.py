"""Agent service - registration, heartbeats and liveness detection."""
import json
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import Agent
from ..models.agent import AGENT_ACTIVE, AGENT_INACTIVE
from ..schemas.agent import AgentRegister, AgentStatusReport, AgentStatusResponse, DiskMetrics
from ..utils.db_utils import retry_on_lock
from .alerter import alerter_service, Notifier
from .eligibility import ENTITY_AGENT, AGENT_ONLINE, AGENT_OFFLINE

logger = logging.getLogger(__name__)


class AgentAuthError(PermissionError):
    """A registration or heartbeat carried an unknown token."""


def find_stale_agents(agents: Iterable[Agent], now: datetime, window: timedelta) -> List[Agent]:
    """Active agents whose last heartbeat is older than the staleness window."""
    return [
        agent for agent in agents
        if agent.status == AGENT_ACTIVE
        and agent.updated_at is not None
        and now - agent.updated_at > window
    ]


def format_ip_addresses(addresses: List[str]) -> str:
    """Render a list of addresses for notification text."""
    cleaned = [str(a) for a in addresses if a]
    return ", ".join(cleaned) if cleaned else "Unknown"


def disk_usage(disks: List[DiskMetrics]) -> Optional[float]:
    """Highest usage rate across the pushed disks, None when nothing was reported."""
    rates = [d.usage_rate for d in disks if d.usage_rate is not None]
    return max(rates) if rates else None


def agent_variables(
    agent: Agent,
    status: str,
    previous_status: str,
    now: datetime,
    error: Optional[str] = None,
) -> Dict[str, object]:
    """Template variables for an agent notification."""
    hostname = agent.hostname or "Unknown"
    ip_addresses = format_ip_addresses(agent.ip_list())
    os_name = agent.os or "Unknown"
    return {
        "name": agent.name,
        "status": status,
        "previous_status": previous_status,
        "time": now.strftime("%Y-%m-%d %H:%M:%S UTC"),
        "hostname": hostname,
        "ip_addresses": ip_addresses,
        "os": os_name,
        "error": error or "None",
        "details": f"Hostname: {hostname}\nIP addresses: {ip_addresses}\nOS: {os_name}",
    }


class AgentService:
    """Service for agent pushes and the periodic liveness pass."""

    def __init__(
        self,
        notifier: Notifier = alerter_service,
        stale_after: timedelta = timedelta(minutes=settings.agent_stale_minutes),
        registration_token: Optional[str] = settings.agent_registration_token,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.notifier = notifier
        self.stale_after = stale_after
        self.registration_token = registration_token
        self.clock = clock

    async def register(self, session: AsyncSession, payload: AgentRegister) -> Agent:
        """Create an agent from a self-registration request.

        The request must carry the shared registration token. The new agent gets
        its own token, used for every heartbeat afterwards.
        """
        if not self.registration_token or not secrets.compare_digest(payload.token, self.registration_token):
            raise AgentAuthError("Invalid registration token")

        now = self.clock()
        agent = Agent(
            name=payload.name,
            token=secrets.token_urlsafe(32),
            status=AGENT_ACTIVE,
            created_at=now,
            updated_at=now,
            hostname=payload.hostname,
            os=payload.os,
            version=payload.version,
            ip_addresses=json.dumps(payload.ip_addresses),
        )
        session.add(agent)
        await retry_on_lock(session.commit)
        await session.refresh(agent)

        logger.info(f"Registered agent {agent.name} (ID: {agent.id})")
        return agent

    async def handle_heartbeat(self, session: AsyncSession, report: AgentStatusReport) -> AgentStatusResponse:
        """Store a pushed status report and raise any resulting notifications."""
        result = await session.execute(select(Agent).where(Agent.token == report.token))
        agent = result.scalar_one_or_none()
        if agent is None:
            raise AgentAuthError("Unknown agent token")

        now = self.clock()
        was_inactive = agent.status == AGENT_INACTIVE

        if report.hostname:
            agent.hostname = report.hostname
        if report.os:
            agent.os = report.os
        if report.version:
            agent.version = report.version
        if report.ip_addresses:
            agent.ip_addresses = json.dumps(report.ip_addresses)
        agent.metrics = json.dumps({
            "cpu": report.cpu.model_dump() if report.cpu else None,
            "memory": report.memory.model_dump() if report.memory else None,
            "disks": [d.model_dump() for d in report.disks],
            "network": [n.model_dump() for n in report.network],
        })
        agent.status = AGENT_ACTIVE
        agent.updated_at = now
        await retry_on_lock(session.commit)

        agent_id = agent.id
        metrics = {
            "cpu": report.cpu.usage if report.cpu else None,
            "memory": report.memory.usage_rate if report.memory else None,
            "disk": disk_usage(report.disks),
        }
        recovery_vars = agent_variables(agent, AGENT_ONLINE, AGENT_OFFLINE, now)
        threshold_vars = agent_variables(agent, AGENT_ONLINE, AGENT_ONLINE, now)

        if was_inactive:
            logger.info(f"Agent {agent.name} (ID: {agent_id}) is back online")
            try:
                await self.notifier.notify_transition(
                    session, ENTITY_AGENT, agent_id, AGENT_OFFLINE, AGENT_ONLINE, recovery_vars
                )
            except Exception as e:
                logger.error(f"Recovery notification for agent {agent_id} failed: {type(e).__name__}: {e}")
                await session.rollback()

        alerts_sent = 0
        try:
            agent = await session.get(Agent, agent_id)
            alerts_sent = await self.notifier.notify_thresholds(session, agent, metrics, threshold_vars)
        except Exception as e:
            logger.error(f"Threshold notification for agent {agent_id} failed: {type(e).__name__}: {e}")
            await session.rollback()

        return AgentStatusResponse(agent_id=agent_id, status=AGENT_ACTIVE, alerts_sent=alerts_sent)

    async def run_liveness_pass(self, session: AsyncSession, now: Optional[datetime] = None) -> List[int]:
        """Mark silent agents inactive and notify each online -> offline change.

        Returns the ids of agents that went inactive.
        """
        now = now or self.clock()
        result = await session.execute(select(Agent).where(Agent.status == AGENT_ACTIVE))
        stale = find_stale_agents(result.scalars().all(), now, self.stale_after)
        if not stale:
            logger.debug("Liveness pass: no stale agents")
            return []

        for agent in stale:
            logger.warning(
                f"Agent {agent.name} (ID: {agent.id}) has not reported since {agent.updated_at}, marking inactive"
            )
            agent.status = AGENT_INACTIVE
        await retry_on_lock(session.commit)

        silence = f"No status report for more than {int(self.stale_after.total_seconds() // 60)} minutes"
        pending = [
            (agent.id, agent_variables(agent, AGENT_OFFLINE, AGENT_ONLINE, now, error=silence))
            for agent in stale
        ]
        for agent_id, variables in pending:
            try:
                await self.notifier.notify_transition(
                    session, ENTITY_AGENT, agent_id, AGENT_ONLINE, AGENT_OFFLINE, variables
                )
            except Exception as e:
                logger.error(f"Offline notification for agent {agent_id} failed: {type(e).__name__}: {e}")
                await session.rollback()

        return [agent_id for agent_id, _ in pending]


# Global instance
agent_service = AgentService()
