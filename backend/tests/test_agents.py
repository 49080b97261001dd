"""Agent liveness, heartbeats and registration."""
from datetime import timedelta

import pytest

from upwatch.models import Agent
from upwatch.schemas.agent import AgentRegister, AgentStatusReport, DiskMetrics
from upwatch.services.agents import (
    AgentAuthError,
    AgentService,
    agent_variables,
    disk_usage,
    find_stale_agents,
    format_ip_addresses,
)

from conftest import NOW, add_agent

WINDOW = timedelta(minutes=60)


def make_service(notifier, token="shared-secret") -> AgentService:
    return AgentService(notifier=notifier, stale_after=WINDOW, registration_token=token, clock=lambda: NOW)


class TestFindStaleAgents:
    def test_selects_only_silent_active_agents(self):
        agents = [
            Agent(id=1, status="active", updated_at=NOW - timedelta(minutes=61)),
            Agent(id=2, status="active", updated_at=NOW - timedelta(minutes=59)),
            Agent(id=3, status="inactive", updated_at=NOW - timedelta(days=2)),
            Agent(id=4, status="active", updated_at=NOW - WINDOW),
        ]
        assert [a.id for a in find_stale_agents(agents, NOW, WINDOW)] == [1]


class TestHelpers:
    def test_format_ip_addresses(self):
        assert format_ip_addresses(["10.0.0.5", "", "fe80::1"]) == "10.0.0.5, fe80::1"
        assert format_ip_addresses([]) == "Unknown"

    def test_disk_usage_takes_the_fullest_disk(self):
        disks = [DiskMetrics(usage_rate=40.0), DiskMetrics(usage_rate=91.5), DiskMetrics()]
        assert disk_usage(disks) == 91.5
        assert disk_usage([]) is None

    def test_agent_variables(self):
        agent = Agent(name="web-01", hostname=None, os="linux", ip_addresses='["10.0.0.5"]')
        variables = agent_variables(agent, "offline", "online", NOW)
        assert variables["hostname"] == "Unknown"
        assert variables["ip_addresses"] == "10.0.0.5"
        assert variables["previous_status"] == "online"
        assert variables["time"] == "2024-06-01 12:00:00 UTC"


class TestLivenessPass:
    async def test_stale_agent_goes_inactive_and_notifies(self, db_session, notifier):
        stale = await add_agent(db_session, token="t-stale", updated_at=NOW - timedelta(minutes=90))
        fresh = await add_agent(db_session, name="web-02", token="t-fresh", updated_at=NOW - timedelta(minutes=5))

        went_inactive = await make_service(notifier).run_liveness_pass(db_session)

        assert went_inactive == [stale.id]
        await db_session.refresh(stale)
        await db_session.refresh(fresh)
        assert stale.status == "inactive"
        assert fresh.status == "active"

        assert len(notifier.transitions) == 1
        sent = notifier.transitions[0]
        assert (sent["entity_type"], sent["target_id"]) == ("agent", stale.id)
        assert (sent["previous"], sent["current"]) == ("online", "offline")
        assert "60 minutes" in sent["variables"]["error"]

    async def test_second_pass_does_not_renotify(self, db_session, notifier):
        await add_agent(db_session, updated_at=NOW - timedelta(minutes=90))
        service = make_service(notifier)

        await service.run_liveness_pass(db_session)
        assert await service.run_liveness_pass(db_session) == []
        assert len(notifier.transitions) == 1


class TestHeartbeat:
    async def test_updates_snapshot_and_evaluates_thresholds(self, db_session, notifier):
        agent = await add_agent(db_session, updated_at=NOW - timedelta(minutes=10))
        report = AgentStatusReport(
            token="agent-token",
            hostname="web-01.prod",
            ip_addresses=["10.0.0.9"],
            cpu={"usage": 97.5},
            memory={"usage_rate": 40.0},
            disks=[{"usage_rate": 20.0}, {"usage_rate": 88.0}],
        )

        response = await make_service(notifier).handle_heartbeat(db_session, report)

        assert response.agent_id == agent.id
        assert response.status == "active"
        stored = await db_session.get(Agent, agent.id)
        assert stored.updated_at == NOW
        assert stored.hostname == "web-01.prod"
        assert stored.ip_list() == ["10.0.0.9"]
        assert notifier.transitions == []
        assert notifier.thresholds[0]["metrics"] == {"cpu": 97.5, "memory": 40.0, "disk": 88.0}

    async def test_inactive_agent_recovers(self, db_session, notifier):
        agent = await add_agent(db_session, status="inactive", updated_at=NOW - timedelta(hours=3))

        await make_service(notifier).handle_heartbeat(db_session, AgentStatusReport(token="agent-token"))

        stored = await db_session.get(Agent, agent.id)
        assert stored.status == "active"
        assert len(notifier.transitions) == 1
        assert (notifier.transitions[0]["previous"], notifier.transitions[0]["current"]) == ("offline", "online")

    async def test_unknown_token(self, db_session, notifier):
        with pytest.raises(AgentAuthError):
            await make_service(notifier).handle_heartbeat(db_session, AgentStatusReport(token="nope"))


class TestRegister:
    async def test_creates_agent_with_own_token(self, db_session, notifier):
        payload = AgentRegister(token="shared-secret", name="db-01", hostname="db-01.internal", ip_addresses=["10.0.0.7"])

        agent = await make_service(notifier).register(db_session, payload)

        assert agent.id is not None
        assert agent.token and agent.token != "shared-secret"
        assert agent.status == "active"
        assert agent.ip_list() == ["10.0.0.7"]

    async def test_wrong_token_rejected(self, db_session, notifier):
        with pytest.raises(AgentAuthError):
            await make_service(notifier).register(db_session, AgentRegister(token="guess", name="x"))

    async def test_registration_closed_without_token(self, db_session, notifier):
        with pytest.raises(AgentAuthError):
            await make_service(notifier, token=None).register(db_session, AgentRegister(token="anything", name="x"))
