"""HTTP API: manual check, agent push, channel test."""
from sqlalchemy import select, func

from upwatch.models import MonitorCheck, MonitorStatusHistory
from upwatch.services.scheduler import scheduler_service

from conftest import add_channel, add_monitor


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


class TestCheckNow:
    async def test_check_returns_result(self, client, db_session, notifier):
        monitor = await add_monitor(db_session)

        resp = await client.post(f"/api/monitors/{monitor.id}/check")

        assert resp.status_code == 200
        data = resp.json()
        assert data["monitor_id"] == monitor.id
        assert data["status"] == "up"
        assert data["previous_status"] == "pending"
        assert data["status_code"] == 200
        assert data["error"] is None
        assert len(notifier.transitions) == 1

    async def test_twice_records_two_checks_one_transition(self, client, db_session):
        monitor = await add_monitor(db_session)

        await client.post(f"/api/monitors/{monitor.id}/check")
        await client.post(f"/api/monitors/{monitor.id}/check")

        checks = (await db_session.execute(select(func.count(MonitorCheck.id)))).scalar()
        history = (await db_session.execute(select(func.count(MonitorStatusHistory.id)))).scalar()
        assert checks == 2
        assert history == 1

    async def test_unknown_monitor(self, client):
        resp = await client.post("/api/monitors/999/check")
        assert resp.status_code == 404

    async def test_conflict_while_in_flight(self, client, db_session):
        monitor = await add_monitor(db_session)
        await scheduler_service.registry.claim(monitor.id)

        resp = await client.post(f"/api/monitors/{monitor.id}/check")

        assert resp.status_code == 409

    async def test_slot_released_after_check(self, client, db_session):
        monitor = await add_monitor(db_session)
        await client.post(f"/api/monitors/{monitor.id}/check")
        assert await scheduler_service.registry.snapshot() == set()


class TestAgentPush:
    async def test_register_then_report(self, client):
        resp = await client.post("/api/agents/register", json={
            "token": "shared-secret",
            "name": "web-01",
            "hostname": "web-01.internal",
            "ip_addresses": ["10.0.0.5"],
        })
        assert resp.status_code == 201
        agent = resp.json()

        resp = await client.post("/api/agents/status", json={
            "token": agent["token"],
            "cpu": {"usage": 12.0},
            "memory": {"usage_rate": 30.0},
            "disks": [{"mount_point": "/", "usage_rate": 55.0}],
        })
        assert resp.status_code == 200
        assert resp.json() == {"agent_id": agent["id"], "status": "active", "alerts_sent": 0}

    async def test_register_bad_token(self, client):
        resp = await client.post("/api/agents/register", json={"token": "wrong", "name": "x"})
        assert resp.status_code == 403

    async def test_report_unknown_agent(self, client):
        resp = await client.post("/api/agents/status", json={"token": "nobody"})
        assert resp.status_code == 403


class TestChannelTest:
    async def test_unknown_channel(self, client):
        resp = await client.post("/api/notifications/channels/999/test")
        assert resp.status_code == 404

    async def test_misconfigured_channel_reports_failure(self, client, db_session):
        channel = await add_channel(db_session, config="{}")

        resp = await client.post(f"/api/notifications/channels/{channel.id}/test", json={"subject": "hi"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is False
        assert "Invalid telegram config" in data["error"]
