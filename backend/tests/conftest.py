"""
UpWatch test configuration.

Each test gets its own SQLite file database (aiosqlite) with the default
templates and global settings seeded, so concurrent sessions behave like
they do in production. Outbound HTTP goes through httpx.MockTransport.
"""
import os
import tempfile
from datetime import datetime
from typing import AsyncGenerator

import httpx
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Must be set before the app is imported
os.environ.setdefault("DATA_PATH", tempfile.gettempdir())

from upwatch import models  # noqa: F401
from upwatch.database import Base, get_db, seed_defaults
from upwatch.models import Monitor, Agent, NotificationChannel, NotificationSettings


NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'upwatch-test.db'}", echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await seed_defaults(session)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


class RecordingNotifier:
    """Notifier that only remembers what it was asked to send."""

    def __init__(self):
        self.transitions = []
        self.thresholds = []

    async def notify_transition(self, session, entity_type, target_id, previous, current, variables):
        self.transitions.append({
            "entity_type": entity_type,
            "target_id": target_id,
            "previous": previous,
            "current": current,
            "variables": variables,
        })
        return None

    async def notify_thresholds(self, session, agent, metrics, variables):
        self.thresholds.append({"agent_id": agent.id, "metrics": metrics, "variables": variables})
        return 0


@pytest.fixture
def notifier():
    return RecordingNotifier()


def status_transport(status_code: int = 200) -> httpx.MockTransport:
    """Transport answering every request with the given status."""
    return httpx.MockTransport(lambda request: httpx.Response(status_code, text="ok"))


def failing_transport() -> httpx.MockTransport:
    """Transport that refuses every connection."""
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)
    return httpx.MockTransport(handler)


async def add_monitor(session: AsyncSession, **overrides) -> Monitor:
    data = dict(
        name="Example",
        url="https://example.com",
        method="GET",
        interval=60,
        timeout=5,
        expected_status=200,
        active=True,
        status="pending",
        uptime=100.0,
    )
    data.update(overrides)
    monitor = Monitor(**data)
    session.add(monitor)
    await session.commit()
    await session.refresh(monitor)
    return monitor


async def add_agent(session: AsyncSession, **overrides) -> Agent:
    data = dict(
        name="web-01",
        token="agent-token",
        status="active",
        hostname="web-01.internal",
        os="linux",
        ip_addresses='["10.0.0.5", "192.168.1.5"]',
        created_at=NOW,
        updated_at=NOW,
    )
    data.update(overrides)
    agent = Agent(**data)
    session.add(agent)
    await session.commit()
    await session.refresh(agent)
    return agent


async def add_channel(session: AsyncSession, **overrides) -> NotificationChannel:
    data = dict(
        name="ops telegram",
        type="telegram",
        config='{"botToken": "123:abc", "chatId": "42"}',
        enabled=True,
    )
    data.update(overrides)
    channel = NotificationChannel(**data)
    session.add(channel)
    await session.commit()
    await session.refresh(channel)
    return channel


async def enable_global(session: AsyncSession, target_type: str, channels: str, **toggles) -> NotificationSettings:
    """Turn on the seeded global settings row for monitors or agents."""
    result = await session.execute(
        select(NotificationSettings).where(NotificationSettings.target_type == target_type)
    )
    row = result.scalars().first()
    row.enabled = True
    row.channels = channels
    for key, value in toggles.items():
        setattr(row, key, value)
    await session.commit()
    return row


@pytest.fixture
async def client(session_factory, notifier, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    from upwatch.main import app
    from upwatch.services.agents import agent_service
    from upwatch.services.checker import CheckerService
    from upwatch.services.monitor_runner import monitor_check_service
    from upwatch.services.scheduler import scheduler_service, InFlightRegistry

    async def override_get_db():
        async with session_factory() as session:
            yield session

    monkeypatch.setattr(monitor_check_service, "checker", CheckerService(transport=status_transport(200)))
    monkeypatch.setattr(monitor_check_service, "notifier", notifier)
    monkeypatch.setattr(agent_service, "notifier", notifier)
    monkeypatch.setattr(agent_service, "registration_token", "shared-secret")
    monkeypatch.setattr(scheduler_service, "registry", InFlightRegistry())

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
