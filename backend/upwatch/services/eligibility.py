"""Notification eligibility - decides whether a state change should notify.

All decisions go through ``resolve``, ``threshold_breaches`` and
``threshold_channels``; they are pure
functions over the settings rows, which ``load_settings`` fetches.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import NotificationSettings
from ..models.notification import GLOBAL_MONITOR, GLOBAL_AGENT

logger = logging.getLogger(__name__)

ENTITY_MONITOR = "monitor"
ENTITY_AGENT = "agent"

# Synthetic agent statuses used for transitions
AGENT_ONLINE = "online"
AGENT_OFFLINE = "offline"

GLOBAL_SCOPES = {
    ENTITY_MONITOR: GLOBAL_MONITOR,
    ENTITY_AGENT: GLOBAL_AGENT,
}

# metric -> (toggle attribute, threshold attribute)
THRESHOLD_FIELDS = {
    "cpu": ("on_cpu_threshold", "cpu_threshold"),
    "memory": ("on_memory_threshold", "memory_threshold"),
    "disk": ("on_disk_threshold", "disk_threshold"),
}


@dataclass
class Eligibility:
    """Whether to notify, and through which channels."""
    should_send: bool
    channels: List[int] = field(default_factory=list)


@dataclass
class ThresholdBreach:
    """An agent metric at or above its configured threshold."""
    metric: str
    value: float
    threshold: float


def governing_settings(
    specific: Optional[NotificationSettings],
    global_: Optional[NotificationSettings],
) -> Optional[NotificationSettings]:
    """Pick the settings row that governs an entity.

    An enabled specific row with override_global wins outright; otherwise the
    global row applies. Returns None when no enabled row applies.
    """
    if specific is not None and specific.enabled and specific.override_global:
        return specific
    if global_ is not None and global_.enabled:
        return global_
    return None


def _dedupe(channel_ids: List[int]) -> List[int]:
    seen = set()
    unique = []
    for channel_id in channel_ids:
        if channel_id not in seen:
            seen.add(channel_id)
            unique.append(channel_id)
    return unique


def _event_fires(entity_type: str, settings: NotificationSettings, previous: Optional[str], current: str) -> bool:
    if entity_type == ENTITY_MONITOR:
        if current == "down" and previous != "down":
            return bool(settings.on_down)
        if previous == "down" and current == "up":
            return bool(settings.on_recovery)
        return False

    if entity_type == ENTITY_AGENT:
        if current == AGENT_OFFLINE and previous != AGENT_OFFLINE:
            return bool(settings.on_offline)
        if previous == AGENT_OFFLINE and current == AGENT_ONLINE:
            return bool(settings.on_recovery)
        return False

    return False


def resolve(
    entity_type: str,
    previous: Optional[str],
    current: str,
    specific: Optional[NotificationSettings],
    global_: Optional[NotificationSettings],
) -> Eligibility:
    """Decide whether a status transition notifies, and on which channels."""
    governing = governing_settings(specific, global_)
    if governing is None:
        return Eligibility(should_send=False)

    channels = _dedupe(governing.channel_ids())
    if not channels:
        return Eligibility(should_send=False)

    if not _event_fires(entity_type, governing, previous, current):
        return Eligibility(should_send=False)

    return Eligibility(should_send=True, channels=channels)


def threshold_channels(governing: Optional[NotificationSettings]) -> List[int]:
    """Channels a threshold alert goes to, de-duplicated in configured order."""
    if governing is None:
        return []
    return _dedupe(governing.channel_ids())


def threshold_breaches(governing: Optional[NotificationSettings], metrics: dict) -> List[ThresholdBreach]:
    """Metrics at or above their enabled thresholds.

    ``metrics`` maps cpu/memory/disk to a percentage; missing values are skipped.
    """
    if governing is None:
        return []

    breaches = []
    for metric, (toggle, limit) in THRESHOLD_FIELDS.items():
        value = metrics.get(metric)
        threshold = getattr(governing, limit)
        if value is None or threshold is None or not getattr(governing, toggle):
            continue
        if value >= threshold:
            breaches.append(ThresholdBreach(metric=metric, value=float(value), threshold=float(threshold)))
    return breaches


async def load_settings(
    session: AsyncSession,
    entity_type: str,
    entity_id: int,
) -> Tuple[Optional[NotificationSettings], Optional[NotificationSettings]]:
    """Fetch (specific, global) settings rows for an entity."""
    result = await session.execute(
        select(NotificationSettings)
        .where(
            NotificationSettings.target_type == entity_type,
            NotificationSettings.target_id == entity_id,
        )
        .order_by(NotificationSettings.override_global.desc(), NotificationSettings.id)
        .limit(1)
    )
    specific = result.scalar_one_or_none()

    result = await session.execute(
        select(NotificationSettings)
        .where(NotificationSettings.target_type == GLOBAL_SCOPES[entity_type])
        .order_by(NotificationSettings.id)
        .limit(1)
    )
    global_ = result.scalar_one_or_none()

    return specific, global_
