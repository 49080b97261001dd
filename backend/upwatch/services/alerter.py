"""Alerter service - renders notification templates and delivers them to channels."""
import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Agent, NotificationChannel, NotificationHistory, NotificationTemplate
from ..models.notification import DELIVERY_SUCCESS, DELIVERY_FAILED
from ..schemas.notification import ChannelConfigError, parse_channel_config
from ..utils.db_utils import retry_on_lock
from .delivery import DeliveryResult
from .eligibility import (
    ENTITY_AGENT,
    governing_settings,
    load_settings,
    resolve,
    threshold_breaches,
    threshold_channels,
)
from .email_sender import email_sender_service, EmailSenderService
from .telegram_sender import telegram_sender_service, TelegramSenderService

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\$\{(\w+)\}")

METRIC_LABELS = {
    "cpu": "CPU usage",
    "memory": "Memory usage",
    "disk": "Disk usage",
}


def render(text: str, variables: Dict[str, object]) -> str:
    """Substitute ${key} tokens literally.

    Tokens whose key is not in ``variables`` are left as they are.
    """
    if not text:
        return ""

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    return TOKEN_PATTERN.sub(_replace, text)


@dataclass
class ChannelOutcome:
    """Delivery outcome for one channel of a dispatch."""
    channel_id: int
    success: bool
    error: Optional[str] = None


@dataclass
class DispatchResult:
    """Aggregate outcome; successful when any channel delivered."""
    success: bool
    results: List[ChannelOutcome] = field(default_factory=list)


class Notifier(Protocol):
    """What the check and heartbeat paths need from the alerting side."""

    async def notify_transition(
        self,
        session: AsyncSession,
        entity_type: str,
        target_id: int,
        previous: Optional[str],
        current: str,
        variables: Dict[str, object],
    ) -> Optional[DispatchResult]:
        ...

    async def notify_thresholds(
        self,
        session: AsyncSession,
        agent: Agent,
        metrics: Dict[str, Optional[float]],
        variables: Dict[str, object],
    ) -> int:
        ...


class AlerterService:
    """Service for dispatching notifications to Telegram, Resend and SMTP channels."""

    def __init__(
        self,
        telegram_sender: TelegramSenderService = telegram_sender_service,
        email_sender: EmailSenderService = email_sender_service,
    ):
        self.telegram_sender = telegram_sender
        self.email_sender = email_sender

    async def _get_default_template(
        self,
        session: AsyncSession,
        notification_type: str,
    ) -> Optional[NotificationTemplate]:
        result = await session.execute(
            select(NotificationTemplate)
            .where(
                NotificationTemplate.type == notification_type,
                NotificationTemplate.is_default.is_(True),
            )
            .order_by(NotificationTemplate.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _deliver(self, channel: NotificationChannel, subject: str, content: str) -> DeliveryResult:
        """Resolve the channel's typed config and hand the message to its transport."""
        try:
            config = parse_channel_config(channel.type, channel.config)
        except ChannelConfigError as e:
            logger.warning(f"Channel {channel.id} ({channel.name}) is misconfigured: {e}")
            return DeliveryResult(success=False, error=str(e))

        if channel.type == "telegram":
            return await self.telegram_sender.send_message(config, subject, content)
        if channel.type == "resend":
            return await self.email_sender.send_resend(config, subject, content)
        return await self.email_sender.send_smtp(config, subject, content)

    async def _deliver_to(
        self,
        channel_id: int,
        channel: Optional[NotificationChannel],
        subject: str,
        content: str,
    ) -> ChannelOutcome:
        if channel is None:
            logger.warning(f"Notification channel {channel_id} does not exist")
            return ChannelOutcome(channel_id=channel_id, success=False, error="Channel not found")
        if not channel.enabled:
            return ChannelOutcome(channel_id=channel_id, success=False, error="Channel is disabled")

        try:
            delivery = await self._deliver(channel, subject, content)
        except Exception as e:
            logger.error(f"Unexpected error delivering to channel {channel_id}: {type(e).__name__}: {e}")
            delivery = DeliveryResult(success=False, error=str(e) or type(e).__name__)

        return ChannelOutcome(channel_id=channel_id, success=delivery.success, error=delivery.error)

    async def dispatch(
        self,
        session: AsyncSession,
        notification_type: str,
        target_id: Optional[int],
        variables: Dict[str, object],
        channel_ids: List[int],
    ) -> DispatchResult:
        """Render the default template for a type and deliver it to every channel.

        Channels are delivered to concurrently. One NotificationHistory row is
        written per existing channel with the actual outcome; unknown channel ids
        only show up in the returned results.
        """
        template = await self._get_default_template(session, notification_type)
        if template is None:
            logger.warning(f"No default notification template for type '{notification_type}', skipping")
            return DispatchResult(success=False)

        subject = render(template.subject, variables)
        content = render(template.content, variables)

        channels = {}
        for channel_id in channel_ids:
            channels[channel_id] = await session.get(NotificationChannel, channel_id)

        outcomes = await asyncio.gather(*(
            self._deliver_to(channel_id, channels[channel_id], subject, content)
            for channel_id in channel_ids
        ))

        ledger_content = json.dumps(
            {"subject": subject, "content": content, "variables": variables},
            default=str,
        )
        for outcome in outcomes:
            if channels.get(outcome.channel_id) is None:
                continue
            session.add(NotificationHistory(
                type=notification_type,
                target_id=target_id,
                channel_id=outcome.channel_id,
                template_id=template.id,
                status=DELIVERY_SUCCESS if outcome.success else DELIVERY_FAILED,
                content=ledger_content,
                error=outcome.error,
            ))
        await retry_on_lock(session.commit)

        result = DispatchResult(success=any(o.success for o in outcomes), results=list(outcomes))
        delivered = sum(1 for o in outcomes if o.success)
        logger.info(
            f"Dispatched {notification_type} notification for target {target_id}: "
            f"{delivered}/{len(outcomes)} channel(s) succeeded"
        )
        return result

    async def notify_transition(
        self,
        session: AsyncSession,
        entity_type: str,
        target_id: int,
        previous: Optional[str],
        current: str,
        variables: Dict[str, object],
    ) -> Optional[DispatchResult]:
        """Dispatch a status change if the governing settings ask for it.

        Returns None when no notification was due.
        """
        specific, global_ = await load_settings(session, entity_type, target_id)
        decision = resolve(entity_type, previous, current, specific, global_)
        if not decision.should_send:
            logger.debug(f"No notification due for {entity_type} {target_id} ({previous} -> {current})")
            return None

        return await self.dispatch(session, entity_type, target_id, variables, decision.channels)

    async def notify_thresholds(
        self,
        session: AsyncSession,
        agent: Agent,
        metrics: Dict[str, Optional[float]],
        variables: Dict[str, object],
    ) -> int:
        """Dispatch one notification per metric at or above its threshold.

        Returns the number of dispatches attempted.
        """
        specific, global_ = await load_settings(session, ENTITY_AGENT, agent.id)
        governing = governing_settings(specific, global_)
        breaches = threshold_breaches(governing, metrics)
        if not breaches:
            return 0

        channels = threshold_channels(governing)
        if not channels:
            logger.info(f"Agent {agent.name} crossed a threshold but no channels are configured")
            return 0

        for breach in breaches:
            label = METRIC_LABELS[breach.metric]
            logger.info(
                f"Agent {agent.name} (ID: {agent.id}) {label.lower()} at "
                f"{breach.value:.2f}% >= {breach.threshold}%"
            )
            alert_vars = dict(variables)
            alert_vars.update({
                "status": f"{label} alert",
                "previous_status": "normal",
                "error": f"{label} ({breach.value:.2f}%) exceeded threshold ({breach.threshold}%)",
                "details": (
                    f"{label}: {breach.value:.2f}%\n"
                    f"Threshold: {breach.threshold}%\n"
                    f"Hostname: {variables.get('hostname')}\n"
                    f"IP addresses: {variables.get('ip_addresses')}\n"
                    f"OS: {variables.get('os')}"
                ),
            })
            await self.dispatch(session, ENTITY_AGENT, agent.id, alert_vars, channels)

        return len(breaches)

    async def send_test(
        self,
        session: AsyncSession,
        channel_id: int,
        subject: str,
        content: str,
    ) -> ChannelOutcome:
        """Deliver a literal message to one channel without touching the ledger."""
        channel = await session.get(NotificationChannel, channel_id)
        outcome = await self._deliver_to(channel_id, channel, subject, content)
        if outcome.success:
            logger.info(f"Test notification delivered to channel {channel_id}")
        else:
            logger.warning(f"Test notification to channel {channel_id} failed: {outcome.error}")
        return outcome


# Global instance
alerter_service = AlerterService()
