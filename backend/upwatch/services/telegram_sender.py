"""Telegram sender service - delivers messages through the Bot API."""
import logging
from typing import Optional

import httpx

from ..config import settings
from ..schemas.notification import TelegramConfig
from .delivery import DeliveryResult

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramSenderService:
    """Service for sending notifications via a Telegram bot."""

    def __init__(
        self,
        timeout: float = settings.notification_timeout_seconds,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    async def send_message(self, config: TelegramConfig, subject: str, content: str) -> DeliveryResult:
        """Send subject and content as one sendMessage call."""
        # Templates may carry escaped newlines
        text = f"{subject}\n\n{content}".replace("\\n", "\n")
        url = f"{TELEGRAM_API_URL}/bot{config.bot_token}/sendMessage"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json={"chat_id": config.chat_id, "text": text})
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send Telegram message: {type(e).__name__}: {e}")
            return DeliveryResult(success=False, error=str(e) or type(e).__name__)
        except ValueError:
            logger.error(f"Telegram returned a non-JSON response (HTTP {response.status_code})")
            return DeliveryResult(success=False, error=f"HTTP {response.status_code}")

        if data.get("ok") is True:
            logger.info(f"Telegram message sent to chat {config.chat_id}")
            return DeliveryResult(success=True)

        error = data.get("description") or f"HTTP {response.status_code}"
        logger.warning(f"Telegram rejected message: {error}")
        return DeliveryResult(success=False, error=error)


# Global instance
telegram_sender_service = TelegramSenderService()
