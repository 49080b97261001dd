"""Email sender service - sends alerts via SMTP or the Resend relay API."""
import asyncio
import logging
import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, List

import httpx

from ..config import settings
from ..schemas.notification import SmtpConfig, ResendConfig
from .delivery import DeliveryResult

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


def parse_recipients(to_address: str) -> List[str]:
    """Parse comma-separated email addresses into a list."""
    if not to_address:
        return []
    # Split by comma, strip whitespace, filter empty
    return [addr.strip() for addr in to_address.split(",") if addr.strip()]


class EmailSenderService:
    """Service for sending email alerts via SMTP or Resend."""

    def __init__(
        self,
        timeout: float = settings.notification_timeout_seconds,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    async def send_resend(self, config: ResendConfig, subject: str, content: str) -> DeliveryResult:
        """Send an email through the Resend API."""
        recipients = parse_recipients(config.to)
        if not recipients:
            return DeliveryResult(success=False, error="No valid recipients")

        payload = {
            "from": config.from_address,
            "to": recipients,
            "subject": subject,
            "html": content.replace("\n", "<br>"),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    RESEND_API_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {config.api_key}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Failed to call Resend API: {type(e).__name__}: {e}")
            return DeliveryResult(success=False, error=str(e) or type(e).__name__)

        if response.status_code < 400:
            logger.info(f"Email sent via Resend to {len(recipients)} recipient(s): {subject}")
            return DeliveryResult(success=True)

        try:
            message = response.json().get("message")
        except ValueError:
            message = None
        error = message or f"HTTP {response.status_code}"
        logger.warning(f"Resend rejected email: {error}")
        return DeliveryResult(success=False, error=error)

    async def send_smtp(self, config: SmtpConfig, subject: str, content: str) -> DeliveryResult:
        """Send an email using SMTP.

        The blocking SMTP client runs in the default executor and is bounded by
        the channel timeout.
        """
        recipients = parse_recipients(config.to)
        if not recipients:
            logger.warning("No valid recipients found in to_address")
            return DeliveryResult(success=False, error="No valid recipients")

        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, self._send_smtp_blocking, config, recipients, subject, content),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Timeout sending email via {config.smtp_server}:{config.smtp_port}")
            return DeliveryResult(success=False, error="SMTP timeout")
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for user '{config.smtp_username}': {e}")
            return DeliveryResult(success=False, error="SMTP authentication failed")
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipients refused by server: {e}")
            return DeliveryResult(success=False, error="Recipients refused")
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {type(e).__name__}: {e}")
            return DeliveryResult(success=False, error=f"{type(e).__name__}: {e}")
        except OSError as e:
            logger.error(f"Connection to {config.smtp_server}:{config.smtp_port} failed: {e}")
            return DeliveryResult(success=False, error=str(e))

        logger.info(f"Email sent successfully to {len(recipients)} recipient(s): {subject}")
        return DeliveryResult(success=True)

    def _send_smtp_blocking(self, config: SmtpConfig, recipients: List[str], subject: str, content: str):
        """Build and send the message (blocking operation)."""
        from_addr = config.from_address or config.smtp_username

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_addr
        msg["To"] = ", ".join(recipients)  # Header shows all recipients
        msg.attach(MIMEText(content, "plain", "utf-8"))

        context = ssl.create_default_context()
        if config.use_ssl:
            server = smtplib.SMTP_SSL(config.smtp_server, config.smtp_port, timeout=self.timeout, context=context)
        else:
            server = smtplib.SMTP(config.smtp_server, config.smtp_port, timeout=self.timeout)

        with server:
            if not config.use_ssl:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=context)
                    server.ehlo()
            if config.smtp_username and config.smtp_password:
                server.login(config.smtp_username, config.smtp_password)
            server.sendmail(from_addr, recipients, msg.as_string())


# Global instance
email_sender_service = EmailSenderService()
