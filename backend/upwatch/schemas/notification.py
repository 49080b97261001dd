"""Notification channel config schemas.

Channel configs are stored as JSON blobs whose shape depends on the channel
type. They are parsed into one of the typed models below at dispatch time.
"""
import json
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError


class ChannelConfigError(ValueError):
    """A channel's stored config cannot be used for delivery."""


class TelegramConfig(BaseModel):
    """Telegram Bot API target."""
    bot_token: str = Field(..., alias="botToken", min_length=1)
    chat_id: str = Field(..., alias="chatId", min_length=1)

    class Config:
        populate_by_name = True
        coerce_numbers_to_str = True


class ResendConfig(BaseModel):
    """Email relay (Resend API) target."""
    api_key: str = Field(..., alias="apiKey", min_length=1)
    from_address: str = Field(..., alias="from", min_length=1)
    to: str = Field(..., min_length=1)  # Comma-separated recipients

    class Config:
        populate_by_name = True


class SmtpConfig(BaseModel):
    """SMTP server target."""
    smtp_server: str = Field(..., alias="smtpServer", min_length=1)
    smtp_port: int = Field(587, alias="smtpPort", ge=1, le=65535)
    smtp_username: str = Field("", alias="smtpUsername")
    smtp_password: str = Field("", alias="smtpPassword")
    use_ssl: bool = Field(False, alias="useSSL")
    from_address: str = Field("", alias="from")
    to: str = Field(..., min_length=1)  # Comma-separated recipients

    class Config:
        populate_by_name = True


ChannelConfig = Union[TelegramConfig, ResendConfig, SmtpConfig]

# Channel type -> config model
CHANNEL_CONFIG_TYPES = {
    "telegram": TelegramConfig,
    "resend": ResendConfig,
    "email": SmtpConfig,
}


def parse_channel_config(channel_type: str, raw) -> ChannelConfig:
    """Resolve a stored config blob into the typed config for its channel type.

    Raises ChannelConfigError for unknown types, malformed JSON or invalid fields.
    """
    model = CHANNEL_CONFIG_TYPES.get(channel_type)
    if model is None:
        raise ChannelConfigError(f"Unsupported channel type: {channel_type}")

    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw or "{}")
        except json.JSONDecodeError as e:
            raise ChannelConfigError(f"Malformed {channel_type} config: {e}") from e

    if not isinstance(data, dict):
        raise ChannelConfigError(f"Malformed {channel_type} config: expected a JSON object")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ChannelConfigError(f"Invalid {channel_type} config: {fields}") from e


class NotificationTestRequest(BaseModel):
    """Schema for sending a test message through one channel."""
    subject: str = Field("UpWatch test notification", max_length=200)
    content: str = Field("This is a test notification from UpWatch.", max_length=4000)



class ChannelTestResponse(BaseModel):
    """Result of a test message."""
    channel_id: int
    success: bool
    error: Optional[str] = None
