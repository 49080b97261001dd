"""Pydantic schemas for API request/response models."""
from .monitor import CheckResultResponse
from .agent import (
    AgentRegister,
    AgentRegisterResponse,
    AgentStatusReport,
    AgentStatusResponse,
)
from .notification import (
    ChannelConfigError,
    TelegramConfig,
    ResendConfig,
    SmtpConfig,
    parse_channel_config,
    NotificationTestRequest,
    ChannelTestResponse,
)

__all__ = [
    "CheckResultResponse",
    "AgentRegister",
    "AgentRegisterResponse",
    "AgentStatusReport",
    "AgentStatusResponse",
    "ChannelConfigError",
    "TelegramConfig",
    "ResendConfig",
    "SmtpConfig",
    "parse_channel_config",
    "NotificationTestRequest",
    "ChannelTestResponse",
]
