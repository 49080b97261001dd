"""Channel config parsing."""
import pytest

from upwatch.schemas.notification import (
    ChannelConfigError,
    ResendConfig,
    SmtpConfig,
    TelegramConfig,
    parse_channel_config,
)
from upwatch.services.email_sender import parse_recipients


class TestParseChannelConfig:
    def test_telegram(self):
        config = parse_channel_config("telegram", '{"botToken": "123:abc", "chatId": -100200}')
        assert isinstance(config, TelegramConfig)
        assert config.chat_id == "-100200"

    def test_resend(self):
        config = parse_channel_config("resend", {"apiKey": "re_1", "from": "a@x.io", "to": "b@x.io"})
        assert isinstance(config, ResendConfig)
        assert config.from_address == "a@x.io"

    def test_smtp_defaults(self):
        config = parse_channel_config("email", '{"smtpServer": "smtp.x.io", "to": "ops@x.io"}')
        assert isinstance(config, SmtpConfig)
        assert config.smtp_port == 587
        assert config.use_ssl is False

    def test_unknown_type(self):
        with pytest.raises(ChannelConfigError, match="Unsupported channel type"):
            parse_channel_config("pager", "{}")

    def test_malformed_json(self):
        with pytest.raises(ChannelConfigError, match="Malformed"):
            parse_channel_config("telegram", "{not json")

    def test_non_object_json(self):
        with pytest.raises(ChannelConfigError):
            parse_channel_config("telegram", "[1, 2]")

    def test_missing_field(self):
        with pytest.raises(ChannelConfigError, match="apiKey"):
            parse_channel_config("resend", '{"from": "a@x.io", "to": "b@x.io"}')


class TestParseRecipients:
    def test_splits_and_strips(self):
        assert parse_recipients(" a@x.io, ,b@x.io ") == ["a@x.io", "b@x.io"]

    def test_empty(self):
        assert parse_recipients("") == []
