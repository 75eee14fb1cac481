import pytest
from pydantic import ValidationError

from core.config.settings import Settings, SessionSettings
from core.logging.channels import LogChannel, get_channel_for_component
from core.logging.enhanced_logging import parse_size, redact_event


def test_nested_environment_overrides(monkeypatch):
    monkeypatch.setenv("SESSION__TTL_HOURS", "4")
    monkeypatch.setenv("SYNC__ACCOUNT_DELAY_SECONDS", "0")
    monkeypatch.setenv("ZERODHA__API_KEY", "env_key")

    settings = Settings()

    assert settings.session.ttl_seconds == 4 * 3600
    assert settings.sync.account_delay_seconds == 0
    assert settings.zerodha.api_key == "env_key"


def test_defaults():
    settings = Settings()

    assert settings.session.ttl_seconds == 8 * 3600
    assert settings.session.max_attempts == 2
    assert settings.sync.margin_timeout_seconds == 30.0
    assert settings.sync.excluded_position_suffix == "_day"


def test_max_attempts_must_be_positive():
    with pytest.raises(ValidationError):
        SessionSettings(max_attempts=0)


def test_redaction_is_recursive_and_case_insensitive():
    event = {
        "event": "Kite session created",
        "Access_Token": "abc",
        "details": {"api_secret": "s", "account_id": 1},
        "items": [{"password": "p"}],
    }

    redacted = redact_event(event, {"access_token", "api_secret", "password"})

    assert redacted["Access_Token"] == "[REDACTED]"
    assert redacted["details"] == {"api_secret": "[REDACTED]", "account_id": 1}
    assert redacted["items"] == [{"password": "[REDACTED]"}]
    assert redacted["event"] == "Kite session created"


def test_component_channels():
    assert get_channel_for_component("session_manager") is LogChannel.TRADING
    assert get_channel_for_component("database") is LogChannel.DATABASE
    assert get_channel_for_component("audit") is LogChannel.AUDIT


@pytest.mark.parametrize("size, expected", [
    ("50MB", 50 * 1024 * 1024),
    ("1.5k", 1536),
    ("2G", 2 * 1024 ** 3),
    ("4096", 4096),
])
def test_parse_size(size, expected):
    assert parse_size(size) == expected


def test_parse_size_rejects_garbage():
    with pytest.raises(ValueError):
        parse_size("lots")
