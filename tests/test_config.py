"""Tests for environment configuration."""

import logging

import pytest

from resource_provider.config import AppConfig, _redact, configure_logging
from resource_provider.exceptions import SignatureConfigurationError


# ---------------------------------------------------------------------------
# _redact helper
# ---------------------------------------------------------------------------


def test_redact_short_value():
    """Short secrets are fully redacted."""
    assert _redact("abc") == "***"
    assert _redact("") == "***"


def test_redact_long_value():
    """Long secrets show first 4 and last 2 chars."""
    assert _redact("sk-1234567890abcdef") == "sk-1***ef"


# ---------------------------------------------------------------------------
# AppConfig
# ---------------------------------------------------------------------------


def test_defaults():
    config = AppConfig(env={})
    assert config.database_url == "sqlite+aiosqlite:///./resource_provider.db"
    assert config.queue_name == "resource"
    assert config.delivery_timeout == 10.0
    assert config.max_attempts == 3
    assert config.retry_delays == (1.0, 5.0, 30.0)
    assert config.poll_interval == 1.0
    assert config.log_level == "info"


def test_reads_env():
    config = AppConfig(env={
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "PROVIDER_SERVICE_UUID": "svc",
        "PROVIDER_SECRET": "secret",
        "RESOURCE_QUEUE": "resources-eu",
        "DELIVERY_TIMEOUT": "2.5",
        "DELIVERY_MAX_ATTEMPTS": "5",
        "DELIVERY_RETRY_DELAYS": "2, 4,8",
        "DISPATCHER_POLL_INTERVAL": "0.5",
        "LOG_LEVEL": "DEBUG",
    })
    assert config.service_uuid == "svc"
    assert config.queue_name == "resources-eu"
    assert config.delivery_timeout == 2.5
    assert config.max_attempts == 5
    assert config.retry_delays == (2.0, 4.0, 8.0)
    assert config.poll_interval == 0.5
    assert config.log_level == "debug"


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("PROVIDER_SERVICE_UUID", "from-env")
    assert AppConfig().service_uuid == "from-env"


def test_negative_delay_rejected():
    with pytest.raises(ValueError):
        AppConfig(env={"DELIVERY_RETRY_DELAYS": "1,-5"})


@pytest.mark.parametrize("env", [
    {"PROVIDER_SERVICE_UUID": "svc"},
    {"PROVIDER_SERVICE_UUID": "svc", "PROVIDER_SECRET": ""},
    {"PROVIDER_SECRET": "secret"},
])
def test_validate_requires_identity_and_secret(env):
    with pytest.raises(SignatureConfigurationError):
        AppConfig(env=env).validate()


def test_validate_rejects_zero_attempts():
    config = AppConfig(env={
        "PROVIDER_SERVICE_UUID": "svc",
        "PROVIDER_SECRET": "secret",
        "DELIVERY_MAX_ATTEMPTS": "0",
    })
    with pytest.raises(ValueError):
        config.validate()


def test_to_dict_redacts_secret():
    config = AppConfig(env={"PROVIDER_SERVICE_UUID": "svc", "PROVIDER_SECRET": "supersecretvalue"})
    data = config.to_dict()
    assert data["provider_secret"] == "supe***ue"
    assert data["service_uuid"] == "svc"


def test_configure_logging(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))
    configure_logging("warning")
    assert calls[0]["level"] == logging.WARNING
