"""Test configuration loading."""

import pytest
from pydantic import ValidationError

from ai_orchestration.config import BackoffStrategy, RetryConfig, Settings


def test_default_settings():
    settings = Settings(_env_file=None)
    assert settings.queue.concurrency == 3
    assert settings.retry.max_retries == 3
    assert settings.retry.backoff == BackoffStrategy.EXPONENTIAL
    assert settings.retry.initial_delay == 1000
    assert settings.retry.max_delay == 30000
    assert settings.pool.max_connections_per_provider == 5
    assert settings.pool.idle_timeout == 30.0
    assert settings.pool.health_check_interval == 60.0
    assert settings.debug.enabled is False
    assert settings.default_provider == "openai"


def test_env_override(monkeypatch):
    monkeypatch.setenv("AI_ORCH_ENVIRONMENT", "production")
    monkeypatch.setenv("AI_ORCH_QUEUE__CONCURRENCY", "7")
    monkeypatch.setenv("AI_ORCH_RETRY__BACKOFF", "linear")
    monkeypatch.setenv("AI_ORCH_DEBUG__FILTERS", '["request", "error"]')
    settings = Settings(_env_file=None)
    assert settings.is_production is True
    assert settings.queue.concurrency == 7
    assert settings.retry.backoff == BackoffStrategy.LINEAR
    assert settings.debug.filters == ["request", "error"]


def test_rate_limits_from_env(monkeypatch):
    monkeypatch.setenv("AI_ORCH_RATE_LIMITS", '{"openai": {"tokens_per_minute": 90000}}')
    settings = Settings(_env_file=None)
    assert settings.rate_limits["openai"].tokens_per_minute == 90000
    assert settings.rate_limits["openai"].requests_per_minute is None


def test_invalid_concurrency():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, queue={"concurrency": 0})


def test_invalid_delays():
    with pytest.raises(ValidationError):
        RetryConfig(initial_delay=5000, max_delay=1000)


def test_invalid_log_level():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="chatty")
