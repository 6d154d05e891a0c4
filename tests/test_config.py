import pytest
from pydantic import ValidationError

from worldstats.config import Settings, get_settings, reset_settings


def test_settings_aliases_env(monkeypatch):
    monkeypatch.setenv("PORT", "8123")
    monkeypatch.setenv("DEBUG", "1")
    monkeypatch.setenv("CACHE_TTL_COUNTRY", "60")
    s = Settings()
    assert s.port == 8123
    assert s.debug is True
    assert s.cache_ttl_country == 60


def test_env_and_log_level_are_normalised(monkeypatch):
    monkeypatch.setenv("APP_ENV", "Production")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    s = Settings()
    assert s.env == "production"
    assert s.is_production
    assert s.log_level == "DEBUG"


def test_invalid_env_rejected(monkeypatch):
    monkeypatch.setenv("APP_ENV", "staging")
    with pytest.raises(ValidationError):
        Settings()


def test_direct_instantiation_defaults():
    s = Settings()
    assert s.cache_type in ("SimpleCache", "RedisCache")
    assert s.cache_key_prefix == "worldstats:"
    assert s.openai_model == "gpt-4o"
    assert s.cron_sync_schedule == "0 3 * * *"
    assert s.ws_heartbeat_interval == 30


def test_rate_limit_string():
    s = Settings(rate_limit_max_requests=10, rate_limit_window_seconds=60)
    assert s.rate_limit == "10 per 60 second"


def test_get_settings_is_singleton_until_reset(monkeypatch):
    reset_settings()
    first = get_settings()
    assert get_settings() is first
    monkeypatch.setenv("PORT", "9001")
    reset_settings()
    try:
        assert get_settings().port == 9001
    finally:
        reset_settings()
