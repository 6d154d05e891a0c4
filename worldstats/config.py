from pathlib import Path
from typing import Optional, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# =========================
# Configuration (ENV-DRIVEN via Pydantic)
# =========================


class Settings(BaseSettings):
    """Application settings read from environment and validated by Pydantic.

    Only a single `.env` file at the project root is read. Real environment
    variables always take precedence over `.env` values.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
        env_file=str(Path(__file__).resolve().parent.parent / ".env"),
        env_file_encoding="utf-8",
    )

    # App
    env: Literal["development", "production", "test"] = Field(default="development", alias="APP_ENV")
    port: int = Field(default=3001, ge=1, le=65535, alias="PORT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Persistence
    database_url: str = Field(default="sqlite:///worldstats.db", alias="DATABASE_URL")

    # Cache
    cache_type: Literal["SimpleCache", "RedisCache"] = Field(default="SimpleCache", alias="CACHE_TYPE")
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    cache_key_prefix: str = Field(default="worldstats:", alias="CACHE_KEY_PREFIX")
    cache_retry_base_seconds: float = Field(default=1.0, gt=0, alias="CACHE_RETRY_BASE_SECONDS")
    cache_retry_max_seconds: float = Field(default=60.0, gt=0, alias="CACHE_RETRY_MAX_SECONDS")
    cache_ttl_country: int = Field(default=6 * 60 * 60, ge=0, alias="CACHE_TTL_COUNTRY")
    cache_ttl_charts: int = Field(default=12 * 60 * 60, ge=0, alias="CACHE_TTL_CHARTS")
    cache_ttl_comparison: int = Field(default=60 * 60, ge=0, alias="CACHE_TTL_COMPARISON")
    cache_ttl_ai_summary: int = Field(default=24 * 60 * 60, ge=0, alias="CACHE_TTL_AI_SUMMARY")

    # AI summary
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_model: str = Field(default="gpt-4o", alias="OPENAI_MODEL")

    # External sources
    worldbank_api_url: str = Field(default="", alias="WORLD_BANK_API_URL")
    external_cache_hours: int = Field(default=24, ge=0, alias="EXTERNAL_CACHE_HOURS")

    # Scheduling / realtime
    enable_scheduler: bool = Field(default=True, alias="ENABLE_SCHEDULER")
    cron_sync_schedule: str = Field(default="0 3 * * *", alias="CRON_SYNC_SCHEDULE")
    ws_heartbeat_interval: int = Field(default=30, ge=1, alias="WS_HEARTBEAT_INTERVAL")

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_max_requests: int = Field(default=100, ge=1, alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_window_seconds: int = Field(default=15 * 60, ge=1, alias="RATE_LIMIT_WINDOW_SECONDS")

    # Auth/JWT (admin endpoints)
    disable_auth: bool = Field(default=False, alias="DISABLE_AUTH")
    jwt_secret: str = Field(default="dev-secret", alias="JWT_SECRET")
    jwt_issuer: Optional[str] = Field(default=None, alias="JWT_ISSUER")
    jwt_audience: Optional[str] = Field(default=None, alias="JWT_AUDIENCE")

    @field_validator("env", mode="before")
    @classmethod
    def _lower_env(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def rate_limit(self) -> str:
        """Flask-Limiter limit string, e.g. ``100 per 900 second``."""
        return f"{self.rate_limit_max_requests} per {self.rate_limit_window_seconds} second"


# Singleton accessor to avoid repeated disk reads/parsing
_settings_singleton: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the singleton Settings instance, initializing it on first call."""
    global _settings_singleton
    if _settings_singleton is None:
        _settings_singleton = Settings()
    return _settings_singleton


def reset_settings() -> None:
    """Forget the cached Settings so the next `get_settings()` re-reads the env."""
    global _settings_singleton
    _settings_singleton = None
