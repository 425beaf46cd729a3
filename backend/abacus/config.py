"""Application configuration using Pydantic settings."""

from datetime import date
from functools import lru_cache

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class ModelPrice(BaseModel):
    """USD price per million tokens for one normalized model."""

    input: float
    output: float
    cache_write: float = 0.0
    cache_read: float = 0.0


class AttributionRuleConfig(BaseModel):
    """Extra AI-attribution rule supplied through the environment."""

    pattern: str
    tool: str
    model: str | None = None
    field: str = "message"  # 'message' or 'author'


DEFAULT_MODEL_PRICING: dict[str, ModelPrice] = {
    "opus-4.5": ModelPrice(input=5.0, output=25.0, cache_write=6.25, cache_read=0.50),
    "opus-4.1": ModelPrice(input=15.0, output=75.0, cache_write=18.75, cache_read=1.50),
    "opus-4": ModelPrice(input=15.0, output=75.0, cache_write=18.75, cache_read=1.50),
    "sonnet-4.5": ModelPrice(input=3.0, output=15.0, cache_write=3.75, cache_read=0.30),
    "sonnet-4": ModelPrice(input=3.0, output=15.0, cache_write=3.75, cache_read=0.30),
    "sonnet-3.7": ModelPrice(input=3.0, output=15.0, cache_write=3.75, cache_read=0.30),
    "haiku-4.5": ModelPrice(input=1.0, output=5.0, cache_write=1.25, cache_read=0.10),
    "haiku-3.5": ModelPrice(input=0.80, output=4.0, cache_write=1.0, cache_read=0.08),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/abacus"

    # Anthropic Admin API (usage report, daily cadence)
    anthropic_admin_key: str | None = None
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_version: str = "2023-06-01"

    # Cursor Admin API (usage events, hourly cadence)
    cursor_admin_key: str | None = None
    cursor_base_url: str = "https://api.cursor.com"
    cursor_page_delay_seconds: float = 3.0  # 20 requests per minute

    # GitHub (commit polling + push webhook)
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    github_org: str | None = None
    github_repos: list[str] = []  # Overrides the org listing when set
    github_webhook_secret: str | None = None
    work_email_domain: str | None = None

    # Cron trigger authentication
    cron_secret: str | None = None

    # Sync settings
    backfill_target_date: date = date(2025, 1, 1)
    backfill_chunk_days: int = 7
    backfill_stop_on_empty_days: int = 7
    hourly_initial_lookback_hours: int = 24
    max_errors_collected: int = 50
    max_errors_reported: int = 5

    # Injectable normalization tables
    model_pricing: dict[str, ModelPrice] = DEFAULT_MODEL_PRICING
    attribution_rules: list[AttributionRuleConfig] = []

    # Outbound HTTP
    http_max_retries: int = 3
    http_timeout_seconds: float = 30.0

    # Embedded scheduler (off when an external cron drives the endpoints)
    enable_scheduler: bool = False
    usage_report_poll_interval_minutes: int = 360
    hourly_events_poll_interval_minutes: int = 60
    commits_poll_interval_minutes: int = 60
    backfill_poll_interval_minutes: int = 30

    # API settings
    api_prefix: str = "/api"
    cors_origins: list[str] = ["*"]  # Restrict in production
    rate_limit_per_minute: int = 60

    # Environment
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
