"""Application configuration via environment variables."""

import logging
from functools import lru_cache
from typing import ClassVar

from pydantic_settings import BaseSettings

from citewatch.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    database_url: str = "sqlite+aiosqlite:///./citewatch.db"
    api_secret_key: str = "change-me"
    api_host: str = "0.0.0.0"
    api_port: int = 8787
    cors_origins: str = "*"
    environment: str = "development"

    # Answer-engine provider (SerpApi-compatible)
    serpapi_key: str | None = None
    serpapi_base_url: str = "https://serpapi.com"
    serp_locale_gl: str = "us"
    serp_locale_hl: str = "en"
    request_timeout_seconds: float = 20.0
    provider_rate_limit: int = 100
    provider_rate_window_seconds: int = 60

    # Control API admission
    api_rate_limit: int = 60
    api_rate_window_seconds: int = 3600

    # Retry policy for provider calls
    retry_max_retries: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 5.0
    retry_jitter: float = 0.1
    retry_deadline_seconds: float | None = 60.0

    # Provider response cache
    snapshot_cache_ttl_seconds: int = 300
    cache_max_size: int = 1000

    # Pacing between provider calls within a sweep
    inter_call_delay_seconds: float = 1.5

    # Notification collaborators
    realtime_notify_url: str | None = None
    email_dispatch_url: str | None = None
    notification_secret: str = "change-me"
    notification_timeout_seconds: int = 10

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    INSECURE_SECRETS: ClassVar[set[str]] = {"change-me", "change-me-in-production", "secret", ""}

    def validate_production(self) -> None:
        """Raise if running in production with insecure or missing credentials."""
        if self.environment != "production":
            if not self.serpapi_key:
                logger.warning("SERPAPI_KEY is not set; monitor checks will fail")
            return
        if self.api_secret_key in self.INSECURE_SECRETS:
            raise ConfigurationError(
                "API_SECRET_KEY must be changed from default in production. "
                'Generate one: python -c "import secrets; print(secrets.token_hex(32))"'
            )
        if self.notification_secret in self.INSECURE_SECRETS:
            raise ConfigurationError(
                "NOTIFICATION_SECRET must be changed from default in production"
            )
        if not self.serpapi_key:
            raise ConfigurationError("Missing required environment variables: SERPAPI_KEY")


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
