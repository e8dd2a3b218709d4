"""Tests for citewatch.config (Settings and get_settings)."""

import pytest

from citewatch.config import Settings, get_settings
from citewatch.errors import ConfigurationError


class TestDefaultSettings:
    def test_default_api_port(self):
        assert Settings().api_port == 8787

    def test_default_environment_is_development(self):
        assert Settings().environment == "development"

    def test_default_database_url_is_sqlite(self):
        assert "sqlite" in Settings().database_url

    def test_default_retry_policy(self):
        s = Settings()
        assert s.retry_max_retries == 3
        assert s.retry_base_delay_seconds == 1.0
        assert s.retry_max_delay_seconds == 5.0

    def test_default_pacing_and_cache(self):
        s = Settings()
        assert s.inter_call_delay_seconds == 1.5
        assert s.snapshot_cache_ttl_seconds == 300
        assert s.cache_max_size == 1000

    def test_default_rate_limits(self):
        s = Settings()
        assert (s.api_rate_limit, s.api_rate_window_seconds) == (60, 3600)
        assert (s.provider_rate_limit, s.provider_rate_window_seconds) == (100, 60)

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SERPAPI_KEY", "from-env")
        monkeypatch.setenv("INTER_CALL_DELAY_SECONDS", "0")
        s = Settings()
        assert s.serpapi_key == "from-env"
        assert s.inter_call_delay_seconds == 0


class TestInsecureSecrets:
    @pytest.mark.parametrize("secret", ["change-me", "", "secret", "change-me-in-production"])
    def test_known_insecure_values(self, secret):
        assert secret in Settings.INSECURE_SECRETS


class TestValidateProduction:
    def test_production_with_insecure_secret_raises(self):
        s = Settings(environment="production", api_secret_key="change-me", serpapi_key="k")
        with pytest.raises(ConfigurationError, match="API_SECRET_KEY"):
            s.validate_production()

    def test_production_with_default_notification_secret_raises(self):
        s = Settings(environment="production", api_secret_key="a" * 64, serpapi_key="k")
        with pytest.raises(ConfigurationError, match="NOTIFICATION_SECRET"):
            s.validate_production()

    def test_production_without_provider_key_raises(self):
        s = Settings(
            environment="production",
            api_secret_key="a" * 64,
            notification_secret="b" * 64,
            serpapi_key=None,
        )
        with pytest.raises(ConfigurationError, match="SERPAPI_KEY"):
            s.validate_production()

    def test_production_with_credentials_passes(self):
        s = Settings(
            environment="production",
            api_secret_key="a" * 64,
            notification_secret="b" * 64,
            serpapi_key="k",
        )
        s.validate_production()

    def test_development_is_lenient(self):
        s = Settings(environment="development", api_secret_key="change-me", serpapi_key=None)
        s.validate_production()


class TestGetSettings:
    def test_get_settings_cached_returns_same_object(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()

    def test_cache_clear_allows_reload(self):
        get_settings.cache_clear()
        s1 = get_settings()
        get_settings.cache_clear()
        assert s1 is not get_settings()
