"""Unit tests for configuration module.

Tests for outfitgen/config.py - Settings and provider configuration.

Run with:
    pytest tests/unit/test_config.py -v
    pytest tests/unit/test_config.py -v -m fast
"""

import pytest

from outfitgen.config import Environment, ProviderType, Settings, get_settings


@pytest.fixture
def settings() -> Settings:
    return Settings(GEMINI_API_KEY="test-gemini-key", OPENAI_API_KEY=None)


@pytest.mark.fast
class TestProviderType:
    """Tests for ProviderType enum."""

    def test_provider_type_values(self):
        """Test ProviderType enum has expected values."""
        assert ProviderType.GEMINI.value == "gemini"
        assert ProviderType.OPENAI.value == "openai"

    def test_environment_values(self):
        """Test Environment enum has expected values."""
        assert Environment.DEVELOPMENT.value == "development"
        assert Environment.PRODUCTION.value == "production"


@pytest.mark.fast
class TestSettings:
    """Tests for Settings class."""

    def test_settings_with_gemini_key(self, settings):
        """Test settings with only the Gemini key."""
        assert settings.GEMINI_API_KEY == "test-gemini-key"
        assert settings.OPENAI_API_KEY is None

    def test_settings_with_openai_key(self, monkeypatch):
        """Test settings with only the OpenAI key."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        settings = Settings(GEMINI_API_KEY=None, OPENAI_API_KEY="sk-test")
        assert settings.OPENAI_API_KEY == "sk-test"
        assert settings.detected_provider == ProviderType.OPENAI

    def test_settings_requires_at_least_one_key(self):
        """Test settings validation requires at least one API key."""
        with pytest.raises(ValueError, match="At least one provider API key"):
            Settings(GEMINI_API_KEY=None, OPENAI_API_KEY=None)

    def test_settings_default_values(self, settings):
        """Test settings default values."""
        assert settings.PRIMARY_PROVIDER == ProviderType.GEMINI
        assert settings.RATE_LIMIT_MAX_CALLS == 10
        assert settings.RATE_LIMIT_WINDOW_SECONDS == 60.0
        assert settings.RATE_LIMIT_COOLDOWN_SECONDS == 2.0
        assert settings.RETRY_MAX_ATTEMPTS == 3
        assert settings.IMAGE_MAX_WIDTH == 800
        assert settings.IMAGE_JPEG_QUALITY == 70
        assert settings.ENVIRONMENT == Environment.DEVELOPMENT
        assert not settings.is_production
        assert settings.is_sqlite

    def test_invalid_database_url(self):
        """Test DATABASE_URL validation."""
        with pytest.raises(ValueError, match="DATABASE_URL must start with"):
            Settings(GEMINI_API_KEY="k", DATABASE_URL="mysql://localhost/db")

    def test_log_level_normalized(self):
        assert Settings(GEMINI_API_KEY="k", LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            Settings(GEMINI_API_KEY="k", LOG_LEVEL="chatty")

    def test_rate_limit_bounds(self):
        """Test non-positive limits are rejected at load time."""
        with pytest.raises(ValueError):
            Settings(GEMINI_API_KEY="k", RATE_LIMIT_MAX_CALLS=0)
        with pytest.raises(ValueError):
            Settings(GEMINI_API_KEY="k", RATE_LIMIT_WINDOW_SECONDS=0)

    def test_get_settings_cached(self):
        """Test get_settings returns the same instance."""
        assert get_settings() is get_settings()


@pytest.mark.fast
class TestSettingsHelpers:
    """Tests for provider lookups and derived configuration objects."""

    def test_detected_provider_falls_back_to_configured_key(self):
        """Test PRIMARY_PROVIDER without a key falls back to one that has a key."""
        settings = Settings(
            GEMINI_API_KEY="g",
            OPENAI_API_KEY=None,
            PRIMARY_PROVIDER=ProviderType.OPENAI,
        )
        assert settings.detected_provider == ProviderType.GEMINI

    def test_detected_provider_prefers_primary(self):
        settings = Settings(
            GEMINI_API_KEY="g",
            OPENAI_API_KEY="o",
            PRIMARY_PROVIDER=ProviderType.OPENAI,
        )
        assert settings.detected_provider == ProviderType.OPENAI

    def test_has_provider(self, settings):
        assert settings.has_provider(ProviderType.GEMINI)
        assert not settings.has_provider(ProviderType.OPENAI)

    def test_get_api_key(self, settings):
        assert settings.get_api_key(ProviderType.GEMINI) == "test-gemini-key"
        with pytest.raises(ValueError, match="OPENAI_API_KEY not configured"):
            settings.get_api_key(ProviderType.OPENAI)

    def test_rate_limit_config(self, settings):
        assert settings.get_rate_limit_config() == {
            "max_calls": 10,
            "window_seconds": 60.0,
            "cooldown_seconds": 2.0,
        }

    def test_retry_policy(self):
        settings = Settings(GEMINI_API_KEY="k", RETRY_MAX_ATTEMPTS=5, RETRY_MAX_DELAY=30.0)
        policy = settings.get_retry_policy()
        assert policy.max_attempts == 5
        assert policy.max_delay == 30.0
        assert policy.quota_base_delay == 20.0

    def test_preprocess_config(self):
        settings = Settings(GEMINI_API_KEY="k", IMAGE_MAX_WIDTH=640, IMAGE_JPEG_QUALITY=80)
        config = settings.get_preprocess_config()
        assert config.max_width == 640
        assert config.jpeg_quality == 80

    def test_storage_config(self):
        settings = Settings(
            GEMINI_API_KEY="k",
            DURABLE_CACHE_ENABLED=False,
            STORAGE_ROOT="/tmp/outfits",
            STORAGE_PUBLIC_BASE_URL="https://cdn.test",
        )
        config = settings.get_storage_config()
        assert config.enabled is False
        assert config.root == "/tmp/outfits"
        assert config.public_base_url == "https://cdn.test"
