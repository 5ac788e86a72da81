"""Application configuration with Pydantic Settings.

This module provides centralized configuration management using pydantic-settings.
Settings are loaded from environment variables and .env files.

Examples:
    >>> from outfitgen.config import get_settings
    >>> settings = get_settings()
    >>> settings.PRIMARY_PROVIDER
    <ProviderType.GEMINI: 'gemini'>

    >>> settings.get_retry_policy()
    RetryPolicy(max_attempts=3, quota_base_delay=20.0, ...)

Tests:
    - tests/unit/test_config.py::TestSettings
    - tests/unit/test_config.py::TestSettingsHelpers
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from outfitgen.core.preprocess import PreprocessConfig
    from outfitgen.core.retry import RetryPolicy
    from outfitgen.storage.config import StorageConfig


class ProviderType(str, Enum):
    """Supported image generation backends.

    - GEMINI: direct multi-image compose (Gemini image model)
    - OPENAI: describe garments with a vision model, then synthesize with DALL-E
    """

    GEMINI = "gemini"
    OPENAI = "openai"


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


# Default model per backend. OpenAI uses two models (vision + image).
PROVIDER_DEFAULT_MODELS: dict[ProviderType, dict[str, str]] = {
    ProviderType.GEMINI: {
        "image": "gemini-2.5-flash-image",
    },
    ProviderType.OPENAI: {
        "vision": "gpt-4o",
        "image": "dall-e-3",
    },
}


class Settings(BaseSettings):
    """Application settings with provider configuration.

    Settings are loaded from environment variables and .env file.
    At least one provider API key (GEMINI_API_KEY or OPENAI_API_KEY) is required.

    Attributes:
        GEMINI_API_KEY: Key for the Gemini-compatible generateContent proxy
        GEMINI_BASE_URL: Base URL of the proxy (LiteLLM style)
        OPENAI_API_KEY: OpenAI API key
        PRIMARY_PROVIDER: Backend used for generation
        RATE_LIMIT_*: Client-side admission limits
        RETRY_*: Retry/backoff policy
        IMAGE_*: Preprocessing limits applied before upload
        DATABASE_URL: Durable cache database
        STORAGE_*: Blob storage for generated images
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Provider API Keys
    GEMINI_API_KEY: str | None = Field(
        default=None,
        description="Gemini proxy API key",
    )
    GEMINI_BASE_URL: str = Field(
        default="http://localhost:4000",
        description="Base URL of the Gemini generateContent proxy",
    )
    GEMINI_PROJECT: str = Field(
        default="outfitgen-dev",
        description="Vertex project used in the proxy path",
    )
    GEMINI_LOCATION: str = Field(
        default="us-east1",
        description="Vertex location used in the proxy path",
    )
    GEMINI_IMAGE_MODEL: str = Field(
        default=PROVIDER_DEFAULT_MODELS[ProviderType.GEMINI]["image"],
        description="Gemini image model",
    )
    OPENAI_API_KEY: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    OPENAI_BASE_URL: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI API base URL",
    )
    OPENAI_VISION_MODEL: str = Field(
        default=PROVIDER_DEFAULT_MODELS[ProviderType.OPENAI]["vision"],
        description="Vision model used to describe garments",
    )
    OPENAI_IMAGE_MODEL: str = Field(
        default=PROVIDER_DEFAULT_MODELS[ProviderType.OPENAI]["image"],
        description="Text-to-image model",
    )

    # Provider Selection
    PRIMARY_PROVIDER: ProviderType = Field(
        default=ProviderType.GEMINI,
        description="Image generation backend",
    )
    REQUEST_TIMEOUT: float = Field(
        default=120.0,
        gt=0,
        description="Per-request transport timeout in seconds",
    )

    # Rate limiting
    RATE_LIMIT_MAX_CALLS: int = Field(
        default=10,
        ge=1,
        description="Maximum generations admitted per window",
    )
    RATE_LIMIT_WINDOW_SECONDS: float = Field(
        default=60.0,
        gt=0,
        description="Sliding window length in seconds",
    )
    RATE_LIMIT_COOLDOWN_SECONDS: float = Field(
        default=2.0,
        ge=0,
        description="Minimum spacing between admissions in seconds",
    )

    # Retry policy
    RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=10)
    RETRY_QUOTA_BASE_DELAY: float = Field(
        default=20.0,
        gt=0,
        description="Base wait after a quota error (seconds)",
    )
    RETRY_TIMEOUT_BASE_DELAY: float = Field(
        default=2.0,
        gt=0,
        description="Base wait after a timeout (seconds)",
    )
    RETRY_BACKOFF_FACTOR: float = Field(default=2.0, ge=1.0, le=4.0)
    RETRY_MAX_DELAY: float = Field(default=120.0, gt=0)

    # Preprocessing
    IMAGE_MAX_WIDTH: int = Field(default=800, ge=64)
    IMAGE_JPEG_QUALITY: int = Field(default=70, ge=1, le=95)

    # Durable cache
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./outfitgen.db",
        description="Database connection string",
    )
    DURABLE_CACHE_ENABLED: bool = Field(
        default=True,
        description="Persist generated outfits keyed by garment identity",
    )
    STORAGE_ROOT: str = Field(
        default="./output",
        description="Root directory for generated image blobs",
    )
    STORAGE_PUBLIC_BASE_URL: str | None = Field(
        default=None,
        description="Public URL prefix for stored blobs (file paths if unset)",
    )

    # Application Settings
    ENVIRONMENT: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Root log level",
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL format."""
        valid_prefixes = ("sqlite", "postgresql", "postgres")
        if not any(v.startswith(prefix) for prefix in valid_prefixes):
            raise ValueError(
                f"DATABASE_URL must start with one of: {valid_prefixes}"
            )
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return level

    @model_validator(mode="after")
    def validate_providers(self) -> "Settings":
        """Ensure at least one provider API key is configured."""
        if not self.GEMINI_API_KEY and not self.OPENAI_API_KEY:
            raise ValueError(
                "At least one provider API key is required "
                "(GEMINI_API_KEY or OPENAI_API_KEY)"
            )
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == Environment.PRODUCTION

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def detected_provider(self) -> ProviderType:
        """Pick the configured primary provider, or whichever has a key.

        Returns:
            ProviderType: PRIMARY_PROVIDER when its key is set, otherwise the
            first provider with a key.
        """
        if self.has_provider(self.PRIMARY_PROVIDER):
            return self.PRIMARY_PROVIDER
        if self.GEMINI_API_KEY:
            return ProviderType.GEMINI
        return ProviderType.OPENAI

    def has_provider(self, provider: ProviderType) -> bool:
        """Check if a specific provider is configured.

        Args:
            provider: The provider to check.

        Returns:
            bool: True if the provider's API key is configured.
        """
        if provider == ProviderType.GEMINI:
            return bool(self.GEMINI_API_KEY)
        elif provider == ProviderType.OPENAI:
            return bool(self.OPENAI_API_KEY)
        return False

    def get_api_key(self, provider: ProviderType) -> str:
        """Get API key for a specific provider.

        Args:
            provider: The provider to get the key for.

        Returns:
            str: The API key.

        Raises:
            ValueError: If the provider's API key is not configured.
        """
        if provider == ProviderType.GEMINI:
            if not self.GEMINI_API_KEY:
                raise ValueError("GEMINI_API_KEY not configured")
            return self.GEMINI_API_KEY
        elif provider == ProviderType.OPENAI:
            if not self.OPENAI_API_KEY:
                raise ValueError("OPENAI_API_KEY not configured")
            return self.OPENAI_API_KEY
        raise ValueError(f"Unknown provider: {provider}")

    def get_rate_limit_config(self) -> dict[str, Any]:
        """Get keyword arguments for RateLimiter construction."""
        return {
            "max_calls": self.RATE_LIMIT_MAX_CALLS,
            "window_seconds": self.RATE_LIMIT_WINDOW_SECONDS,
            "cooldown_seconds": self.RATE_LIMIT_COOLDOWN_SECONDS,
        }

    def get_retry_policy(self) -> "RetryPolicy":
        """Build the retry policy from RETRY_* settings."""
        from outfitgen.core.retry import RetryPolicy

        return RetryPolicy(
            max_attempts=self.RETRY_MAX_ATTEMPTS,
            quota_base_delay=self.RETRY_QUOTA_BASE_DELAY,
            timeout_base_delay=self.RETRY_TIMEOUT_BASE_DELAY,
            backoff_factor=self.RETRY_BACKOFF_FACTOR,
            max_delay=self.RETRY_MAX_DELAY,
        )

    def get_preprocess_config(self) -> "PreprocessConfig":
        """Build the image preprocessing limits."""
        from outfitgen.core.preprocess import PreprocessConfig

        return PreprocessConfig(
            max_width=self.IMAGE_MAX_WIDTH,
            jpeg_quality=self.IMAGE_JPEG_QUALITY,
            timeout=self.REQUEST_TIMEOUT,
        )

    def get_storage_config(self) -> "StorageConfig":
        """Build the blob storage configuration."""
        from outfitgen.storage.config import StorageConfig

        return StorageConfig(
            enabled=self.DURABLE_CACHE_ENABLED,
            root=self.STORAGE_ROOT,
            public_base_url=self.STORAGE_PUBLIC_BASE_URL,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: The application settings.

    Examples:
        >>> settings = get_settings()
        >>> settings.PRIMARY_PROVIDER
        <ProviderType.GEMINI: 'gemini'>
    """
    return Settings()
