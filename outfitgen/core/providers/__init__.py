"""Image provider abstraction and implementations.

Re-exports base classes and provider implementations for convenient imports.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

# Base classes (import from base module)
from outfitgen.core.providers.base import (
    AuthenticationError,
    FatalProviderError,
    ImageProvider,
    ProviderError,
    ProviderTimeoutError,
    ProviderType,
    QuotaExceededError,
)
from outfitgen.core.providers.gemini import GeminiComposeProvider, classify_gemini_error
from outfitgen.core.providers.openai import OpenAIDescribeProvider, classify_openai_error

if TYPE_CHECKING:
    from outfitgen.config import Settings

__all__ = [
    # Base classes
    "AuthenticationError",
    "FatalProviderError",
    "ImageProvider",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderType",
    "QuotaExceededError",
    # Implementations
    "GeminiComposeProvider",
    "OpenAIDescribeProvider",
    "classify_gemini_error",
    "classify_openai_error",
    "create_provider",
]


def create_provider(settings: Settings, provider_type: ProviderType | None = None) -> ImageProvider:
    """Instantiate a provider from settings.

    Args:
        settings: Application settings.
        provider_type: Provider to build (defaults to settings.detected_provider).

    Raises:
        ValueError: If the provider's API key is not configured.
    """
    provider_type = provider_type or settings.detected_provider
    api_key = settings.get_api_key(provider_type)

    if provider_type == ProviderType.GEMINI:
        return GeminiComposeProvider(
            api_key=api_key,
            base_url=settings.GEMINI_BASE_URL,
            project=settings.GEMINI_PROJECT,
            location=settings.GEMINI_LOCATION,
            model=settings.GEMINI_IMAGE_MODEL,
            timeout=settings.REQUEST_TIMEOUT,
        )
    if provider_type == ProviderType.OPENAI:
        return OpenAIDescribeProvider(
            api_key=api_key,
            base_url=settings.OPENAI_BASE_URL,
            vision_model=settings.OPENAI_VISION_MODEL,
            image_model=settings.OPENAI_IMAGE_MODEL,
            timeout=settings.REQUEST_TIMEOUT,
        )
    raise ValueError(f"Unknown provider: {provider_type}")
