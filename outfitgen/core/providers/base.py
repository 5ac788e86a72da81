"""Base image provider abstraction layer.

This module defines the abstract base class and error types for image
generation backends. All provider implementations (Gemini, OpenAI) inherit
from ImageProvider and report failures only through the ProviderError
hierarchy, which keeps the retry controller provider-agnostic.

Examples:
    >>> class MyProvider(ImageProvider):
    ...     provider_type = ProviderType.GEMINI
    ...     async def invoke(self, request, images):
    ...         ...

Tests:
    - tests/unit/test_providers.py::TestProviderErrors
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

# Re-export ProviderType from config for convenience
from outfitgen.config import ProviderType
from outfitgen.core.errors import ErrorKind
from outfitgen.core.types import GeneratedImage, GenerationRequest

if TYPE_CHECKING:
    from outfitgen.core.preprocess import PreparedImage

__all__ = [
    "AuthenticationError",
    "FatalProviderError",
    "ImageProvider",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderType",
    "QuotaExceededError",
]


class ImageProvider(ABC):
    """Abstract base class for image generation backends.

    Attributes:
        provider_type: The provider type identifier
        api_key: API key for authentication
    """

    provider_type: ProviderType

    def __init__(self, api_key: str) -> None:
        """Initialize provider with API key.

        Args:
            api_key: API key for authentication.
        """
        self.api_key = api_key

    @property
    @abstractmethod
    def model(self) -> str:
        """Model id that determines the output (part of the cache key)."""

    @abstractmethod
    async def invoke(
        self,
        request: GenerationRequest,
        images: list[PreparedImage],
    ) -> GeneratedImage:
        """Generate one outfit image.

        Args:
            request: The generation request.
            images: Preprocessed inputs, in request.inputs order.

        Returns:
            GeneratedImage with the raw image bytes.

        Raises:
            ProviderError: Classified backend failure.
        """

    async def close(self) -> None:
        """Release transport resources."""


class ProviderError(Exception):
    """Base exception for normalized provider errors.

    Attributes:
        provider: The provider that raised the error
        kind: QUOTA, TIMEOUT or FATAL
        status_code: HTTP status code (if applicable)
        retry_after: Server-specified wait in seconds (if any)
    """

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(
        self,
        message: str,
        provider: ProviderType,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [f"[{self.provider.value}]", self.message]
        if self.status_code:
            parts.insert(1, f"({self.status_code})")
        return " ".join(parts)


class QuotaExceededError(ProviderError):
    """Backend quota or rate limit exhausted (retrying after a wait may help)."""

    kind = ErrorKind.QUOTA

    def __init__(
        self,
        provider: ProviderType,
        retry_after: float | None = None,
        message: str | None = None,
        status_code: int | None = 429,
    ) -> None:
        text = message or "Quota exceeded"
        if retry_after:
            text += f", retry after {retry_after:g}s"
        super().__init__(text, provider, status_code=status_code, retry_after=retry_after)


class ProviderTimeoutError(ProviderError):
    """Backend or transport deadline, or another transient failure."""

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        provider: ProviderType,
        message: str = "Request timed out",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider, status_code=status_code)


class FatalProviderError(ProviderError):
    """Malformed response, missing output or rejected request. Not retried."""

    kind = ErrorKind.FATAL


class AuthenticationError(FatalProviderError):
    """Authentication failed error."""

    def __init__(self, provider: ProviderType, status_code: int = 401) -> None:
        super().__init__(
            "Authentication failed - check API key",
            provider,
            status_code=status_code,
        )
