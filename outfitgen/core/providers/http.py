"""Transport-level error classification shared by httpx-based providers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from outfitgen.core.providers.base import (
    AuthenticationError,
    FatalProviderError,
    ProviderError,
    ProviderTimeoutError,
    ProviderType,
    QuotaExceededError,
)

logger = logging.getLogger(__name__)

# Statuses treated as transient and retried with the short (timeout) backoff
TIMEOUT_STATUS_CODES = {408, 504}
TRANSIENT_STATUS_CODES = {500, 502, 503}
AUTH_STATUS_CODES = {401, 403}


def parse_retry_after_header(headers: Mapping[str, str] | None) -> float | None:
    """Parse a Retry-After header (delta-seconds or HTTP date) into seconds."""
    if not headers:
        return None
    value = headers.get("Retry-After") or headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def response_json(response: httpx.Response) -> Any:
    """Decode a JSON body, returning None for non-JSON bodies."""
    try:
        return response.json()
    except ValueError:
        return None


def classify_status(
    provider: ProviderType,
    status_code: int,
    message: str,
    retry_after: float | None = None,
) -> ProviderError:
    """Map an HTTP status onto the normalized error taxonomy."""
    if status_code == 429:
        return QuotaExceededError(provider, retry_after=retry_after, message=message or None)
    if status_code in AUTH_STATUS_CODES:
        return AuthenticationError(provider, status_code=status_code)
    if status_code in TIMEOUT_STATUS_CODES:
        return ProviderTimeoutError(provider, message or "Backend deadline exceeded", status_code)
    if status_code in TRANSIENT_STATUS_CODES:
        return ProviderTimeoutError(
            provider, message or "Backend temporarily unavailable", status_code
        )
    return FatalProviderError(message or f"HTTP {status_code}", provider, status_code=status_code)


def classify_transport_error(provider: ProviderType, error: httpx.HTTPError) -> ProviderError:
    """Map an httpx exception raised before a response arrived."""
    if isinstance(error, httpx.TimeoutException):
        return ProviderTimeoutError(provider, f"Request timed out: {error}")
    if isinstance(error, httpx.TransportError):
        return ProviderTimeoutError(provider, f"Connection failed: {error}")
    return FatalProviderError(str(error), provider)
