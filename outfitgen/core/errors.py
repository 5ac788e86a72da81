"""Error taxonomy for outfit generation.

Provider-specific failures are normalized into ProviderError subclasses
(see outfitgen.core.providers.base). Everything the orchestrator reports back
to callers is tagged with an ErrorKind.

Tests:
    - tests/unit/test_retry.py::TestGenerationError
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a generation failure.

    - RATE_LIMITED: denied by the local rate limiter, never reached a backend
    - IN_PROGRESS: same request already generating in this process
    - QUOTA: backend signalled quota exhaustion (retryable with backoff)
    - TIMEOUT: backend or transport deadline, or other transient failure
    - FATAL: malformed response, missing output, auth failure (not retried)
    - STORAGE_DEGRADED: durable cache/store failure (logged, never surfaced)
    """

    RATE_LIMITED = "rate_limited"
    IN_PROGRESS = "in_progress"
    QUOTA = "quota"
    TIMEOUT = "timeout"
    FATAL = "fatal"
    STORAGE_DEGRADED = "storage_degraded"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.QUOTA, ErrorKind.TIMEOUT)


class GenerationError(Exception):
    """Provider call failed for good: retries exhausted or a fatal error.

    Attributes:
        kind: Kind of the last classified error
        user_message: Message suitable for showing to the end user
        attempts: Number of provider attempts made
        last_error: The last underlying provider error
        retry_after: Suggested wait in seconds (quota only)
    """

    def __init__(
        self,
        kind: ErrorKind,
        user_message: str,
        attempts: int,
        last_error: Exception | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(user_message)
        self.kind = kind
        self.user_message = user_message
        self.attempts = attempts
        self.last_error = last_error
        self.retry_after = retry_after

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.user_message} (after {self.attempts} attempt(s))"


class StorageDegradedError(Exception):
    """Durable store or blob storage operation failed."""

    kind = ErrorKind.STORAGE_DEGRADED

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class ImageLoadError(Exception):
    """An input image could not be loaded or decoded."""

    def __init__(self, ref: str, message: str) -> None:
        super().__init__(f"Failed to load image {ref}: {message}")
        self.ref = ref


class FallbackError(Exception):
    """The local composite fallback could not produce an image."""
