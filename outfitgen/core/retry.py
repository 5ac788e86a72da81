"""Retry/backoff controller for provider calls.

Quota errors back off longer than timeouts: a timeout is usually transient and
cheap to retry, while quota exhaustion needs time to reset. A server-specified
retry-after always wins over the computed backoff.

Examples:
    >>> controller = RetryController(RetryPolicy(max_attempts=3))
    >>> image = await controller.execute(lambda: provider.invoke(request, images))

Tests:
    - tests/unit/test_retry.py
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, Field

from outfitgen.core.errors import ErrorKind, GenerationError
from outfitgen.core.providers.base import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Retry policy.

    Attributes:
        max_attempts: Total provider attempts, including the first
        quota_base_delay: Wait after the first quota error (seconds)
        timeout_base_delay: Wait after the first timeout (seconds)
        backoff_factor: Multiplier applied per further attempt
        max_delay: Upper bound for any single wait (seconds)
    """

    max_attempts: int = Field(default=3, ge=1, le=10)
    quota_base_delay: float = Field(default=20.0, gt=0)
    timeout_base_delay: float = Field(default=2.0, gt=0)
    backoff_factor: float = Field(default=2.0, ge=1.0, le=4.0)
    max_delay: float = Field(default=120.0, gt=0)

    def base_delay(self, kind: ErrorKind) -> float:
        if kind == ErrorKind.QUOTA:
            return self.quota_base_delay
        return self.timeout_base_delay

    def compute_delay(self, error: ProviderError, attempt: int) -> float:
        """Wait before the attempt following failed attempt number `attempt` (1-based)."""
        if error.retry_after is not None:
            return min(error.retry_after, self.max_delay)
        delay = self.base_delay(error.kind) * self.backoff_factor ** (attempt - 1)
        return min(delay, self.max_delay)


def user_message(error: ProviderError, wait_seconds: float | None = None) -> str:
    """User-facing explanation for a failed provider call."""
    if error.kind == ErrorKind.QUOTA:
        seconds = max(1, math.ceil(wait_seconds if wait_seconds is not None else error.retry_after or 0))
        return (
            "The image service is out of quota right now. "
            f"Please wait {seconds} seconds and try again."
        )
    if error.kind == ErrorKind.TIMEOUT:
        return (
            "The image service did not respond in time. "
            "Try reducing the image size or retry in a moment."
        )
    return error.message


class RetryController:
    """Runs an async operation under a RetryPolicy.

    Attributes:
        policy: Default policy used when execute() gets none.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        label: str = "provider call",
    ) -> T:
        """Call `operation` until it succeeds, fails fatally, or attempts run out.

        Args:
            operation: Zero-argument coroutine factory (called once per attempt).
            policy: Override for the controller's policy.
            label: Name used in log messages.

        Returns:
            The operation's result.

        Raises:
            GenerationError: On a fatal error or after the last attempt.
        """
        policy = policy or self.policy

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await operation()
            except ProviderError as e:
                if not e.retryable:
                    logger.error(f"{label} failed fatally on attempt {attempt}: {e}")
                    raise GenerationError(
                        kind=e.kind,
                        user_message=user_message(e),
                        attempts=attempt,
                        last_error=e,
                    ) from e

                wait_time = policy.compute_delay(e, attempt)
                if attempt >= policy.max_attempts:
                    logger.warning(
                        f"{label} still failing after {attempt} attempts: {e}"
                    )
                    raise GenerationError(
                        kind=e.kind,
                        user_message=user_message(e, wait_time),
                        attempts=attempt,
                        last_error=e,
                        retry_after=wait_time if e.kind == ErrorKind.QUOTA else None,
                    ) from e

                logger.warning(
                    f"{e.kind.value} on {label} (attempt {attempt}/{policy.max_attempts}). "
                    f"Waiting {wait_time:.1f}s before retry..."
                )
                await self._sleep(wait_time)

        # max_attempts >= 1, so the loop always returns or raises
        raise AssertionError("unreachable")
