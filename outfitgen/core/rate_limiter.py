"""Client-side rate limiter for generation admissions.

Enforces a minimum spacing between admissions (cooldown) and a sliding-window
quota. The limiter never sleeps; callers decide whether to wait or give up.

Examples:
    >>> limiter = RateLimiter(max_calls=10, window_seconds=60, cooldown_seconds=2)
    >>> decision = limiter.try_acquire()
    >>> decision.allowed
    True

Tests:
    - tests/unit/test_rate_limiter.py
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from enum import Enum
from typing import Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class DenialReason(str, Enum):
    """Why an admission was denied."""

    COOLDOWN = "cooldown"
    QUOTA = "quota"


class RateLimitDecision(BaseModel):
    """Result of an admission check.

    Attributes:
        allowed: Whether a call may start now
        reason: Blocking condition when denied
        wait_seconds: Time until every blocking condition has cleared
    """

    allowed: bool
    reason: DenialReason | None = None
    wait_seconds: float = 0.0

    @property
    def message(self) -> str | None:
        """User-facing explanation of a denial."""
        if self.allowed:
            return None
        seconds = max(1, math.ceil(self.wait_seconds))
        if self.reason == DenialReason.QUOTA:
            return f"Generation limit reached. Please wait {seconds} seconds before trying again."
        return f"Please wait {seconds} seconds between generations."


class RateLimitSnapshot(BaseModel):
    """Current limiter configuration and usage."""

    max_calls: int
    window_seconds: float
    cooldown_seconds: float
    calls_in_window: int


class RateLimiter:
    """Cooldown + sliding-window admission control.

    State is guarded by a lock whose critical sections never await, so one
    instance is safe to share between asyncio tasks and worker threads.

    Attributes:
        max_calls: Maximum admissions within any rolling window
        window_seconds: Window length
        cooldown_seconds: Minimum spacing between two admissions
    """

    def __init__(
        self,
        max_calls: int = 10,
        window_seconds: float = 60.0,
        cooldown_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._validate(max_calls, window_seconds, cooldown_seconds)
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._calls: deque[float] = deque()
        self._last_call: float | None = None

    @staticmethod
    def _validate(max_calls: int, window_seconds: float, cooldown_seconds: float) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must not be negative")

    def _purge(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._calls and self._calls[0] <= cutoff:
            self._calls.popleft()

    def _check(self, now: float) -> RateLimitDecision:
        # Caller holds the lock.
        self._purge(now)

        quota_wait = 0.0
        if len(self._calls) >= self.max_calls:
            # Oldest timestamp that must leave the window to free a slot
            blocking = self._calls[len(self._calls) - self.max_calls]
            quota_wait = blocking + self.window_seconds - now

        cooldown_wait = 0.0
        if self._last_call is not None:
            elapsed = now - self._last_call
            if elapsed < self.cooldown_seconds:
                cooldown_wait = self.cooldown_seconds - elapsed

        if quota_wait > 0:
            return RateLimitDecision(
                allowed=False,
                reason=DenialReason.QUOTA,
                wait_seconds=max(quota_wait, cooldown_wait),
            )
        if cooldown_wait > 0:
            return RateLimitDecision(
                allowed=False,
                reason=DenialReason.COOLDOWN,
                wait_seconds=cooldown_wait,
            )
        return RateLimitDecision(allowed=True)

    def can_proceed(self) -> RateLimitDecision:
        """Check whether a call may start now without recording it."""
        with self._lock:
            return self._check(self._clock())

    def record_call(self) -> None:
        """Record that a call started now."""
        with self._lock:
            now = self._clock()
            self._purge(now)
            self._calls.append(now)
            self._last_call = now

    def try_acquire(self) -> RateLimitDecision:
        """Check and, when allowed, record a call in one critical section."""
        with self._lock:
            now = self._clock()
            decision = self._check(now)
            if decision.allowed:
                self._calls.append(now)
                self._last_call = now
            else:
                logger.info(
                    f"[RATE_LIMIT] Denied ({decision.reason.value}), "
                    f"wait {decision.wait_seconds:.1f}s"
                )
            return decision

    def reconfigure(
        self,
        cooldown_seconds: float | None = None,
        max_calls: int | None = None,
        window_seconds: float | None = None,
    ) -> None:
        """Change limits at runtime. Recorded calls are kept."""
        with self._lock:
            cooldown = self.cooldown_seconds if cooldown_seconds is None else cooldown_seconds
            calls = self.max_calls if max_calls is None else max_calls
            window = self.window_seconds if window_seconds is None else window_seconds
            self._validate(calls, window, cooldown)
            self.cooldown_seconds = cooldown
            self.max_calls = calls
            self.window_seconds = window
            logger.info(
                f"[RATE_LIMIT] Reconfigured: max_calls={calls}, "
                f"window={window}s, cooldown={cooldown}s"
            )

    def reset(self) -> None:
        """Forget all recorded calls."""
        with self._lock:
            self._calls.clear()
            self._last_call = None

    def snapshot(self) -> RateLimitSnapshot:
        with self._lock:
            self._purge(self._clock())
            return RateLimitSnapshot(
                max_calls=self.max_calls,
                window_seconds=self.window_seconds,
                cooldown_seconds=self.cooldown_seconds,
                calls_in_window=len(self._calls),
            )
