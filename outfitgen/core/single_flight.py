"""Single-flight guard: at most one generation per cache key per process."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class InFlightError(Exception):
    """Raised when a key is already being generated."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Generation already in progress for {key[:12]}")
        self.key = key


class InFlightGuard:
    """Set of keys currently being generated.

    Busy keys are rejected immediately, never queued.

    Examples:
        >>> guard = InFlightGuard()
        >>> with guard.hold("abc"):
        ...     guard.is_busy("abc")
        True
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: set[str] = set()

    def try_enter(self, key: str) -> bool:
        """Claim a key. Returns False when it is already claimed."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)

    def is_busy(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Claim a key for the duration of the block.

        Raises:
            InFlightError: If the key is already claimed.
        """
        if not self.try_enter(key):
            logger.info(f"[SINGLE_FLIGHT] Rejected duplicate request for {key[:12]}")
            raise InFlightError(key)
        try:
            yield
        finally:
            self.release(key)
