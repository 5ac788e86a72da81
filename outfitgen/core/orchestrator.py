"""Outfit generation orchestrator.

One explicitly constructed instance owns its cache, rate limiter and
single-flight guard. Nothing is module-global.

Per request:
    cache check -> single-flight guard -> rate limit admission -> preprocess
    -> provider call under retry -> cache write
and, when the provider call fails for good, the local composite fallback.

Examples:
    >>> orchestrator = OutfitOrchestrator.from_settings(get_settings(), store=store)
    >>> result = await orchestrator.generate(build_outfit_request("top.png", "bottom.png"))
    >>> result.success, result.degraded
    (True, False)

Tests:
    - tests/unit/test_orchestrator.py
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from outfitgen.core.cache import GenerationCache
from outfitgen.core.errors import ErrorKind, FallbackError, GenerationError, ImageLoadError
from outfitgen.core.fallback import CompositeFallback, PillowCompositeFallback
from outfitgen.core.fingerprint import CacheKeys, compute_cache_keys
from outfitgen.core.preprocess import ImagePreprocessor, PreparedImage
from outfitgen.core.providers import ImageProvider, create_provider
from outfitgen.core.rate_limiter import RateLimiter
from outfitgen.core.retry import RetryController
from outfitgen.core.single_flight import InFlightError, InFlightGuard
from outfitgen.core.types import (
    CachedResult,
    GenerationRequest,
    GenerationResult,
    Provenance,
)

if TYPE_CHECKING:
    from outfitgen.config import Settings
    from outfitgen.storage.store import DurableStore

logger = logging.getLogger(__name__)

IN_PROGRESS_MESSAGE = "This outfit is already being generated. Please wait for it to finish."


class OutfitOrchestrator:
    """End-to-end outfit generation.

    Attributes:
        provider: Backend adapter used for every request.
        cache: Two-tier generation cache.
        rate_limiter: Admission control shared by all requests of this instance.
        guard: Single-flight guard keyed by request fingerprint.
        retry: Retry/backoff controller wrapping provider calls.
        preprocessor: Input image loader/compressor.
        fallback: Local composite generator used when the provider fails.
    """

    def __init__(
        self,
        provider: ImageProvider,
        cache: GenerationCache | None = None,
        rate_limiter: RateLimiter | None = None,
        guard: InFlightGuard | None = None,
        retry: RetryController | None = None,
        preprocessor: ImagePreprocessor | None = None,
        fallback: CompositeFallback | None = None,
    ) -> None:
        self.provider = provider
        self.cache = cache or GenerationCache()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.guard = guard or InFlightGuard()
        self.retry = retry or RetryController()
        self.preprocessor = preprocessor or ImagePreprocessor()
        self.fallback = fallback or PillowCompositeFallback()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: DurableStore | None = None,
        provider: ImageProvider | None = None,
    ) -> "OutfitOrchestrator":
        """Build an orchestrator from application settings.

        Args:
            settings: Application settings.
            store: Durable store for the second cache tier (memory-only if None).
            provider: Provider override (built from settings if None).
        """
        return cls(
            provider=provider or create_provider(settings),
            cache=GenerationCache(durable=store),
            rate_limiter=RateLimiter(**settings.get_rate_limit_config()),
            retry=RetryController(settings.get_retry_policy()),
            preprocessor=ImagePreprocessor(settings.get_preprocess_config()),
        )

    @property
    def cache_size(self) -> int:
        return self.cache.size

    def clear_cache(self) -> None:
        """Clear the in-memory cache tier."""
        self.cache.clear()

    def cache_keys(self, request: GenerationRequest) -> CacheKeys:
        return compute_cache_keys(
            request, self.provider.provider_type.value, self.provider.model
        )

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate (or fetch from cache) the image for a request.

        Never raises except on cancellation: every failure is reported in the
        returned GenerationResult.
        """
        keys = self.cache_keys(request)
        try:
            cached = await self.cache.lookup(keys)
            if cached is not None:
                return GenerationResult.from_cache(cached, keys.fingerprint)

            with self.guard.hold(keys.fingerprint):
                # A generation for this key may have finished since the lookup
                cached = self.cache.memory.get(keys.fingerprint)
                if cached is not None:
                    return GenerationResult.from_cache(cached, keys.fingerprint)
                return await self._generate_uncached(request, keys)
        except InFlightError:
            return GenerationResult.failure(
                IN_PROGRESS_MESSAGE, ErrorKind.IN_PROGRESS, cache_key=keys.fingerprint
            )
        except Exception as e:
            logger.exception(f"Unexpected error generating {keys.short()}")
            return GenerationResult.failure(
                f"Unexpected error: {e}", ErrorKind.FATAL, cache_key=keys.fingerprint
            )

    async def _generate_uncached(
        self, request: GenerationRequest, keys: CacheKeys
    ) -> GenerationResult:
        decision = self.rate_limiter.try_acquire()
        if not decision.allowed:
            return GenerationResult.failure(
                decision.message or "Rate limited",
                ErrorKind.RATE_LIMITED,
                cache_key=keys.fingerprint,
                retry_after_seconds=decision.wait_seconds,
            )

        try:
            images = await self.preprocessor.prepare_all(request)
        except ImageLoadError as e:
            logger.error(f"Preprocessing failed for {keys.short()}: {e}")
            return GenerationResult.failure(str(e), ErrorKind.FATAL, cache_key=keys.fingerprint)

        start_time = time.perf_counter()
        label = f"{self.provider.provider_type.value} {request.kind.value}"
        try:
            image = await self.retry.execute(
                lambda: self.provider.invoke(request, images),
                label=label,
            )
        except GenerationError as e:
            return await self._fallback(keys, images, e)

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(f"Generated {label} for {keys.short()} in {latency_ms}ms")

        stored = await self.cache.store(
            keys, CachedResult(image_ref=image.to_data_url()), image
        )
        return GenerationResult(
            success=True,
            image_ref=stored.image_ref,
            cache_key=keys.fingerprint,
        )

    async def _fallback(
        self,
        keys: CacheKeys,
        images: list[PreparedImage],
        error: GenerationError,
    ) -> GenerationResult:
        failure = GenerationResult.failure(
            error.user_message,
            error.kind,
            cache_key=keys.fingerprint,
            retry_after_seconds=error.retry_after,
        )

        by_role = {image.role: image for image in images}
        top, bottom = by_role.get("top"), by_role.get("bottom")
        if top is None or bottom is None:
            logger.warning(f"No composite fallback for {keys.short()}: {error}")
            return failure

        try:
            image_ref = await self.fallback.compose(top, bottom)
        except FallbackError as e:
            logger.error(f"Composite fallback failed for {keys.short()}: {e}")
            return failure

        logger.warning(f"Serving degraded composite for {keys.short()} after: {error}")
        stored = await self.cache.store(
            keys,
            CachedResult(image_ref=image_ref, provenance=Provenance.DEGRADED_FALLBACK),
        )
        return GenerationResult(
            success=True,
            image_ref=stored.image_ref,
            degraded=True,
            error_kind=error.kind,
            cache_key=keys.fingerprint,
        )

    async def close(self) -> None:
        """Release HTTP clients held by the provider and preprocessor."""
        await self.provider.close()
        await self.preprocessor.close()
