"""Unit tests for the outfit generation orchestrator.

Tests for outfitgen/core/orchestrator.py, wired to fake providers and stores.

Run with:
    pytest tests/unit/test_orchestrator.py -v
"""

import asyncio

import httpx
import pytest

from outfitgen.config import ProviderType, Settings
from outfitgen.core.errors import ErrorKind, FallbackError
from outfitgen.core.fallback import CompositeFallback
from outfitgen.core.orchestrator import OutfitOrchestrator
from outfitgen.core.providers import GeminiComposeProvider
from outfitgen.core.providers.base import (
    FatalProviderError,
    ProviderTimeoutError,
    QuotaExceededError,
)
from outfitgen.core.rate_limiter import RateLimiter
from outfitgen.core.requests import (
    build_occasion_request,
    build_outfit_request,
    build_transfer_request,
)

GEMINI = ProviderType.GEMINI


class BrokenFallback(CompositeFallback):
    async def compose(self, image_a, image_b):
        raise FallbackError("canvas unavailable")


@pytest.fixture
def outfit_request(make_image):
    return build_outfit_request(
        make_image(40, 30, (200, 0, 0, 255)),
        make_image(40, 30, (0, 0, 200, 255)),
        body=make_image(60, 90, (255, 255, 255, 255)),
    )


@pytest.mark.fast
class TestHappyPath:
    """Tests for successful generation and caching."""

    @pytest.mark.asyncio
    async def test_generate_success(self, make_orchestrator, fake_provider, outfit_request):
        orchestrator = make_orchestrator(provider=fake_provider)
        result = await orchestrator.generate(outfit_request)

        assert result.success is True
        assert result.degraded is False
        assert result.cached is False
        assert result.image_ref.startswith("data:image/png;base64,")
        assert result.cache_key == orchestrator.cache_keys(outfit_request).fingerprint
        assert fake_provider.calls == 1

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, make_orchestrator, fake_provider, outfit_request):
        orchestrator = make_orchestrator(provider=fake_provider)
        first = await orchestrator.generate(outfit_request)
        second = await orchestrator.generate(outfit_request)

        assert fake_provider.calls == 1
        assert second.cached is True
        assert second.image_ref == first.image_ref

    @pytest.mark.asyncio
    async def test_cache_hit_skips_rate_limiter(self, make_orchestrator, fake_clock, outfit_request):
        limiter = RateLimiter(max_calls=1, window_seconds=60, cooldown_seconds=0, clock=fake_clock)
        orchestrator = make_orchestrator(rate_limiter=limiter)
        await orchestrator.generate(outfit_request)

        assert (await orchestrator.generate(outfit_request)).success

    @pytest.mark.asyncio
    async def test_clear_cache_regenerates(self, make_orchestrator, fake_provider, outfit_request):
        orchestrator = make_orchestrator(provider=fake_provider)
        await orchestrator.generate(outfit_request)
        assert orchestrator.cache_size == 1

        orchestrator.clear_cache()
        assert orchestrator.cache_size == 0
        await orchestrator.generate(outfit_request)
        assert fake_provider.calls == 2

    @pytest.mark.asyncio
    async def test_independent_instances(self, make_orchestrator, make_provider, outfit_request):
        a = make_orchestrator(provider=make_provider())
        b = make_orchestrator(provider=make_provider())
        await a.generate(outfit_request)
        assert b.cache_size == 0
        assert (await b.generate(outfit_request)).cached is False


@pytest.mark.fast
class TestRetryAndFallback:
    """Tests for retry, fallback and degraded results."""

    @pytest.mark.asyncio
    async def test_timeouts_then_success(self, make_orchestrator, make_provider, recording_sleep, outfit_request):
        provider = make_provider([ProviderTimeoutError(GEMINI), ProviderTimeoutError(GEMINI)])
        orchestrator = make_orchestrator(provider=provider)

        result = await orchestrator.generate(outfit_request)

        assert result.success is True
        assert result.degraded is False
        assert provider.calls == 3
        assert orchestrator.cache_size == 1
        assert recording_sleep.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_quota_exhausted_falls_back(self, make_orchestrator, make_provider, outfit_request):
        provider = make_provider([QuotaExceededError(GEMINI) for _ in range(3)])
        orchestrator = make_orchestrator(provider=provider)

        result = await orchestrator.generate(outfit_request)

        assert result.success is True
        assert result.degraded is True
        assert result.error_kind == ErrorKind.QUOTA
        assert result.image_ref.startswith("data:image/png;base64,")
        assert provider.calls == 3

        again = await orchestrator.generate(outfit_request)
        assert again.cached and again.degraded
        assert provider.calls == 3

    @pytest.mark.asyncio
    async def test_degraded_result_not_persisted(self, make_orchestrator, make_provider, memory_store, make_image):
        request = build_outfit_request(make_image(), make_image(), body=make_image(), top_id="t1", bottom_id="b1")
        provider = make_provider([QuotaExceededError(GEMINI) for _ in range(3)])
        orchestrator = make_orchestrator(provider=provider, store=memory_store)

        result = await orchestrator.generate(request)

        assert result.degraded is True
        assert memory_store.rows == {}
        assert memory_store.blobs == {}

    @pytest.mark.asyncio
    async def test_fallback_failure_surfaces_last_error(self, make_orchestrator, make_provider, outfit_request):
        provider = make_provider([ProviderTimeoutError(GEMINI) for _ in range(3)])
        orchestrator = make_orchestrator(provider=provider, fallback=BrokenFallback())

        result = await orchestrator.generate(outfit_request)

        assert result.success is False
        assert result.error_kind == ErrorKind.TIMEOUT
        assert "reducing the image size" in result.error
        assert orchestrator.cache_size == 0

    @pytest.mark.asyncio
    async def test_quota_failure_reports_wait(self, make_orchestrator, make_provider, outfit_request):
        provider = make_provider([QuotaExceededError(GEMINI, retry_after=15) for _ in range(3)])
        orchestrator = make_orchestrator(provider=provider, fallback=BrokenFallback())

        result = await orchestrator.generate(outfit_request)

        assert result.success is False
        assert result.error_kind == ErrorKind.QUOTA
        assert result.retry_after_seconds == 15
        assert "wait 15 seconds" in result.error

    @pytest.mark.asyncio
    async def test_fatal_error_not_retried(self, make_orchestrator, make_provider, outfit_request):
        provider = make_provider([FatalProviderError("Gemini did not return an image. Blocked", GEMINI)])
        orchestrator = make_orchestrator(provider=provider, fallback=BrokenFallback())

        result = await orchestrator.generate(outfit_request)

        assert provider.calls == 1
        assert result.success is False
        assert result.error_kind == ErrorKind.FATAL
        assert result.error == "Gemini did not return an image. Blocked"

    @pytest.mark.asyncio
    async def test_fatal_error_uses_fallback(self, make_orchestrator, make_provider, outfit_request):
        provider = make_provider([FatalProviderError("bad", GEMINI)])
        orchestrator = make_orchestrator(provider=provider)

        result = await orchestrator.generate(outfit_request)
        assert result.success is True
        assert result.degraded is True

    @pytest.mark.asyncio
    async def test_malformed_backend_response_uses_fallback(self, make_orchestrator, outfit_request):
        def handler(request):
            return httpx.Response(200, json={"candidates": [{"content": {"parts": ["oops"]}}]})

        provider = GeminiComposeProvider(api_key="k", base_url="http://proxy.test")
        provider._client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://proxy.test"
        )
        orchestrator = make_orchestrator(provider=provider)

        result = await orchestrator.generate(outfit_request)

        assert result.success is True
        assert result.degraded is True
        assert result.error_kind == ErrorKind.FATAL
        await provider.close()

    @pytest.mark.asyncio
    async def test_no_fallback_without_garments(self, make_orchestrator, make_provider, make_image):
        provider = make_provider([ProviderTimeoutError(GEMINI) for _ in range(3)])
        orchestrator = make_orchestrator(provider=provider)

        result = await orchestrator.generate(build_occasion_request("gala", body=make_image()))

        assert result.success is False
        assert result.error_kind == ErrorKind.TIMEOUT


@pytest.mark.fast
class TestAdmission:
    """Tests for rate limiting and the single-flight guard."""

    @pytest.mark.asyncio
    async def test_rate_limited(self, make_orchestrator, fake_provider, fake_clock, make_image):
        limiter = RateLimiter(max_calls=1, window_seconds=60, cooldown_seconds=0, clock=fake_clock)
        orchestrator = make_orchestrator(provider=fake_provider, rate_limiter=limiter)

        first = await orchestrator.generate(build_occasion_request("gala", body=make_image()))
        second = await orchestrator.generate(build_occasion_request("picnic", body=make_image()))

        assert first.success is True
        assert second.success is False
        assert second.error_kind == ErrorKind.RATE_LIMITED
        assert second.retry_after_seconds == pytest.approx(60)
        assert "60 seconds" in second.error
        assert fake_provider.calls == 1
        assert len(orchestrator.guard) == 0

    @pytest.mark.asyncio
    async def test_concurrent_same_key_single_flight(self, make_orchestrator, make_provider, outfit_request):
        release = asyncio.Event()

        async def wait_for_release():
            await release.wait()

        provider = make_provider(before_return=wait_for_release)
        orchestrator = make_orchestrator(provider=provider)

        async def release_when_called():
            while provider.calls == 0:
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.01)
            release.set()

        results = await asyncio.gather(
            *(orchestrator.generate(outfit_request) for _ in range(5)),
            release_when_called(),
        )
        results = results[:5]

        assert provider.calls == 1
        assert sum(r.success for r in results) == 1
        rejected = [r for r in results if not r.success]
        assert len(rejected) == 4
        assert all(r.error_kind == ErrorKind.IN_PROGRESS for r in rejected)
        assert len(orchestrator.guard) == 0

    @pytest.mark.asyncio
    async def test_distinct_keys_run_concurrently(self, make_orchestrator, make_provider, make_image):
        both_started = asyncio.Event()
        provider = None

        async def wait_for_both():
            if provider.calls >= 2:
                both_started.set()
            await asyncio.wait_for(both_started.wait(), timeout=5)

        provider = make_provider(before_return=wait_for_both)
        orchestrator = make_orchestrator(provider=provider)

        results = await asyncio.gather(
            orchestrator.generate(build_occasion_request("gala", body=make_image())),
            orchestrator.generate(build_occasion_request("picnic", body=make_image())),
        )
        assert all(r.success for r in results)
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_cancellation_releases_guard(self, make_orchestrator, make_provider, outfit_request):
        started = asyncio.Event()

        async def hang():
            started.set()
            await asyncio.sleep(3600)

        orchestrator = make_orchestrator(provider=make_provider(before_return=hang))
        task = asyncio.create_task(orchestrator.generate(outfit_request))
        await started.wait()
        assert len(orchestrator.guard) == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(orchestrator.guard) == 0


@pytest.mark.fast
class TestFailureContainment:
    """Tests that no collaborator failure escapes generate()."""

    @pytest.mark.asyncio
    async def test_unloadable_input(self, make_orchestrator, fake_provider):
        orchestrator = make_orchestrator(provider=fake_provider)
        result = await orchestrator.generate(build_outfit_request(b"junk", b"junk2", body=b"junk3"))

        assert result.success is False
        assert result.error_kind == ErrorKind.FATAL
        assert fake_provider.calls == 0
        assert len(orchestrator.guard) == 0

    @pytest.mark.asyncio
    async def test_unexpected_exception_contained(self, make_orchestrator, make_provider, outfit_request):
        provider = make_provider([RuntimeError("driver bug")])
        orchestrator = make_orchestrator(provider=provider)

        result = await orchestrator.generate(outfit_request)
        assert result.success is False
        assert result.error_kind == ErrorKind.FATAL
        assert "driver bug" in result.error

        # Key is not wedged
        assert (await orchestrator.generate(outfit_request)).success is True


@pytest.mark.fast
class TestDurableCache:
    """Tests for the durable tier through the orchestrator."""

    @pytest.mark.asyncio
    async def test_write_through_and_cross_instance_hit(self, make_orchestrator, make_provider, memory_store, make_image):
        request = build_outfit_request(make_image(), make_image(), body=make_image(), top_id="t1", bottom_id="b7")
        first_provider = make_provider()
        first = await make_orchestrator(provider=first_provider, store=memory_store).generate(request)

        assert first.image_ref.startswith("https://cdn.test/generated-outfits/")
        assert len(memory_store.rows) == 1

        # Same ids, different uploads: still a durable hit in a fresh instance
        moved = build_outfit_request(
            make_image(41, 30), make_image(42, 30), body=make_image(), top_id="t1", bottom_id="b7"
        )
        second_provider = make_provider()
        second = await make_orchestrator(provider=second_provider, store=memory_store).generate(moved)

        assert second.cached is True
        assert second.image_ref == first.image_ref
        assert second_provider.calls == 0

    @pytest.mark.asyncio
    async def test_different_body_is_not_a_durable_hit(
        self, make_orchestrator, make_provider, memory_store, make_image
    ):
        """Test the same garment ids on another person generate a fresh image."""
        top, bottom = make_image(), make_image()
        first = build_outfit_request(top, bottom, body=make_image(60, 90), top_id="t1", bottom_id="b7")
        await make_orchestrator(provider=make_provider(), store=memory_store).generate(first)

        other_body = build_outfit_request(
            top, bottom, body=make_image(60, 90, (20, 20, 20, 255)), top_id="t1", bottom_id="b7"
        )
        second_provider = make_provider()
        second = await make_orchestrator(provider=second_provider, store=memory_store).generate(other_body)

        assert second.cached is False
        assert second_provider.calls == 1
        assert len(memory_store.rows) == 2

    @pytest.mark.asyncio
    async def test_transfer_keyed_by_body(self, make_orchestrator, make_provider, memory_store, make_image):
        inspiration = make_image(50, 50)
        first = build_transfer_request(inspiration, body=make_image(60, 90), inspiration_id="insp-1")
        await make_orchestrator(provider=make_provider(), store=memory_store).generate(first)

        other_body = build_transfer_request(
            inspiration, body=make_image(60, 90, (20, 20, 20, 255)), inspiration_id="insp-1"
        )
        second_provider = make_provider()
        second = await make_orchestrator(provider=second_provider, store=memory_store).generate(other_body)

        assert second.cached is False
        assert second_provider.calls == 1

    @pytest.mark.asyncio
    async def test_storage_failure_not_surfaced(self, make_orchestrator, fake_provider, make_store, make_image):
        request = build_outfit_request(make_image(), make_image(), body=make_image(), top_id="t1", bottom_id="b7")
        orchestrator = make_orchestrator(provider=fake_provider, store=make_store(fail=True))

        result = await orchestrator.generate(request)

        assert result.success is True
        assert result.image_ref.startswith("data:image/png;base64,")
        assert (await orchestrator.generate(request)).cached is True


@pytest.mark.fast
class TestConstruction:
    """Tests for from_settings and close."""

    def test_from_settings(self):
        settings = Settings(GEMINI_API_KEY="k", RATE_LIMIT_MAX_CALLS=4, RETRY_MAX_ATTEMPTS=2)
        orchestrator = OutfitOrchestrator.from_settings(settings)

        assert isinstance(orchestrator.provider, GeminiComposeProvider)
        assert orchestrator.rate_limiter.max_calls == 4
        assert orchestrator.retry.policy.max_attempts == 2
        assert orchestrator.cache.durable is None

    @pytest.mark.asyncio
    async def test_close(self, make_orchestrator, fake_provider):
        orchestrator = make_orchestrator(provider=fake_provider)
        await orchestrator.close()
        assert fake_provider.closed is True
