"""
Pytest configuration and fixtures for outfitgen tests.

Provides fakes for the orchestrator's collaborators (provider, durable store,
clock, sleep) so unit tests never reach a real backend.
"""
import io
import os
from collections.abc import Callable

import pytest
from PIL import Image

# Settings require at least one provider key; set before outfitgen is imported
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("DURABLE_CACHE_ENABLED", "false")

from outfitgen.config import ProviderType  # noqa: E402
from outfitgen.core.cache import GenerationCache  # noqa: E402
from outfitgen.core.errors import StorageDegradedError  # noqa: E402
from outfitgen.core.orchestrator import OutfitOrchestrator  # noqa: E402
from outfitgen.core.providers.base import ImageProvider  # noqa: E402
from outfitgen.core.rate_limiter import RateLimiter  # noqa: E402
from outfitgen.core.retry import RetryController, RetryPolicy  # noqa: E402
from outfitgen.core.types import GeneratedImage  # noqa: E402
from outfitgen.storage.store import BlobCategory, DurableStore  # noqa: E402


# ============================================
# Image helpers
# ============================================

def make_png(width: int = 40, height: int = 30, color=(200, 30, 30, 255), mode: str = "RGBA") -> bytes:
    """Encode a solid-color image as PNG."""
    image = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def make_image():
    """The make_png helper, for tests that need specific sizes or modes."""
    return make_png


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def generated_image() -> GeneratedImage:
    return GeneratedImage(data=make_png(64, 64, (10, 120, 10, 255)))


# ============================================
# Fakes
# ============================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeProvider(ImageProvider):
    """Provider returning scripted outcomes.

    Each invoke() pops the next outcome: exceptions are raised, images are
    returned. Once the script is exhausted, `default` is returned.
    """

    provider_type = ProviderType.GEMINI

    def __init__(
        self,
        outcomes: list | None = None,
        default: GeneratedImage | None = None,
        before_return: Callable | None = None,
    ) -> None:
        super().__init__(api_key="fake")
        self.outcomes = list(outcomes or [])
        self.default = default or GeneratedImage(data=make_png(16, 16, (0, 0, 255, 255)))
        self.before_return = before_return
        self.calls = 0
        self.closed = False

    @property
    def model(self) -> str:
        return "fake-model"

    async def invoke(self, request, images):
        self.calls += 1
        if self.before_return is not None:
            await self.before_return()
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


class InMemoryStore(DurableStore):
    """DurableStore kept in dicts, optionally failing every operation."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.rows: dict[str, dict] = {}
        self.blobs: dict[str, bytes] = {}

    def _check(self, operation: str) -> None:
        if self.fail:
            raise StorageDegradedError(operation, "store offline")

    async def get_by_identity(self, identity_key):
        self._check("durable lookup")
        row = self.rows.get(identity_key)
        return row["image_ref"] if row else None

    async def put_by_identity(self, identity_key, image_ref, entity_ids, provider, model):
        self._check("durable write")
        self.rows[identity_key] = {
            "image_ref": image_ref,
            "entity_ids": entity_ids,
            "provider": provider,
            "model": model,
        }

    async def upload_blob(self, category: BlobCategory, data, name):
        self._check("blob upload")
        self.blobs[name] = data
        return f"https://cdn.test/{category.value}/{name}"


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def make_store():
    """The InMemoryStore class, for tests that need a failing store."""
    return InMemoryStore


@pytest.fixture
def make_provider():
    """The FakeProvider class, for tests that script provider outcomes."""
    return FakeProvider


@pytest.fixture
def make_orchestrator(recording_sleep: RecordingSleep):
    """Factory for orchestrators wired to fakes with a permissive limiter."""

    def _make(
        provider: ImageProvider | None = None,
        store: DurableStore | None = None,
        rate_limiter: RateLimiter | None = None,
        **kwargs,
    ) -> OutfitOrchestrator:
        return OutfitOrchestrator(
            provider=provider or FakeProvider(),
            cache=GenerationCache(durable=store),
            rate_limiter=rate_limiter
            or RateLimiter(max_calls=100, window_seconds=60, cooldown_seconds=0),
            retry=RetryController(RetryPolicy(max_attempts=3), sleep=recording_sleep),
            **kwargs,
        )

    return _make


# ============================================
# Pytest Configuration
# ============================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "fast: Fast unit tests (no external API calls)"
    )
    config.addinivalue_line(
        "markers", "sqlite: Tests that use a temporary SQLite database"
    )
