"""Two-tier generation cache.

- Memory tier: fingerprint -> CachedResult, owned by one orchestrator instance.
- Durable tier: identity key -> stored image reference, via a DurableStore.

Durable failures never fail a request: they are logged and the cache keeps
working memory-only. Entries are never invalidated automatically; clear()
resets the memory tier and leaves durable data to its owner.

Examples:
    >>> cache = GenerationCache(durable=store)
    >>> hit = await cache.lookup(keys)
    >>> if hit is None:
    ...     cached = await cache.store(keys, CachedResult(image_ref=url), image)

Tests:
    - tests/unit/test_cache.py
"""

from __future__ import annotations

import logging

from outfitgen.core.errors import StorageDegradedError
from outfitgen.core.fingerprint import CacheKeys
from outfitgen.core.types import CachedResult, GeneratedImage
from outfitgen.storage.naming import extension_for, generate_blob_name
from outfitgen.storage.store import BlobCategory, DurableStore

logger = logging.getLogger(__name__)


class MemoryCache:
    """Process-local fingerprint -> CachedResult map."""

    def __init__(self) -> None:
        self._entries: dict[str, CachedResult] = {}

    def get(self, fingerprint: str) -> CachedResult | None:
        return self._entries.get(fingerprint)

    def set(self, fingerprint: str, result: CachedResult) -> None:
        self._entries[fingerprint] = result

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class GenerationCache:
    """Memory tier in front of an optional durable store.

    Attributes:
        memory: The process-local tier.
        durable: Durable store, or None for memory-only operation.
    """

    def __init__(self, durable: DurableStore | None = None) -> None:
        self.memory = MemoryCache()
        self.durable = durable

    @property
    def size(self) -> int:
        return len(self.memory)

    async def lookup(self, keys: CacheKeys) -> CachedResult | None:
        """Find a cached result, checking memory then the durable store.

        A durable hit is promoted into the memory tier.
        """
        hit = self.memory.get(keys.fingerprint)
        if hit is not None:
            logger.debug(f"Memory cache hit for {keys.short()}")
            return hit

        if self.durable is None or keys.identity is None:
            return None

        try:
            image_ref = await self.durable.get_by_identity(keys.identity)
        except StorageDegradedError as e:
            logger.error(f"Durable cache unavailable, continuing memory-only: {e}")
            return None

        if image_ref is None:
            return None

        logger.info(f"Durable cache hit for {keys.identity}")
        result = CachedResult(image_ref=image_ref)
        self.memory.set(keys.fingerprint, result)
        return result

    async def store(
        self,
        keys: CacheKeys,
        result: CachedResult,
        image: GeneratedImage | None = None,
    ) -> CachedResult:
        """Store a result in memory and, where possible, durably.

        Generated results with an identity key and image bytes are uploaded and
        recorded in the durable store; the memory entry then points at the
        uploaded blob. Degraded results stay memory-only.

        Returns:
            The result as stored in memory.
        """
        if (
            self.durable is not None
            and keys.identity is not None
            and image is not None
            and not result.degraded
        ):
            result = await self._write_through(keys, result, image)

        self.memory.set(keys.fingerprint, result)
        return result

    async def _write_through(
        self, keys: CacheKeys, result: CachedResult, image: GeneratedImage
    ) -> CachedResult:
        name = generate_blob_name(keys.entity_ids, extension_for(image.mime_type))
        try:
            url = await self.durable.upload_blob(BlobCategory.GENERATED, image.data, name)
        except StorageDegradedError as e:
            logger.error(f"Blob upload failed for {keys.identity}, caching in memory only: {e}")
            return result

        stored = result.model_copy(update={"image_ref": url})
        try:
            await self.durable.put_by_identity(
                keys.identity,
                url,
                keys.entity_ids,
                keys.provider,
                keys.model,
            )
        except StorageDegradedError as e:
            logger.error(f"Durable write failed for {keys.identity}: {e}")
        return stored

    def clear(self) -> None:
        """Reset the memory tier."""
        count = len(self.memory)
        self.memory.clear()
        logger.info(f"Cleared {count} cached generation(s)")
