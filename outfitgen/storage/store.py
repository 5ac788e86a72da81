"""Durable store for generated outfits.

The durable tier of the generation cache: a table of generated outfits keyed
by identity key, plus blob storage for the image bytes. Every failure is
raised as StorageDegradedError so the cache can log it and carry on.

Examples:
    >>> from outfitgen.storage.store import SqlOutfitStore
    >>> store = SqlOutfitStore(session_factory, LocalStorageBackend(), config)
    >>> url = await store.upload_blob(BlobCategory.GENERATED, png_bytes, "outfit_t1_b7.png")
    >>> await store.put_by_identity(identity, url, {"top": "t1"}, "gemini", "gemini-2.5-flash-image")
    >>> await store.get_by_identity(identity)
    'output/generated-outfits/outfit_t1_b7.png'

Tests:
    - tests/unit/test_storage/test_store.py
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from outfitgen.core.errors import StorageDegradedError
from outfitgen.models import GeneratedOutfit
from outfitgen.storage.backends.base import StorageBackend
from outfitgen.storage.backends.local import LocalStorageBackend
from outfitgen.storage.config import StorageConfig

logger = logging.getLogger(__name__)


class BlobCategory(str, Enum):
    """Blob buckets."""

    GENERATED = "generated-outfits"


class DurableStore(ABC):
    """Persistent mapping from identity key to stored image reference."""

    @abstractmethod
    async def get_by_identity(self, identity_key: str) -> str | None:
        """Return the stored image reference, or None if absent.

        Raises:
            StorageDegradedError: If the store cannot be read.
        """

    @abstractmethod
    async def put_by_identity(
        self,
        identity_key: str,
        image_ref: str,
        entity_ids: dict[str, str],
        provider: str,
        model: str,
    ) -> None:
        """Insert or supersede the entry for identity_key.

        Raises:
            StorageDegradedError: If the store cannot be written.
        """

    @abstractmethod
    async def upload_blob(self, category: BlobCategory, data: bytes, name: str) -> str:
        """Store image bytes and return their public reference.

        Raises:
            StorageDegradedError: If the blob cannot be written.
        """


class SqlOutfitStore(DurableStore):
    """DurableStore backed by SQLAlchemy and a StorageBackend.

    Attributes:
        config: Storage configuration.
        backend: Blob I/O backend.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        backend: StorageBackend | None = None,
        config: StorageConfig | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.backend = backend or LocalStorageBackend()
        self.config = config or StorageConfig()

    def blob_path(self, category: BlobCategory, name: str) -> str:
        return str(Path(self.config.root) / category.value / name)

    def public_url(self, category: BlobCategory, name: str) -> str:
        """Public URL for a blob, or its filesystem path when no URL prefix is set."""
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{category.value}/{name}"
        return self.blob_path(category, name)

    async def get_by_identity(self, identity_key: str) -> str | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(GeneratedOutfit.image_url).where(
                        GeneratedOutfit.identity_key == identity_key
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageDegradedError("durable lookup", str(e)) from e

    async def put_by_identity(
        self,
        identity_key: str,
        image_ref: str,
        entity_ids: dict[str, str],
        provider: str,
        model: str,
    ) -> None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(GeneratedOutfit).where(
                        GeneratedOutfit.identity_key == identity_key
                    )
                )
                row = result.scalar_one_or_none()
                if row is None:
                    session.add(
                        GeneratedOutfit(
                            identity_key=identity_key,
                            entity_ids=dict(entity_ids),
                            provider=provider,
                            model=model,
                            image_url=image_ref,
                        )
                    )
                else:
                    row.image_url = image_ref
                    row.entity_ids = dict(entity_ids)
                    row.provider = provider
                    row.model = model
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageDegradedError("durable write", str(e)) from e

        logger.debug(f"Durable entry stored for {identity_key}")

    async def upload_blob(self, category: BlobCategory, data: bytes, name: str) -> str:
        path = self.blob_path(category, name)
        try:
            await self.backend.write_file(path, data)
        except OSError as e:
            raise StorageDegradedError("blob upload", str(e)) from e

        logger.info(f"Stored {len(data)} bytes at {path}")
        return self.public_url(category, name)
