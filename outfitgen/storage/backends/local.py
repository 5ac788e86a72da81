"""Local filesystem storage backend using pathlib."""

from __future__ import annotations

import asyncio
from pathlib import Path

from outfitgen.storage.backends.base import StorageBackend


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class LocalStorageBackend(StorageBackend):
    """Pathlib-based local filesystem storage backend.

    File I/O runs in a worker thread so the event loop is not blocked.
    """

    async def write_file(self, path: str, data: bytes) -> None:
        """Write binary data to a local file."""
        await asyncio.to_thread(_write, Path(path), data)

    async def read_file(self, path: str) -> bytes:
        """Read a local file."""
        return await asyncio.to_thread(Path(path).read_bytes)

    async def delete_file(self, path: str) -> None:
        """Delete a local file."""
        await asyncio.to_thread(Path(path).unlink, missing_ok=True)

    async def exists(self, path: str) -> bool:
        """Check if a local path exists."""
        return Path(path).exists()
