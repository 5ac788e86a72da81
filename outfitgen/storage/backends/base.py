"""Abstract base class for storage backends."""

from __future__ import annotations

from abc import ABC, abstractmethod


class StorageBackend(ABC):
    """Abstract storage backend for blob I/O.

    Implementations must handle writing, reading, deleting and checking
    existence of binary blobs.
    """

    @abstractmethod
    async def write_file(self, path: str, data: bytes) -> None:
        """Write binary data to a file.

        Args:
            path: Full file path.
            data: Binary data to write.
        """

    @abstractmethod
    async def read_file(self, path: str) -> bytes:
        """Read binary data from a file.

        Args:
            path: Full file path.

        Returns:
            File contents.
        """

    @abstractmethod
    async def delete_file(self, path: str) -> None:
        """Delete a file if it exists.

        Args:
            path: Full file path.
        """

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if a path exists.

        Args:
            path: Path to check.

        Returns:
            True if the path exists.
        """
