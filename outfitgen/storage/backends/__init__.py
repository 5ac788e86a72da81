"""Storage backends for blob I/O."""

from outfitgen.storage.backends.base import StorageBackend
from outfitgen.storage.backends.local import LocalStorageBackend

__all__ = ["StorageBackend", "LocalStorageBackend"]
