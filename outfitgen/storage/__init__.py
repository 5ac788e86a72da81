"""Durable storage for generated outfits.

Examples:
    >>> from outfitgen.storage import SqlOutfitStore, StorageConfig
    >>> store = SqlOutfitStore(session_factory, config=StorageConfig(root="./output"))
"""

from outfitgen.storage.config import StorageConfig
from outfitgen.storage.store import BlobCategory, DurableStore, SqlOutfitStore

__all__ = ["BlobCategory", "DurableStore", "SqlOutfitStore", "StorageConfig"]
