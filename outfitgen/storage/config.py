"""Storage configuration model."""

from __future__ import annotations

from pydantic import BaseModel, Field


class StorageConfig(BaseModel):
    """Configuration for durable outfit storage.

    Attributes:
        enabled: Whether the durable cache tier is active.
        root: Root directory for blob output.
        public_base_url: URL prefix under which root is served (paths if unset).
    """

    enabled: bool = Field(default=True, description="Enable durable cache tier")
    root: str = Field(default="./output", description="Blob storage root directory")
    public_base_url: str | None = Field(
        default=None,
        description="Public URL prefix for stored blobs",
    )
