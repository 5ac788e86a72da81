"""SQLAlchemy models for the durable outfit cache.

Examples:
    >>> from outfitgen.models import GeneratedOutfit
    >>> row = GeneratedOutfit(
    ...     identity_key="outfit:gemini:gemini-2.5-flash-image:bottom=b7__top=t1",
    ...     entity_ids={"top": "t1", "bottom": "b7"},
    ...     provider="gemini",
    ...     model="gemini-2.5-flash-image",
    ...     image_url="https://cdn.example.com/generated-outfits/outfit_t1_b7.png",
    ... )

Tests:
    - tests/unit/test_storage/test_store.py
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class GeneratedOutfit(Base):
    """A generated outfit image, keyed by the identity of its inputs.

    Attributes:
        id: UUID primary key
        identity_key: Durable cache key (unique)
        entity_ids: Role -> stable entity id
        provider: Backend that generated the image
        model: Model id used
        image_url: Public URL or path of the stored image
        created_at: Creation timestamp
        updated_at: Last supersession timestamp
    """

    __tablename__ = "generated_outfits"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    identity_key: Mapped[str] = mapped_column(
        String(512),
        unique=True,
        index=True,
        nullable=False,
    )
    entity_ids: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(200), nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<GeneratedOutfit(identity_key={self.identity_key!r})>"
