"""Core data types for outfit generation.

Examples:
    >>> from outfitgen.core.types import GenerationRequest, ImageInput, GenerationKind
    >>> request = GenerationRequest(
    ...     kind=GenerationKind.OUTFIT,
    ...     inputs=(ImageInput(role="top", ref="tops/1.png"),
    ...             ImageInput(role="bottom", ref="bottoms/7.png"),
    ...             ImageInput(role="body", ref="assets/model.png")),
    ...     instruction="Dress the model",
    ...     entity_ids={"top": "t1", "bottom": "b7"},
    ... )

Tests:
    - tests/unit/test_requests.py (TestTypes, TestBuilders)
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from outfitgen.core.errors import ErrorKind

DEFAULT_BODY_PATH = "assets/model.png"
DEFAULT_SUBJECT_DESCRIPTION = "a male fashion model on a white background"

BODY_ROLE = "body"


class GenerationKind(str, Enum):
    """Generation flavours.

    - OUTFIT: compose selected top/bottom (and shoes) onto the body image
    - OCCASION: dress the body image for a free-text occasion
    - TRANSFER: move the outfit of an inspiration image onto the body image
    """

    OUTFIT = "outfit"
    OCCASION = "occasion"
    TRANSFER = "transfer"


class Provenance(str, Enum):
    """Where a cached image came from."""

    GENERATED = "generated"
    DEGRADED_FALLBACK = "degraded-fallback"


class ImageInput(BaseModel):
    """A role-tagged image reference.

    Attributes:
        role: Role of the image ("top", "bottom", "shoes", "body", "inspiration")
        ref: Local path, http(s) URL, data URL, or raw uploaded bytes
    """

    model_config = ConfigDict(frozen=True)

    role: str = Field(min_length=1)
    ref: str | bytes

    @property
    def label(self) -> str:
        """Short printable form of the reference."""
        if isinstance(self.ref, bytes):
            return f"<{len(self.ref)} bytes>"
        if self.ref.startswith("data:"):
            return self.ref[:32] + "..."
        return self.ref


class GenerationRequest(BaseModel):
    """Immutable generation request.

    Attributes:
        kind: Generation flavour
        inputs: Ordered role-tagged images (order is the order sent to backends)
        instruction: Free-text instruction for compose-style backends
        entity_ids: Stable ids per role, used for the durable cache key
        subject_description: Text description of the body model for
            describe-style backends
        occasion: Occasion text for OCCASION requests
    """

    model_config = ConfigDict(frozen=True)

    kind: GenerationKind = GenerationKind.OUTFIT
    inputs: tuple[ImageInput, ...] = Field(min_length=1)
    instruction: str = Field(min_length=1)
    entity_ids: dict[str, str] | None = None
    subject_description: str = DEFAULT_SUBJECT_DESCRIPTION
    occasion: str | None = None

    @field_validator("inputs")
    @classmethod
    def validate_unique_roles(cls, v: tuple[ImageInput, ...]) -> tuple[ImageInput, ...]:
        roles = [i.role for i in v]
        if len(set(roles)) != len(roles):
            raise ValueError(f"Duplicate image roles: {roles}")
        return v

    def get_input(self, role: str) -> ImageInput | None:
        """Return the input with the given role, if any."""
        for image in self.inputs:
            if image.role == role:
                return image
        return None

    @property
    def roles(self) -> list[str]:
        return [i.role for i in self.inputs]


class GeneratedImage(BaseModel):
    """Raw image payload returned by a provider."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "image/png"

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class CachedResult(BaseModel):
    """A cached generation outcome. Never mutated, only superseded."""

    model_config = ConfigDict(frozen=True)

    image_ref: str
    provenance: Provenance = Provenance.GENERATED
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def degraded(self) -> bool:
        return self.provenance == Provenance.DEGRADED_FALLBACK


class GenerationResult(BaseModel):
    """Outcome of OutfitOrchestrator.generate.

    Attributes:
        success: Whether an image is available
        image_ref: URL, path or data URL of the image
        error: User-facing error message
        degraded: True when produced by the local fallback
        error_kind: Classification of the failure
        retry_after_seconds: Suggested wait before retrying
        cached: True when served from cache
        cache_key: Content fingerprint of the request
    """

    success: bool
    image_ref: str | None = None
    error: str | None = None
    degraded: bool = False
    error_kind: ErrorKind | None = None
    retry_after_seconds: float | None = None
    cached: bool = False
    cache_key: str | None = None

    @classmethod
    def from_cache(cls, result: CachedResult, cache_key: str) -> "GenerationResult":
        return cls(
            success=True,
            image_ref=result.image_ref,
            degraded=result.degraded,
            cached=True,
            cache_key=cache_key,
        )

    @classmethod
    def failure(
        cls,
        error: str,
        kind: ErrorKind,
        cache_key: str | None = None,
        retry_after_seconds: float | None = None,
    ) -> "GenerationResult":
        return cls(
            success=False,
            error=error,
            error_kind=kind,
            cache_key=cache_key,
            retry_after_seconds=retry_after_seconds,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
