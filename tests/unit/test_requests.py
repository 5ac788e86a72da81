"""Unit tests for request builders and request types.

Tests for outfitgen/core/requests.py and outfitgen/core/types.py.
"""

import pytest
from pydantic import ValidationError

from outfitgen.core.requests import (
    build_occasion_request,
    build_outfit_request,
    build_transfer_request,
)
from outfitgen.core.types import (
    DEFAULT_BODY_PATH,
    CachedResult,
    GenerationKind,
    GenerationRequest,
    GenerationResult,
    ImageInput,
    Provenance,
)


@pytest.mark.fast
class TestBuilders:
    """Tests for the three request builders."""

    def test_outfit_order_and_ids(self):
        request = build_outfit_request("t.png", "b.png", top_id="t1", bottom_id="b7")
        assert request.kind == GenerationKind.OUTFIT
        assert request.roles == ["top", "bottom", "body"]
        assert request.get_input("body").ref == DEFAULT_BODY_PATH
        assert request.entity_ids == {"top": "t1", "bottom": "b7"}
        assert "image 3" in request.instruction

    def test_outfit_with_shoes(self):
        request = build_outfit_request("t.png", "b.png", shoes="s.png", shoe_id="s1")
        assert request.roles == ["top", "bottom", "shoes", "body"]
        assert "shoes from image 3" in request.instruction
        assert "image 4" in request.instruction
        assert request.entity_ids == {"shoes": "s1"}

    def test_outfit_without_ids(self):
        assert build_outfit_request("t.png", "b.png").entity_ids is None

    def test_occasion(self):
        request = build_occasion_request("  beach wedding ")
        assert request.kind == GenerationKind.OCCASION
        assert request.roles == ["body"]
        assert request.occasion == "beach wedding"
        assert "beach wedding" in request.instruction

    def test_occasion_blank_rejected(self):
        with pytest.raises(ValueError):
            build_occasion_request("   ")

    def test_transfer(self, png_bytes):
        request = build_transfer_request(png_bytes, inspiration_id="insp-1")
        assert request.kind == GenerationKind.TRANSFER
        assert request.roles == ["body", "inspiration"]
        assert request.get_input("inspiration").ref == png_bytes
        assert request.entity_ids == {"inspiration": "insp-1"}


@pytest.mark.fast
class TestTypes:
    """Tests for request/result models."""

    def test_duplicate_roles_rejected(self):
        with pytest.raises(ValidationError):
            GenerationRequest(
                inputs=(ImageInput(role="top", ref="a"), ImageInput(role="top", ref="b")),
                instruction="x",
            )

    def test_request_requires_inputs(self):
        with pytest.raises(ValidationError):
            GenerationRequest(inputs=(), instruction="x")

    def test_request_frozen(self):
        request = build_outfit_request("t.png", "b.png")
        with pytest.raises(ValidationError):
            request.instruction = "other"

    def test_image_input_label(self):
        assert ImageInput(role="top", ref=b"1234").label == "<4 bytes>"
        assert ImageInput(role="top", ref="tops/1.png").label == "tops/1.png"

    def test_result_from_cache(self):
        cached = CachedResult(image_ref="x", provenance=Provenance.DEGRADED_FALLBACK)
        result = GenerationResult.from_cache(cached, "key")
        assert result.success and result.cached and result.degraded
        assert result.to_dict()["image_ref"] == "x"
