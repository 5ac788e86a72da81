"""Builders for the three generation flavours.

Examples:
    >>> request = build_outfit_request("tops/1.png", "bottoms/7.png", top_id="t1", bottom_id="b7")
    >>> request.roles
    ['top', 'bottom', 'body']

Tests:
    - tests/unit/test_requests.py
"""

from __future__ import annotations

from outfitgen.core.types import (
    BODY_ROLE,
    DEFAULT_BODY_PATH,
    DEFAULT_SUBJECT_DESCRIPTION,
    GenerationKind,
    GenerationRequest,
    ImageInput,
)
from outfitgen.prompts import compose

ImageRef = str | bytes


def build_outfit_request(
    top: ImageRef,
    bottom: ImageRef,
    body: ImageRef = DEFAULT_BODY_PATH,
    shoes: ImageRef | None = None,
    top_id: str | None = None,
    bottom_id: str | None = None,
    shoe_id: str | None = None,
    subject_description: str = DEFAULT_SUBJECT_DESCRIPTION,
) -> GenerationRequest:
    """Compose a top, a bottom and optional shoes onto the body image.

    Images are attached in the order top, bottom, [shoes], body, matching the
    image numbering of the compose instruction.
    """
    inputs = [ImageInput(role="top", ref=top), ImageInput(role="bottom", ref=bottom)]
    if shoes is not None:
        inputs.append(ImageInput(role="shoes", ref=shoes))
    inputs.append(ImageInput(role=BODY_ROLE, ref=body))

    ids = {"top": top_id, "bottom": bottom_id, "shoes": shoe_id}
    entity_ids = {role: value for role, value in ids.items() if value}

    return GenerationRequest(
        kind=GenerationKind.OUTFIT,
        inputs=tuple(inputs),
        instruction=compose.get_outfit_prompt(include_shoes=shoes is not None),
        entity_ids=entity_ids or None,
        subject_description=subject_description,
    )


def build_occasion_request(
    occasion: str,
    body: ImageRef = DEFAULT_BODY_PATH,
    subject_description: str = DEFAULT_SUBJECT_DESCRIPTION,
) -> GenerationRequest:
    """Dress the body image for a free-text occasion."""
    occasion = occasion.strip()
    if not occasion:
        raise ValueError("Occasion must not be empty")
    return GenerationRequest(
        kind=GenerationKind.OCCASION,
        inputs=(ImageInput(role=BODY_ROLE, ref=body),),
        instruction=compose.get_occasion_prompt(occasion),
        subject_description=subject_description,
        occasion=occasion,
    )


def build_transfer_request(
    inspiration: ImageRef,
    body: ImageRef = DEFAULT_BODY_PATH,
    inspiration_id: str | None = None,
    subject_description: str = DEFAULT_SUBJECT_DESCRIPTION,
) -> GenerationRequest:
    """Move the outfit worn in the inspiration image onto the body image.

    Images are attached as body (image 1) then inspiration (image 2).
    """
    return GenerationRequest(
        kind=GenerationKind.TRANSFER,
        inputs=(
            ImageInput(role=BODY_ROLE, ref=body),
            ImageInput(role="inspiration", ref=inspiration),
        ),
        instruction=compose.get_transfer_prompt(),
        entity_ids={"inspiration": inspiration_id} if inspiration_id else None,
        subject_description=subject_description,
    )
