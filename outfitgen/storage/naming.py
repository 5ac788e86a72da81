"""Blob naming for generated outfit images.

Format: outfit_{id-slugs}_{YYYYMMDDHHMMSS}_{uuid6}.{ext}

Examples:
    >>> from outfitgen.storage.naming import sanitize_slug, generate_blob_name
    >>> sanitize_slug("Blue Denim Jacket #2")
    'blue-denim-jacket-2'
    >>> generate_blob_name({"top": "t1", "bottom": "b7"}, "png")
    'outfit_t1_b7_20260209153000_a3f2b1.png'
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone

MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}


def sanitize_slug(value: str, max_length: int = 40) -> str:
    """Sanitize an id or label into a filesystem-safe slug.

    Rules:
        - Lowercase
        - Strip non-alphanumeric except hyphens
        - Collapse multiple hyphens
        - Truncate to max_length
        - Fallback to 'item' if empty

    Args:
        value: Raw string.
        max_length: Maximum slug length (default 40).

    Returns:
        Sanitized slug string.
    """
    slug = value.lower().strip()
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    slug = slug.strip("-")[:max_length].rstrip("-")
    return slug or "item"


def extension_for(mime_type: str) -> str:
    return MIME_EXTENSIONS.get(mime_type.lower(), "png")


def generate_blob_name(
    entity_ids: dict[str, str],
    extension: str = "png",
    now: datetime | None = None,
) -> str:
    """Generate a unique blob name for a generated outfit.

    Ids are ordered top, bottom, shoes, then any other role alphabetically.
    """
    order = {"top": 0, "bottom": 1, "shoes": 2}
    roles = sorted(entity_ids, key=lambda role: (order.get(role, 3), role))
    parts = [sanitize_slug(entity_ids[role]) for role in roles]
    timestamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S")
    suffix = uuid.uuid4().hex[:6]
    return "_".join(["outfit", *parts, timestamp, suffix]) + f".{extension}"
