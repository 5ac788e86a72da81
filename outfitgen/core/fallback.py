"""Local composite fallback.

When every backend attempt fails, the orchestrator can still show the user
something: the selected top stacked above the selected bottom on a white
canvas. Results are marked degraded and never written to the durable store.

Tests:
    - tests/unit/test_fallback.py
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from abc import ABC, abstractmethod

from PIL import Image, UnidentifiedImageError

from outfitgen.core.errors import FallbackError
from outfitgen.core.preprocess import PreparedImage

logger = logging.getLogger(__name__)

CANVAS_WIDTH = 512
PADDING = 24


class CompositeFallback(ABC):
    """Best-effort local image composer."""

    @abstractmethod
    async def compose(self, image_a: PreparedImage, image_b: PreparedImage) -> str:
        """Compose two images into one.

        Returns:
            Image reference (data URL) of the composite.

        Raises:
            FallbackError: If the composite cannot be produced.
        """


def _fit_width(image: Image.Image, width: int) -> Image.Image:
    if image.width == width:
        return image
    height = max(1, round(image.height * width / image.width))
    return image.resize((width, height), Image.Resampling.LANCZOS)


def stack_vertically(
    upper: bytes,
    lower: bytes,
    width: int = CANVAS_WIDTH,
    padding: int = PADDING,
) -> bytes:
    """Stack two encoded images top-to-bottom on a white canvas, returning PNG bytes."""
    with Image.open(io.BytesIO(upper)) as a, Image.open(io.BytesIO(lower)) as b:
        inner = width - 2 * padding
        first = _fit_width(a.convert("RGB"), inner)
        second = _fit_width(b.convert("RGB"), inner)

    canvas = Image.new(
        "RGB",
        (width, first.height + second.height + 3 * padding),
        (255, 255, 255),
    )
    canvas.paste(first, (padding, padding))
    canvas.paste(second, (padding, first.height + 2 * padding))

    buffer = io.BytesIO()
    canvas.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()


class PillowCompositeFallback(CompositeFallback):
    """Stacks the two garments vertically with Pillow.

    Attributes:
        width: Output canvas width in pixels.
        padding: White margin around and between garments.
    """

    def __init__(self, width: int = CANVAS_WIDTH, padding: int = PADDING) -> None:
        if width <= 2 * padding:
            raise ValueError("width must exceed twice the padding")
        self.width = width
        self.padding = padding

    async def compose(self, image_a: PreparedImage, image_b: PreparedImage) -> str:
        try:
            data = await asyncio.to_thread(
                stack_vertically, image_a.data, image_b.data, self.width, self.padding
            )
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise FallbackError(f"Failed to create composite image: {e}") from e

        logger.info(f"Composite fallback produced {len(data)} bytes")
        return "data:image/png;base64," + base64.b64encode(data).decode("ascii")
