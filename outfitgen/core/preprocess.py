"""Image preprocessing before transmission to a backend.

Inputs are loaded from local paths, http(s) URLs, data URLs or raw bytes,
downsized to a maximum width (aspect ratio preserved), flattened onto a white
background and re-encoded as JPEG to keep payloads under backend limits.

Examples:
    >>> preprocessor = ImagePreprocessor(PreprocessConfig(max_width=800))
    >>> prepared = await preprocessor.prepare(ImageInput(role="top", ref="tops/1.png"))
    >>> prepared.mime_type
    'image/jpeg'

Tests:
    - tests/unit/test_preprocess.py
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
from pathlib import Path

import httpx
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field

from outfitgen.core.errors import ImageLoadError
from outfitgen.core.types import GenerationRequest, ImageInput

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)


class PreprocessConfig(BaseModel):
    """Preprocessing limits.

    Attributes:
        max_width: Images wider than this are scaled down
        jpeg_quality: JPEG quality for re-encoding (1-95)
        timeout: Timeout for fetching remote images in seconds
    """

    max_width: int = Field(default=800, ge=64)
    jpeg_quality: int = Field(default=70, ge=1, le=95)
    timeout: float = Field(default=30.0, gt=0)


class PreparedImage(BaseModel):
    """An input image ready for transmission."""

    model_config = ConfigDict(frozen=True)

    role: str
    data: bytes
    mime_type: str = "image/jpeg"
    width: int
    height: int

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64()}"


def decode_data_url(ref: str) -> bytes:
    """Decode a base64 data URL into bytes."""
    header, _, payload = ref.partition(",")
    if not payload or ";base64" not in header:
        raise ImageLoadError(ref[:32], "only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageLoadError(ref[:32], f"invalid base64 payload: {e}") from e


def compress_image(data: bytes, max_width: int, quality: int) -> tuple[bytes, int, int]:
    """Downsize, flatten onto white and encode as JPEG.

    Returns:
        Tuple of (jpeg_bytes, width, height).
    """
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
            rgba = img.convert("RGBA")
            flattened = Image.new("RGB", rgba.size, WHITE)
            flattened.paste(rgba, mask=rgba.getchannel("A"))
        else:
            flattened = img.convert("RGB")

    width, height = flattened.size
    if width > max_width:
        height = max(1, round(height * max_width / width))
        width = max_width
        flattened = flattened.resize((width, height), Image.Resampling.LANCZOS)

    out = io.BytesIO()
    flattened.save(out, format="JPEG", quality=quality, optimize=True)
    return out.getvalue(), width, height


class ImagePreprocessor:
    """Loads and compresses request images.

    Attributes:
        config: Preprocessing limits.
    """

    def __init__(
        self,
        config: PreprocessConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or PreprocessConfig()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get httpx async client (lazy initialization)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def load(self, image: ImageInput) -> bytes:
        """Load the raw bytes behind an image reference.

        Raises:
            ImageLoadError: If the reference cannot be read.
        """
        ref = image.ref
        if isinstance(ref, bytes):
            return ref
        if ref.startswith("data:"):
            return decode_data_url(ref)
        if ref.startswith(("http://", "https://")):
            try:
                response = await self.client.get(ref)
            except httpx.HTTPError as e:
                raise ImageLoadError(ref, str(e)) from e
            if response.status_code != 200:
                raise ImageLoadError(ref, f"HTTP {response.status_code}")
            return response.content

        path = Path(ref)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise ImageLoadError(ref, str(e)) from e

    async def prepare(self, image: ImageInput) -> PreparedImage:
        """Load and compress one input image."""
        raw = await self.load(image)
        try:
            data, width, height = await asyncio.to_thread(
                compress_image, raw, self.config.max_width, self.config.jpeg_quality
            )
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ImageLoadError(image.label, f"not a decodable image: {e}") from e

        logger.debug(
            f"Prepared {image.role} image: {len(raw)} -> {len(data)} bytes ({width}x{height})"
        )
        return PreparedImage(
            role=image.role,
            data=data,
            width=width,
            height=height,
        )

    async def prepare_all(self, request: GenerationRequest) -> list[PreparedImage]:
        """Prepare every input of a request concurrently, preserving order."""
        return list(await asyncio.gather(*(self.prepare(image) for image in request.inputs)))
