"""OpenAI describe-then-synthesize provider.

Two phases:
    1. A vision chat completion describes each garment (or the inspiration
       outfit) from its prepared image.
    2. One text-to-image call renders a fashion photograph from a prompt
       composed of those descriptions.

OpenAI API docs: https://platform.openai.com/docs/api-reference

Examples:
    >>> provider = OpenAIDescribeProvider(api_key="sk-...")
    >>> image = await provider.invoke(request, prepared_images)

Tests:
    - tests/unit/test_providers.py::TestOpenAIClassification
    - tests/unit/test_providers.py::TestOpenAIDescribeProvider
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from collections.abc import Mapping
from typing import Any

import httpx

from outfitgen.config import PROVIDER_DEFAULT_MODELS, ProviderType
from outfitgen.core.preprocess import PreparedImage
from outfitgen.core.providers.base import (
    FatalProviderError,
    ImageProvider,
    ProviderError,
    QuotaExceededError,
)
from outfitgen.core.providers.http import (
    classify_status,
    classify_transport_error,
    parse_retry_after_header,
    response_json,
)
from outfitgen.core.types import BODY_ROLE, GeneratedImage, GenerationKind, GenerationRequest
from outfitgen.prompts import describe as prompts

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_VISION_MODEL = PROVIDER_DEFAULT_MODELS[ProviderType.OPENAI]["vision"]
DEFAULT_IMAGE_MODEL = PROVIDER_DEFAULT_MODELS[ProviderType.OPENAI]["image"]

QUOTA_ERROR_CODES = {"insufficient_quota", "rate_limit_exceeded"}


def classify_openai_error(
    status_code: int,
    body: Any,
    headers: Mapping[str, str] | None = None,
    text: str = "",
) -> ProviderError:
    """Classify a non-200 OpenAI response.

    Args:
        status_code: HTTP status.
        body: Decoded JSON body, or None.
        headers: Response headers.
        text: Raw body text, used when no JSON message is present.

    Returns:
        The classified ProviderError (not raised).
    """
    error: dict[str, Any] = {}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
    message = str(error.get("message") or text or f"HTTP {status_code}")
    retry_after = parse_retry_after_header(headers)

    if error.get("code") in QUOTA_ERROR_CODES:
        return QuotaExceededError(
            ProviderType.OPENAI,
            retry_after=retry_after,
            message=message,
            status_code=status_code,
        )
    return classify_status(ProviderType.OPENAI, status_code, message, retry_after)


class OpenAIDescribeProvider(ImageProvider):
    """Describe garments with a vision model, then synthesize with an image model.

    Attributes:
        provider_type: ProviderType.OPENAI
        vision_model: Chat model used for descriptions
        image_model: Text-to-image model
        image_size: Requested output size
    """

    provider_type = ProviderType.OPENAI

    def __init__(
        self,
        api_key: str,
        base_url: str = OPENAI_BASE_URL,
        vision_model: str = DEFAULT_VISION_MODEL,
        image_model: str = DEFAULT_IMAGE_MODEL,
        image_size: str = "1024x1024",
        image_quality: str = "standard",
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(api_key)
        self.base_url = base_url.rstrip("/")
        self.vision_model = vision_model
        self.image_model = image_model
        self.image_size = image_size
        self.image_quality = image_quality
        self.timeout = timeout
        self._client = client

    @property
    def model(self) -> str:
        return f"{self.vision_model}+{self.image_model}"

    @property
    def client(self) -> httpx.AsyncClient:
        """Get httpx async client (lazy initialization)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"OpenAI transport error on {path}: {e}")
            raise classify_transport_error(ProviderType.OPENAI, e) from e

        if response.status_code != 200:
            error = classify_openai_error(
                response.status_code,
                response_json(response),
                response.headers,
                response.text,
            )
            logger.warning(f"OpenAI call to {path} failed: {error}")
            raise error

        data = response_json(response)
        if not isinstance(data, dict):
            raise FatalProviderError(f"Malformed response from {path}", ProviderType.OPENAI)
        return data

    async def describe_image(
        self,
        image: PreparedImage,
        prompt: str,
        default: str,
        max_tokens: int = 150,
    ) -> str:
        """Describe one image with the vision model.

        An empty completion falls back to a generic description; transport and
        API errors propagate.
        """
        payload = {
            "model": self.vision_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": image.to_data_url()}},
                    ],
                }
            ],
            "max_tokens": max_tokens,
        }
        data = await self._post("/chat/completions", payload)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str) or not content.strip():
            logger.warning(f"Empty description for {image.role}, using '{default}'")
            return default
        return content.strip()

    async def build_prompt(
        self, request: GenerationRequest, images: list[PreparedImage]
    ) -> str:
        """Run the description phase and compose the synthesis prompt."""
        subject = request.subject_description
        described = [image for image in images if image.role != BODY_ROLE]

        if request.kind == GenerationKind.OCCASION:
            return prompts.get_occasion_synthesis_prompt(subject, request.occasion or "everyday wear")

        if request.kind == GenerationKind.TRANSFER:
            if not described:
                raise FatalProviderError("Transfer request has no inspiration image", ProviderType.OPENAI)
            outfit = await self.describe_image(
                described[0],
                prompts.OUTFIT_DESCRIPTION_PROMPT,
                prompts.DEFAULT_OUTFIT_DESCRIPTION,
                max_tokens=200,
            )
            return prompts.get_transfer_synthesis_prompt(subject, outfit)

        # One at a time; the first failure stops further vision calls
        descriptions: dict[str, str] = {}
        for image in described:
            descriptions[image.role] = await self.describe_image(
                image,
                prompts.GARMENT_DESCRIPTION_PROMPT,
                prompts.DEFAULT_GARMENT_DESCRIPTION,
            )
        return prompts.get_outfit_synthesis_prompt(subject, descriptions)

    async def synthesize(self, prompt: str) -> GeneratedImage:
        """Render the final image from a text prompt."""
        payload = {
            "model": self.image_model,
            "prompt": prompt,
            "n": 1,
            "size": self.image_size,
            "quality": self.image_quality,
            "response_format": "b64_json",
        }
        data = await self._post("/images/generations", payload)
        items = data.get("data") or []
        if not isinstance(items, list):
            raise FatalProviderError("Malformed response from /images/generations", ProviderType.OPENAI)
        item = items[0] if items and isinstance(items[0], dict) else {}

        if item.get("b64_json"):
            try:
                return GeneratedImage(data=base64.b64decode(item["b64_json"], validate=True))
            except (binascii.Error, TypeError, ValueError) as e:
                raise FatalProviderError(
                    f"Image model returned undecodable data: {e}", ProviderType.OPENAI
                ) from e

        if item.get("url"):
            try:
                response = await self.client.get(item["url"])
            except httpx.HTTPError as e:
                raise classify_transport_error(ProviderType.OPENAI, e) from e
            if response.status_code != 200:
                raise FatalProviderError(
                    f"Could not download generated image (HTTP {response.status_code})",
                    ProviderType.OPENAI,
                    status_code=response.status_code,
                )
            mime_type = response.headers.get("content-type", "image/png").split(";")[0]
            return GeneratedImage(data=response.content, mime_type=mime_type)

        raise FatalProviderError("Image model did not return an image", ProviderType.OPENAI)

    async def invoke(
        self,
        request: GenerationRequest,
        images: list[PreparedImage],
    ) -> GeneratedImage:
        start_time = time.perf_counter()
        prompt = await self.build_prompt(request, images)
        logger.debug(f"OpenAI synthesis prompt: {prompt[:200]}")
        image = await self.synthesize(prompt)
        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(f"OpenAI generated {len(image.data)} bytes with {self.model} in {latency_ms}ms")
        return image
