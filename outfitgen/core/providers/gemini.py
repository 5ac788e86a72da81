"""Gemini direct multi-image compose provider.

Sends the instruction and every prepared image in a single generateContent
call to a Gemini image model behind a LiteLLM/Vertex-style proxy and returns
the first inline image of the first candidate.

Examples:
    >>> provider = GeminiComposeProvider(api_key="sk-...", base_url="http://localhost:4000")
    >>> image = await provider.invoke(request, prepared_images)

Tests:
    - tests/unit/test_providers.py::TestGeminiClassification
    - tests/unit/test_providers.py::TestGeminiComposeProvider
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
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
from outfitgen.core.types import GeneratedImage, GenerationRequest

logger = logging.getLogger(__name__)

DEFAULT_MODEL = PROVIDER_DEFAULT_MODELS[ProviderType.GEMINI]["image"]
RETRY_DELAY_PATTERN = re.compile(r"^(\d+)(?:\.(\d+))?s$")


def parse_retry_delay(value: str | None) -> float | None:
    """Parse a google.rpc.RetryInfo retryDelay such as "12.5s" into seconds."""
    if not value:
        return None
    match = RETRY_DELAY_PATTERN.match(value.strip())
    if not match:
        return None
    seconds = int(match.group(1))
    fraction = match.group(2)
    millis = int(fraction[:3].ljust(3, "0")) if fraction else 0
    return seconds + millis / 1000


def _error_object(body: Any) -> dict[str, Any]:
    # Vertex sometimes wraps the error in a single-element list
    if isinstance(body, list) and body:
        body = body[0]
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            return error
        if isinstance(error, str):
            return {"message": error}
    return {}


def classify_gemini_error(
    status_code: int,
    body: Any,
    headers: Mapping[str, str] | None = None,
    text: str = "",
) -> ProviderError:
    """Classify a non-200 generateContent response.

    RESOURCE_EXHAUSTED is treated as quota even when the proxy reports a
    status other than 429.

    Args:
        status_code: HTTP status.
        body: Decoded JSON body, or None.
        headers: Response headers.
        text: Raw body text, used when no JSON message is present.

    Returns:
        The classified ProviderError (not raised).
    """
    error = _error_object(body)
    message = str(error.get("message") or text or f"HTTP {status_code}")
    status = error.get("status")

    retry_after = None
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and "RetryInfo" in str(detail.get("@type", "")):
            retry_after = parse_retry_delay(detail.get("retryDelay"))
            break
    if retry_after is None:
        retry_after = parse_retry_after_header(headers)

    if status == "RESOURCE_EXHAUSTED" or error.get("code") == 429:
        return QuotaExceededError(
            ProviderType.GEMINI,
            retry_after=retry_after,
            message=message,
            status_code=status_code,
        )
    return classify_status(ProviderType.GEMINI, status_code, message, retry_after)


def extract_image(data: Any) -> GeneratedImage:
    """Pull the first inline image out of a generateContent response.

    Raises:
        FatalProviderError: If no image part is present or the body has an
            unexpected shape.
    """
    if not isinstance(data, dict):
        raise FatalProviderError("Malformed response from Gemini", ProviderType.GEMINI)

    candidates = data.get("candidates") or []
    if not isinstance(candidates, list):
        raise FatalProviderError("Malformed response from Gemini", ProviderType.GEMINI)
    parts: Any = []
    if candidates and isinstance(candidates[0], dict):
        content = candidates[0].get("content") or {}
        if not isinstance(content, dict):
            raise FatalProviderError("Malformed response from Gemini", ProviderType.GEMINI)
        parts = content.get("parts") or []
    if not isinstance(parts, list) or not all(isinstance(p, dict) for p in parts):
        raise FatalProviderError("Malformed response from Gemini", ProviderType.GEMINI)

    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            try:
                raw = base64.b64decode(inline["data"], validate=True)
            except (binascii.Error, TypeError, ValueError) as e:
                raise FatalProviderError(
                    f"Gemini returned undecodable image data: {e}", ProviderType.GEMINI
                ) from e
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return GeneratedImage(data=raw, mime_type=str(mime_type))

    texts = "\n".join(p["text"] for p in parts if isinstance(p.get("text"), str) and p["text"])
    if not texts:
        feedback = data.get("promptFeedback")
        block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        texts = f"Request blocked: {block_reason}" if block_reason else "No image data returned"
    raise FatalProviderError(f"Gemini did not return an image. {texts}", ProviderType.GEMINI)


class GeminiComposeProvider(ImageProvider):
    """Direct multi-image compose via a Gemini image model.

    Attributes:
        provider_type: ProviderType.GEMINI
        base_url: Proxy base URL
        project: Vertex project segment of the endpoint path
        location: Vertex location segment of the endpoint path
    """

    provider_type = ProviderType.GEMINI

    def __init__(
        self,
        api_key: str,
        base_url: str,
        project: str = "outfitgen-dev",
        location: str = "us-east1",
        model: str = DEFAULT_MODEL,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(api_key)
        self.base_url = base_url.rstrip("/")
        self.project = project
        self.location = location
        self._model = model
        self.timeout = timeout
        self._client = client

    @property
    def model(self) -> str:
        return self._model

    @property
    def endpoint(self) -> str:
        return (
            f"/vertex_ai/v1/projects/{self.project}/locations/{self.location}"
            f"/publishers/google/models/{self._model}:generateContent"
        )

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

    def build_payload(
        self, request: GenerationRequest, images: list[PreparedImage]
    ) -> dict[str, Any]:
        parts: list[dict[str, Any]] = [{"text": request.instruction}]
        for image in images:
            parts.append({"inlineData": {"mimeType": image.mime_type, "data": image.b64()}})
        return {"contents": [{"role": "user", "parts": parts}]}

    async def invoke(
        self,
        request: GenerationRequest,
        images: list[PreparedImage],
    ) -> GeneratedImage:
        """Compose all images into one outfit image.

        Raises:
            QuotaExceededError: On 429 / RESOURCE_EXHAUSTED.
            ProviderTimeoutError: On deadlines and transient failures.
            FatalProviderError: On anything else.
        """
        start_time = time.perf_counter()
        payload = self.build_payload(request, images)

        try:
            response = await self.client.post(self.endpoint, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Gemini transport error: {e}")
            raise classify_transport_error(ProviderType.GEMINI, e) from e

        if response.status_code != 200:
            error = classify_gemini_error(
                response.status_code,
                response_json(response),
                response.headers,
                response.text,
            )
            logger.warning(f"Gemini call failed: {error}")
            raise error

        data = response_json(response)
        image = extract_image(data)
        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            f"Gemini generated {len(image.data)} bytes with {self._model} in {latency_ms}ms"
        )
        return image
