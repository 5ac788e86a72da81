"""Outfit generation API endpoints.

Endpoints:
    POST /api/v1/outfits - Compose selected garments onto the body image
    POST /api/v1/outfits/occasion - Dress the body image for an occasion
    POST /api/v1/outfits/transfer - Transfer the outfit of an uploaded image
    GET /api/v1/outfits/rate-limit - Current limiter settings and usage
    PUT /api/v1/outfits/rate-limit - Reconfigure the limiter
    DELETE /api/v1/outfits/cache - Clear the in-memory cache tier

Examples:
    >>> POST /api/v1/outfits
    >>> {"top": "tops/1.png", "bottom": "bottoms/7.png", "top_id": "t1", "bottom_id": "b7"}
    >>>
    >>> # Response
    >>> {"success": true, "image_ref": "output/generated-outfits/outfit_t1_b7_....png", ...}

Tests:
    - tests/unit/test_main.py::TestOutfitEndpoints
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field

from outfitgen.core.orchestrator import OutfitOrchestrator
from outfitgen.core.rate_limiter import RateLimitSnapshot
from outfitgen.core.requests import (
    build_occasion_request,
    build_outfit_request,
    build_transfer_request,
)
from outfitgen.core.types import DEFAULT_BODY_PATH, GenerationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/outfits", tags=["outfits"])

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


# Request/Response Models


class OutfitRequest(BaseModel):
    """Request to compose an outfit.

    Attributes:
        top: Path or URL of the top garment image
        bottom: Path or URL of the bottom garment image
        shoes: Optional path or URL of the shoes image
        body: Path or URL of the body model image
        top_id, bottom_id, shoe_id: Stable clothing item ids
    """

    top: str = Field(..., min_length=1)
    bottom: str = Field(..., min_length=1)
    shoes: str | None = None
    body: str = DEFAULT_BODY_PATH
    top_id: str | None = None
    bottom_id: str | None = None
    shoe_id: str | None = None


class OccasionRequest(BaseModel):
    """Request to dress the body image for an occasion."""

    occasion: str = Field(..., min_length=1, max_length=500)
    body: str = DEFAULT_BODY_PATH


class RateLimitUpdate(BaseModel):
    """New limiter settings. Omitted fields keep their current value."""

    cooldown_seconds: float | None = Field(default=None, ge=0)
    max_calls: int | None = Field(default=None, ge=1)
    window_seconds: float | None = Field(default=None, gt=0)


class CacheClearResponse(BaseModel):
    cleared: int


def get_orchestrator(request: Request) -> OutfitOrchestrator:
    """FastAPI dependency returning the application's orchestrator."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Generation service not ready")
    return orchestrator


# Endpoints


@router.post("", response_model=GenerationResult)
async def generate_outfit(
    body: OutfitRequest,
    orchestrator: OutfitOrchestrator = Depends(get_orchestrator),
) -> GenerationResult:
    """Compose the selected garments onto the body image."""
    request = build_outfit_request(
        top=body.top,
        bottom=body.bottom,
        body=body.body,
        shoes=body.shoes,
        top_id=body.top_id,
        bottom_id=body.bottom_id,
        shoe_id=body.shoe_id,
    )
    return await orchestrator.generate(request)


@router.post("/occasion", response_model=GenerationResult)
async def generate_occasion(
    body: OccasionRequest,
    orchestrator: OutfitOrchestrator = Depends(get_orchestrator),
) -> GenerationResult:
    """Dress the body image for a free-text occasion."""
    occasion = body.occasion.strip()
    if not occasion:
        raise HTTPException(status_code=422, detail="Occasion must not be blank")
    return await orchestrator.generate(build_occasion_request(occasion, body=body.body))


@router.post("/transfer", response_model=GenerationResult)
async def generate_transfer(
    inspiration: UploadFile = File(...),
    body: str = Form(DEFAULT_BODY_PATH),
    inspiration_id: str | None = Form(None),
    orchestrator: OutfitOrchestrator = Depends(get_orchestrator),
) -> GenerationResult:
    """Transfer the outfit worn in an uploaded image onto the body image.

    The upload is spooled to a temporary file that is removed on every exit
    path, including cancellation.
    """
    if inspiration.content_type and not inspiration.content_type.startswith("image/"):
        raise HTTPException(status_code=415, detail="Inspiration must be an image")

    data = await inspiration.read()
    if not data:
        raise HTTPException(status_code=422, detail="Inspiration image is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Inspiration image is too large")

    suffix = Path(inspiration.filename or "upload.png").suffix or ".png"
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as handle:
        handle.write(data)
        temp_path = Path(handle.name)

    try:
        request = build_transfer_request(
            str(temp_path), body=body, inspiration_id=inspiration_id
        )
        return await orchestrator.generate(request)
    finally:
        await asyncio.to_thread(temp_path.unlink, missing_ok=True)
        logger.debug(f"Removed temporary upload {temp_path}")


@router.get("/rate-limit", response_model=RateLimitSnapshot)
async def get_rate_limit(
    orchestrator: OutfitOrchestrator = Depends(get_orchestrator),
) -> RateLimitSnapshot:
    """Current rate limiter settings and usage."""
    return orchestrator.rate_limiter.snapshot()


@router.put("/rate-limit", response_model=RateLimitSnapshot)
async def update_rate_limit(
    update: RateLimitUpdate,
    orchestrator: OutfitOrchestrator = Depends(get_orchestrator),
) -> RateLimitSnapshot:
    """Reconfigure the rate limiter at runtime."""
    try:
        orchestrator.rate_limiter.reconfigure(
            cooldown_seconds=update.cooldown_seconds,
            max_calls=update.max_calls,
            window_seconds=update.window_seconds,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return orchestrator.rate_limiter.snapshot()


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(
    orchestrator: OutfitOrchestrator = Depends(get_orchestrator),
) -> CacheClearResponse:
    """Clear the in-memory cache tier (durable entries are kept)."""
    cleared = orchestrator.cache_size
    orchestrator.clear_cache()
    return CacheClearResponse(cleared=cleared)
