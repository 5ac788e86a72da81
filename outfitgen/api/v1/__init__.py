"""API v1 module.

Contains all v1 API routes.
"""

from fastapi import APIRouter

from outfitgen.api.v1.outfits import router as outfits_router

router = APIRouter(prefix="/api/v1")
router.include_router(outfits_router)

__all__ = ["router"]
