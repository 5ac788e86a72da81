"""FastAPI application for outfitgen.

This module provides the FastAPI application with health endpoints, the v1
outfit routes, and lifecycle management of the orchestrator.

Run with:
    uvicorn outfitgen.main:app --reload

Examples:
    >>> # Health check
    >>> curl http://localhost:8000/health

    >>> # Generate an outfit
    >>> curl -X POST http://localhost:8000/api/v1/outfits \\
    ...      -H 'Content-Type: application/json' \\
    ...      -d '{"top": "tops/1.png", "bottom": "bottoms/7.png"}'

Tests:
    - tests/unit/test_main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from outfitgen import __version__
from outfitgen.api.v1 import router as v1_router
from outfitgen.config import ProviderType, Settings, get_settings
from outfitgen.core.orchestrator import OutfitOrchestrator
from outfitgen.database import check_db_connection, close_db, get_session_factory, init_db
from outfitgen.storage import SqlOutfitStore
from outfitgen.storage.backends import LocalStorageBackend

logger = logging.getLogger(__name__)


# Response models
class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: bool
    providers: dict[str, bool]
    cache_entries: int


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def build_orchestrator(settings: Settings) -> OutfitOrchestrator:
    """Build the orchestrator, with the durable tier when it can be initialized."""
    storage_config = settings.get_storage_config()
    store = None
    if storage_config.enabled:
        try:
            await init_db()
            store = SqlOutfitStore(get_session_factory(), LocalStorageBackend(), storage_config)
            logger.info("Durable cache enabled")
        except Exception as e:
            logger.error(f"Database initialization failed, caching in memory only: {e}")

    return OutfitOrchestrator.from_settings(settings, store=store)


def create_app(
    settings: Settings | None = None,
    orchestrator: OutfitOrchestrator | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Application settings (defaults to get_settings()).
        orchestrator: Pre-built orchestrator; built from settings on startup if None.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        Handles startup and shutdown tasks:
        - Build the orchestrator (and database) on startup
        - Close HTTP clients and connections on shutdown
        """
        logger.info(f"Starting outfitgen v{__version__}")
        owned = app.state.orchestrator is None
        if owned:
            app.state.orchestrator = await build_orchestrator(settings)

        yield

        logger.info("Shutting down outfitgen")
        if owned:
            await app.state.orchestrator.close()
            app.state.orchestrator = None
            await close_db()

    app = FastAPI(
        title="outfitgen",
        description="Outfit image generation service",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(v1_router)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc: HTTPException):
        """Handle HTTP exceptions with consistent response format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "detail": None},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception(f"Unexpected error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.DEBUG else None,
            },
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Check application health.

        Returns status of:
        - Application
        - Database connection
        - Configured providers
        """
        db_healthy = await check_db_connection()
        current = app.state.orchestrator
        return HealthResponse(
            status="healthy" if db_healthy and current is not None else "degraded",
            version=__version__,
            database=db_healthy,
            providers={p.value: settings.has_provider(p) for p in ProviderType},
            cache_entries=current.cache_size if current is not None else 0,
        )

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """Root endpoint with basic info."""
        return {
            "name": "outfitgen",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


configure_logging(get_settings().LOG_LEVEL)
app = create_app()


# Entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "outfitgen.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().DEBUG,
    )
