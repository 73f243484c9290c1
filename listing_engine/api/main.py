"""
FastAPI application entry point.

Builds the model manager and listing pipeline once at startup and exposes them
to the routers through dependencies.
"""

import logging
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from .routers import health, listing
from .dependencies.pipeline import verify_api_key
from listing_engine import __version__
from listing_engine.models.manager import ModelManager
from listing_engine.pipeline.listing import ListingPipeline
from listing_engine.utils.logging_config import configure_logging

logger = logging.getLogger(__name__)

# Global application state
app_state = {}

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Expensive, read-only resources are created once here and shared by every
    request; providers are closed at shutdown.
    """
    configure_logging()
    logger.info("Starting listing engine API server...")

    model_manager = ModelManager()
    app_state["model_manager"] = model_manager
    app_state["pipeline"] = ListingPipeline(model_manager)
    logger.info(f"Loaded config {model_manager.config_path} ({app_state['pipeline'].settings.variant} pipeline)")

    yield  # Server runs here

    logger.info("Shutting down listing engine API server...")
    await model_manager.cleanup()
    app_state.clear()

def create_app() -> FastAPI:
    """
    Factory function to create and configure the FastAPI application.
    """

    app = FastAPI(
        title="Listing Engine API",
        description="AI listing generation for eBay sellers: product photos in, listing payload out",
        version=__version__,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(
        listing.router,
        prefix="/api/v1/listing",
        tags=["listing"],
        dependencies=[Depends(verify_api_key)],
    )

    @app.get("/")
    async def root():
        """Root endpoint with basic API information."""
        return {
            "name": "Listing Engine API",
            "version": __version__,
            "status": "operational",
            "endpoints": {
                "health": "/health",
                "ready": "/health/ready",
                "listing": "/api/v1/listing",
                "docs": "/docs",
                "redoc": "/redoc"
            }
        }

    return app

# Create the FastAPI app instance
app = create_app()
