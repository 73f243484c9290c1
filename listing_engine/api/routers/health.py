"""
Health check endpoints for monitoring and diagnostics.
"""

import time
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..models.common import HealthStatus
from ..dependencies.pipeline import get_model_manager
from listing_engine import __version__
from listing_engine.models.manager import ModelManager

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()

@router.get("", response_model=HealthStatus)
async def health_check(model_manager: ModelManager = Depends(get_model_manager)):
    """
    Basic health check endpoint.

    Reports configured providers and tasks without calling any model.
    """
    uptime = time.time() - _server_start_time

    dependencies = {
        f"provider:{name}": type(provider).__name__
        for name, provider in model_manager.providers.items()
    }
    dependencies["tasks"] = ", ".join(sorted(model_manager.tasks))
    dependencies["prompts"] = str(len(model_manager.prompts.refs))

    return HealthStatus(
        status="healthy",
        version=__version__,
        uptime=uptime,
        dependencies=dependencies
    )

@router.get("/ready")
async def readiness_check(model_manager: ModelManager = Depends(get_model_manager)):
    """
    Readiness probe for container deployments.

    Returns 200 only when every configured provider answers its health check.
    """
    providers = await model_manager.health_check()
    if not all(providers.values()):
        down = [name for name, ok in providers.items() if not ok]
        return JSONResponse(status_code=503, content={"ready": False, "reason": f"Providers unavailable: {', '.join(down)}"})

    return {"ready": True, "message": "Service ready to handle requests"}
