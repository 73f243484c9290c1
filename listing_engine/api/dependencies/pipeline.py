"""
Dependencies that hand request handlers the objects built at startup.
"""

from os import getenv
from typing import Optional

from fastapi import Header, HTTPException

from listing_engine.models.manager import ModelManager
from listing_engine.pipeline.listing import ListingPipeline


def get_model_manager() -> ModelManager:
    """FastAPI dependency to get the model manager from app state."""
    from ..main import app_state
    return app_state["model_manager"]

def get_pipeline() -> ListingPipeline:
    """FastAPI dependency to get the listing pipeline from app state."""
    from ..main import app_state
    return app_state["pipeline"]

def verify_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Requires X-API-Key when the API_KEY env var is set; open otherwise."""
    expected = getenv("API_KEY")
    if expected and x_api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
