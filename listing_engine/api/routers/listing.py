"""
Listing generation endpoints.

Domain outcomes map to status codes: Success 200, Rejected 403, RequiresReview 422.
Caller input problems come back as 400/413/415 before any model call is made.
"""

import logging
from os import getenv
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..models.common import APIError
from ..models.listing import (
    AnalyzeImageRequest,
    AnalyzeImagesRequest,
    InventoryItemRequest,
    InventoryItemResponse,
    ListingResponse,
)
from ..dependencies.pipeline import get_pipeline
from listing_engine.pipeline.listing import (
    InvalidImageError,
    ListingPayload,
    ListingPipeline,
    PipelineOutcome,
    Rejected,
    RequiresReview,
)
from listing_engine.pipeline.listing import rules
from listing_engine.pipeline.listing.marketplace import build_inventory_item
from listing_engine.pipeline.listing.types import new_correlation_id

logger = logging.getLogger(__name__)

router = APIRouter()

Variant = Optional[Literal["full", "condensed"]]


def _is_development() -> bool:
    return getenv("APP_ENV", "production").lower() == "development"


def _error(status_code: int, message: str, error_code: str, details: Optional[dict] = None) -> JSONResponse:
    body = APIError(error=message, error_code=error_code, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _outcome_response(outcome: PipelineOutcome) -> JSONResponse:
    if isinstance(outcome, Rejected):
        compliance = rules.section(outcome.details, "compliance")
        return JSONResponse(status_code=403, content={
            **outcome.to_response(),
            "error": "Product rejected: eBay policy violation",
            "guidance": compliance.get("reason") or "This item cannot be sold on eBay",
        })
    if isinstance(outcome, RequiresReview):
        recommendations = rules.section(outcome.details, "recommendations")
        return JSONResponse(status_code=422, content={
            **outcome.to_response(),
            "error": "Product requires manual review",
            "guidance": recommendations.get("guidance") or "Please verify product details manually",
        })
    body = ListingResponse(success=True, message="Analysis successful", data=outcome.to_response())
    return JSONResponse(status_code=200, content=body.model_dump(mode="json"))


async def _analyze(pipeline: ListingPipeline, images: list, options: dict, variant: Variant) -> JSONResponse:
    correlation_id = new_correlation_id()
    try:
        outcome = await pipeline.analyze(images, options, correlation_id=correlation_id, variant=variant)
    except InvalidImageError as e:
        logger.info(f"[{correlation_id}] rejected input: {e}")
        return _error(e.status_code, str(e), e.error_code)
    except Exception as e:
        logger.exception(f"[{correlation_id}] listing analysis failed: {e}")
        details = {"correlationId": correlation_id}
        if _is_development():
            details["message"] = str(e)
            details["type"] = type(e).__name__
        return _error(500, "AI image analysis failed", "ANALYSIS_FAILED", details)
    return _outcome_response(outcome)


@router.post("/analyze-images")
async def analyze_images(
    request: AnalyzeImagesRequest,
    variant: Variant = Query(None, description="Override the configured pipeline variant"),
    pipeline: ListingPipeline = Depends(get_pipeline),
):
    """
    Analyze several images of the SAME product and return a listing.

    The pipeline either produces a full listing, rejects the item on policy
    grounds, or asks for manual review.
    """
    images = [img.model_dump(by_alias=True) for img in request.images]
    options = request.options.model_dump(by_alias=True)
    return await _analyze(pipeline, images, options, variant)


@router.post("/analyze-image")
async def analyze_image(
    request: AnalyzeImageRequest,
    variant: Variant = Query(None),
    pipeline: ListingPipeline = Depends(get_pipeline),
):
    """Single image is just an analyze-images call with one element."""
    images = [{"imageBase64": request.image_base64, "mimeType": request.mime_type}]
    return await _analyze(pipeline, images, request.options.model_dump(by_alias=True), variant)


@router.post("/inventory-item", response_model=InventoryItemResponse)
async def inventory_item(request: InventoryItemRequest):
    """Convert a listing payload into an Inventory API inventory-item body."""
    try:
        payload = ListingPayload.model_validate(request.listing)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid listing payload: {e.error_count()} errors")
    return InventoryItemResponse(success=True, message="Inventory item built", data=build_inventory_item(payload, request.quantity))
