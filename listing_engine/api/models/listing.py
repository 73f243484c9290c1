"""
API models for the listing endpoints.

Request bodies use the camelCase field names the mobile app sends. Listing
payloads in responses are plain dicts produced by the pipeline's schema.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional

from .common import APIResponse


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ImagePayload(_CamelModel):
    image_base64: str = Field(..., alias="imageBase64", description="Base64 image bytes (a data URL is accepted)")
    mime_type: Optional[str] = Field(None, alias="mimeType", description="Defaults to image/jpeg")


class MarketComparablePayload(_CamelModel):
    price: float
    condition: Optional[str] = None
    title: Optional[str] = None


class ListingOptionsPayload(_CamelModel):
    market_data: List[MarketComparablePayload] = Field(default_factory=list, alias="marketData")
    seller_config: Dict[str, Any] = Field(default_factory=dict, alias="sellerConfig")
    user_provided_condition: Optional[str] = Field(None, alias="userProvidedCondition")


class AnalyzeImagesRequest(_CamelModel):
    images: List[ImagePayload] = Field(default_factory=list, description="Images of ONE product")
    options: ListingOptionsPayload = Field(default_factory=ListingOptionsPayload)

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "images": [{"imageBase64": "<base64>", "mimeType": "image/jpeg"}],
                "options": {
                    "marketData": [{"price": 54.99, "condition": "Good", "title": "Nike Air Max 90 size 10"}],
                    "sellerConfig": {"shippingPreference": "Buyer pays", "returnsAccepted": True},
                    "userProvidedCondition": "Good",
                },
            }
        },
    )


class AnalyzeImageRequest(_CamelModel):
    image_base64: str = Field(..., alias="imageBase64")
    mime_type: Optional[str] = Field(None, alias="mimeType")
    options: ListingOptionsPayload = Field(default_factory=ListingOptionsPayload)


class ListingResponse(APIResponse):
    """Successful analysis; data is the camelCase listing payload."""
    data: Dict[str, Any]


class InventoryItemRequest(_CamelModel):
    listing: Dict[str, Any] = Field(..., description="Listing payload returned by analyze-images")
    quantity: int = Field(1, ge=1)


class InventoryItemResponse(APIResponse):
    data: Dict[str, Any]
