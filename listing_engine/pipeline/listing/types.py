from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
import secrets
import time

from .schema import ListingPayload

REJECTED_REASON = "EBAY_POLICY_VIOLATION"
REVIEW_REASON = "MANUAL_REVIEW_REQUIRED"

FULL_VARIANT = "full"
CONDENSED_VARIANT = "condensed"
VARIANTS = (FULL_VARIANT, CONDENSED_VARIANT)

DEFAULT_ALLOWED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")


def new_correlation_id() -> str:
    return f"listing-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


# Input types
@dataclass(frozen=True)
class ImageInput:
    data: bytes
    mime_type: str = "image/jpeg"
    index: int = 0

    @property
    def size_mb(self) -> float:
        return len(self.data) / (1024 * 1024)


@dataclass(frozen=True)
class MarketComparable:
    price: float
    condition: str = "Unknown"
    title: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["MarketComparable"]:
        try:
            price = float(data.get("price"))
        except (TypeError, ValueError):
            return None
        return cls(price=price, condition=str(data.get("condition") or "Unknown"), title=str(data.get("title") or ""))


@dataclass(frozen=True)
class ListingOptions:
    market_data: Tuple[MarketComparable, ...] = ()
    seller_config: Dict[str, Any] = field(default_factory=dict)
    user_provided_condition: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ListingOptions":
        """Build from the camelCase options bag sent by the app; unknown keys are ignored."""
        data = data or {}
        comparables = []
        for item in data.get("marketData") or []:
            if isinstance(item, Mapping):
                comparable = MarketComparable.from_dict(item)
                if comparable is not None:
                    comparables.append(comparable)
        condition = str(data.get("userProvidedCondition") or "").strip()
        return cls(
            market_data=tuple(comparables),
            seller_config=dict(data.get("sellerConfig") or {}),
            user_provided_condition=condition or None,
        )


@dataclass(frozen=True)
class PipelineSettings:
    variant: str = FULL_VARIANT
    image_triage: bool = False
    max_images: int = 16
    max_image_size_mb: float = 20.0
    allowed_mime_types: Tuple[str, ...] = DEFAULT_ALLOWED_MIME_TYPES

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "PipelineSettings":
        cfg = (config or {}).get("pipeline") or {}
        variant = cfg.get("variant", FULL_VARIANT)
        if variant not in VARIANTS:
            raise ValueError(f"Unknown pipeline variant: {variant}")
        return cls(
            variant=variant,
            image_triage=bool(cfg.get("image_triage", False)),
            max_images=int(cfg.get("max_images", 16)),
            max_image_size_mb=float(cfg.get("max_image_size_mb", 20.0)),
            allowed_mime_types=tuple(cfg.get("allowed_mime_types") or DEFAULT_ALLOWED_MIME_TYPES),
        )


# Per-run state
@dataclass
class PhaseContext:
    correlation_id: str
    images: List[ImageInput]
    options: ListingOptions = field(default_factory=ListingOptions)
    variant: str = FULL_VARIANT
    started_at: float = field(default_factory=time.perf_counter)
    selected_images: List[ImageInput] = field(default_factory=list)
    triage: Optional[Dict[str, Any]] = None
    grounding: Optional[Dict[str, Any]] = None
    physical: Optional[Dict[str, Any]] = None
    pricing: Optional[Dict[str, Any]] = None
    content: Optional[Dict[str, Any]] = None
    snapshot: Optional[Dict[str, Any]] = None
    listing: Optional[Dict[str, Any]] = None

    @property
    def working_images(self) -> List[ImageInput]:
        return self.selected_images or self.images

    @property
    def product(self) -> Dict[str, Any]:
        source = self.grounding or self.snapshot or {}
        product = source.get("productIdentification")
        return product if isinstance(product, dict) else {}

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)


# Output types
@dataclass(frozen=True)
class Success:
    payload: ListingPayload
    correlation_id: str
    processing_time_ms: int

    def to_response(self) -> Dict[str, Any]:
        return self.payload.to_dict()


@dataclass(frozen=True)
class Rejected:
    details: Dict[str, Any]
    correlation_id: str
    processing_time_ms: int
    reason: str = REJECTED_REASON

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": False,
            "rejected": True,
            "reason": self.reason,
            "details": self.details,
            "metadata": {"correlationId": self.correlation_id, "processingTime": self.processing_time_ms},
        }


@dataclass(frozen=True)
class RequiresReview:
    details: Dict[str, Any]
    correlation_id: str
    processing_time_ms: int
    reason: str = REVIEW_REASON

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": False,
            "rejected": False,
            "requiresReview": True,
            "reason": self.reason,
            "details": self.details,
            "metadata": {"correlationId": self.correlation_id, "processingTime": self.processing_time_ms},
        }


PipelineOutcome = Union[Success, Rejected, RequiresReview]
