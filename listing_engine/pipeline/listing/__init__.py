from .orchestrator import ListingPipeline
from .types import (
    ImageInput,
    ListingOptions,
    PhaseContext,
    PipelineOutcome,
    PipelineSettings,
    Rejected,
    RequiresReview,
    Success,
)
from .schema import ListingPayload
from .normalizer import normalize_listing
from .errors import EmptyResponseError, InvalidImageError, MissingFieldError, PipelineError

__all__ = [
    "ListingPipeline",
    "ImageInput",
    "ListingOptions",
    "PhaseContext",
    "PipelineOutcome",
    "PipelineSettings",
    "Rejected",
    "RequiresReview",
    "Success",
    "ListingPayload",
    "normalize_listing",
    "EmptyResponseError",
    "InvalidImageError",
    "MissingFieldError",
    "PipelineError",
]
