from __future__ import annotations
from typing import Any, Dict, Mapping, Optional, Sequence
import logging

from ...models.manager import ModelManager
from ...utils.retry import RetryExecutor
from . import rules
from .normalizer import normalize_listing
from .phases import CONTENT_GENERATION, LISTING_FROM_SNAPSHOT, ListingPhases
from .types import (
    CONDENSED_VARIANT,
    FULL_VARIANT,
    VARIANTS,
    ImageInput,
    ListingOptions,
    PhaseContext,
    PipelineOutcome,
    PipelineSettings,
    Rejected,
    RequiresReview,
    Success,
    new_correlation_id,
)
from .validation import decode_images, validate_images
from .vision_caller import VisionCaller

logger = logging.getLogger(__name__)


class ListingPipeline:
    """
    Turns product photos into a listing.

    Built once at startup and shared across requests; everything a run mutates
    lives in its own PhaseContext.
    """

    def __init__(
        self,
        manager: ModelManager,
        settings: Optional[PipelineSettings] = None,
        retry: Optional[RetryExecutor] = None,
        caller: Optional[VisionCaller] = None,
    ):
        self.model_manager = manager
        self.settings = settings or PipelineSettings.from_config(manager.config)
        self.retry = retry or RetryExecutor.from_config(manager.config.get("retry"))
        self.phases = ListingPhases(caller or VisionCaller(manager), self.retry)

    def _model_version(self, variant: str) -> str:
        task = CONTENT_GENERATION.task if variant == FULL_VARIANT else LISTING_FROM_SNAPSHOT.task
        try:
            return self.model_manager.task(task).model
        except ValueError:
            return "unknown"

    async def analyze(
        self,
        images: Sequence[Mapping[str, Any]],
        options: Optional[Mapping[str, Any]] = None,
        correlation_id: Optional[str] = None,
        variant: Optional[str] = None,
    ) -> PipelineOutcome:
        """Entry point for base64 image payloads: [{"imageBase64", "mimeType"}, ...]."""
        decoded = decode_images(images, self.settings)
        return await self.run(decoded, ListingOptions.from_dict(options), correlation_id=correlation_id, variant=variant)

    async def run(
        self,
        images: Sequence[ImageInput],
        options: Optional[ListingOptions] = None,
        correlation_id: Optional[str] = None,
        variant: Optional[str] = None,
    ) -> PipelineOutcome:
        variant = variant or self.settings.variant
        if variant not in VARIANTS:
            raise ValueError(f"Unknown pipeline variant: {variant}")
        validate_images(images, self.settings)

        ctx = PhaseContext(
            correlation_id=correlation_id or new_correlation_id(),
            images=list(images),
            options=options or ListingOptions(),
            variant=variant,
        )
        logger.info(f"[{ctx.correlation_id}] starting {variant} listing analysis with {len(ctx.images)} images")

        if variant == CONDENSED_VARIANT:
            outcome = await self._run_condensed(ctx)
        else:
            outcome = await self._run_full(ctx)

        logger.info(f"[{ctx.correlation_id}] listing analysis finished: {type(outcome).__name__} in {outcome.processing_time_ms}ms")
        return outcome

    async def _run_full(self, ctx: PhaseContext) -> PipelineOutcome:
        if self.settings.image_triage:
            await self.phases.image_triage(ctx)

        grounding = await self.phases.grounding(ctx)
        gate = self._gate(ctx, grounding, review=True)
        if gate is not None:
            return gate

        physical = await self.phases.physical_attributes(ctx)
        pricing = await self.phases.pricing(ctx)
        content = await self.phases.content_generation(ctx)

        merged = {
            "productIdentification": grounding.get("productIdentification"),
            "title": content.get("title"),
            "subtitle": content.get("subtitle"),
            "description": content.get("description"),
            "condition": physical.get("condition"),
            "weight": physical.get("weight"),
            "dimensions": physical.get("dimensions"),
            "pricing": pricing.get("pricing"),
            "shipping": pricing.get("shipping"),
            "itemSpecifics": content.get("itemSpecifics"),
            "seoOptimization": content.get("seoOptimization"),
            "listingRecommendations": content.get("listingRecommendations"),
            "qualityChecks": physical.get("qualityChecks"),
            "complianceFlags": content.get("complianceFlags"),
            "legalDisclaimers": content.get("legalDisclaimers"),
        }
        return self._assemble(ctx, merged)

    async def _run_condensed(self, ctx: PhaseContext) -> PipelineOutcome:
        snapshot = await self.phases.visual_snapshot(ctx)
        gate = self._gate(ctx, snapshot, review=False)
        if gate is not None:
            return gate

        listing = await self.phases.listing_from_snapshot(ctx)
        return self._assemble(ctx, listing)

    def _gate(self, ctx: PhaseContext, grounding: Dict[str, Any], review: bool) -> Optional[PipelineOutcome]:
        cid = ctx.correlation_id
        if not rules.is_compliant(grounding):
            compliance = rules.section(grounding, "compliance")
            logger.warning(
                f"[{cid}] rejected: eBay policy violation "
                f"(category={compliance.get('violationCategory')}, reason={compliance.get('reason')})"
            )
            return Rejected(details=grounding, correlation_id=cid, processing_time_ms=ctx.elapsed_ms())

        if review:
            reasons = rules.review_reasons(grounding)
            if reasons:
                logger.info(f"[{cid}] manual review required: {'; '.join(reasons)}")
                return RequiresReview(details=grounding, correlation_id=cid, processing_time_ms=ctx.elapsed_ms())
        return None

    def _assemble(self, ctx: PhaseContext, merged: Dict[str, Any]) -> Success:
        elapsed = ctx.elapsed_ms()
        payload = normalize_listing(
            merged,
            model_version=self._model_version(ctx.variant),
            processing_time_ms=elapsed,
            correlation_id=ctx.correlation_id,
            variant=ctx.variant,
        )
        logger.info(
            f"[{ctx.correlation_id}] listing assembled: brand={payload.product_identification.brand}, "
            f"category={payload.product_identification.category}, price={payload.pricing.suggested_price}"
        )
        return Success(payload=payload, correlation_id=ctx.correlation_id, processing_time_ms=elapsed)
