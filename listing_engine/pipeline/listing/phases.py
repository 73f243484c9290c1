"""
Listing pipeline phases.

Each phase renders its prompt from the run's PhaseContext, calls the model
through the RetryExecutor, reduces the reply to a JSON object, checks the
phase's required top-level fields and applies the deterministic business rules.
The model call, parse and field check form one retried unit, so a reply that
fails to parse gets another sample.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
import asyncio
import json
import logging

from ...models.providers.base import ModelError
from ...utils.json_sanitizer import MalformedResponseError, parse_json_object
from ...utils.retry import RetryExecutor
from . import rules
from .errors import MissingFieldError, PipelineError
from .normalizer import is_placeholder, normalize_item_specifics
from .types import ImageInput, PhaseContext
from .vision_caller import VisionCaller

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhaseSpec:
    name: str
    task: str #task name in config.yaml
    prompt_ref: str
    required_fields: Tuple[str, ...]
    with_images: bool = True


IMAGE_TRIAGE = PhaseSpec("image_triage", "image_triage", "listing/triage@v1", ("images", "summary"))
GROUNDING = PhaseSpec("grounding", "grounding", "listing/grounding@v1", ("productIdentification", "compliance"))
PHYSICAL_ATTRIBUTES = PhaseSpec("physical_attributes", "physical_attributes", "listing/attributes@v1", ("weight", "condition"))
PRICING = PhaseSpec("pricing", "pricing", "listing/pricing@v1", ("pricing",), with_images=False)
CONTENT_GENERATION = PhaseSpec("content_generation", "content_generation", "listing/content@v1", ("title",), with_images=False)
VISUAL_SNAPSHOT = PhaseSpec("visual_snapshot", "visual_snapshot", "listing/snapshot@v1", ("productIdentification", "compliance"))
LISTING_FROM_SNAPSHOT = PhaseSpec("listing_from_snapshot", "listing_from_snapshot", "listing/from_snapshot@v1", ("title",), with_images=False)

PHASES = {
    spec.name: spec
    for spec in (IMAGE_TRIAGE, GROUNDING, PHYSICAL_ATTRIBUTES, PRICING, CONTENT_GENERATION, VISUAL_SNAPSHOT, LISTING_FROM_SNAPSHOT)
}


def require_fields(phase: str, data: Dict[str, Any], required: Sequence[str]) -> None:
    missing = [key for key in required if key not in data or data[key] is None or data[key] == ""]
    if missing:
        raise MissingFieldError(phase, missing)


def _identity(product: Mapping[str, Any]) -> Dict[str, str]:
    brand = product.get("brand")
    model = product.get("model")
    category = product.get("category")
    return {
        "brand": "Unbranded" if is_placeholder(brand) else str(brand),
        "model": "Unknown" if is_placeholder(model) else str(model),
        "category": "Other" if is_placeholder(category) else str(category),
    }


def _condition_label(condition: Mapping[str, Any]) -> str:
    for key in ("userOverride", "grade"):
        value = condition.get(key)
        if not is_placeholder(value):
            return str(value)
    return rules.DEFAULT_CONDITION_GRADE


def _condition_block(value: Any) -> Dict[str, Any]:
    # a bare "Good" is a grade without the rest of the block
    if isinstance(value, str) and value.strip():
        return {"grade": value.strip()}
    return dict(rules.as_mapping(value))


def _flaws(condition: Mapping[str, Any]) -> List[str]:
    flaws = condition.get("flaws")
    return [str(flaw) for flaw in flaws] if isinstance(flaws, list) else []


def _weight_reference_lines() -> List[str]:
    return [f"{keyword}: {low:g}-{high:g} lbs" for keyword, (low, high) in rules.WEIGHT_REFERENCE_LBS.items()]


def _condition_band_lines() -> List[str]:
    lines = []
    for grade in rules.CONDITION_GRADES:
        low, high = rules.CONDITION_SCORE_BANDS[grade]
        lines.append(f"{grade} ({low:g})" if low == high else f"{grade} ({low:g}-{high:g})")
    return lines


class ListingPhases:
    def __init__(self, caller: VisionCaller, retry: RetryExecutor):
        self.caller = caller
        self.retry = retry

    async def _run(self, spec: PhaseSpec, ctx: PhaseContext, variables: Dict[str, Any], images: Sequence[ImageInput] = ()) -> Dict[str, Any]:
        cid = ctx.correlation_id

        async def attempt() -> Dict[str, Any]:
            text = await self.caller.call(
                task=spec.task,
                prompt_ref=spec.prompt_ref,
                variables=variables,
                images=images if spec.with_images else (),
                correlation_id=cid,
            )
            data = parse_json_object(text, correlation_id=cid)
            require_fields(spec.name, data, spec.required_fields)
            return data

        logger.info(f"[{cid}] starting phase {spec.name}")
        return await self.retry.execute(attempt, name=spec.name, correlation_id=cid)

    # Full variant

    async def image_triage(self, ctx: PhaseContext) -> List[ImageInput]:
        """
        Score the images and keep the recommended subset. Any failure falls back
        to the full image set, and an empty recommendation to the first image.
        """
        cid = ctx.correlation_id
        variables = {"image_count": len(ctx.images), "max_recommended": 3}
        try:
            result = await self._run(IMAGE_TRIAGE, ctx, variables, ctx.images)
        except (ModelError, PipelineError, MalformedResponseError, asyncio.TimeoutError) as e:
            logger.error(f"[{cid}] image_triage failed, continuing with all images: {e}")
            ctx.selected_images = list(ctx.images)
            return ctx.selected_images

        ctx.triage = result
        summary = rules.section(result, "summary")
        indexes = summary.get("recommendedForAI")
        recommended = set()
        for index in indexes if isinstance(indexes, list) else []:
            number = rules.parse_float(index)
            if number is not None:
                recommended.add(int(number))

        selected = [img for img in ctx.images if img.index in recommended]
        if not selected:
            logger.warning(f"[{cid}] image_triage rejected all images, using the first one")
            selected = [ctx.images[0]]
        ctx.selected_images = selected
        logger.info(f"[{cid}] image_triage complete: usable={summary.get('usableImages')}, selected={len(selected)}")
        return selected

    async def grounding(self, ctx: PhaseContext) -> Dict[str, Any]:
        variables = {"prohibited_categories": list(rules.PROHIBITED_CATEGORIES)}
        result = await self._run(GROUNDING, ctx, variables, ctx.working_images)
        ctx.grounding = result
        logger.info(
            f"[{ctx.correlation_id}] grounding complete: compliant={rules.section(result, 'compliance').get('isEbayCompliant')}, "
            f"confidence={rules.section(result, 'productIdentification').get('confidence')}"
        )
        return result

    async def physical_attributes(self, ctx: PhaseContext) -> Dict[str, Any]:
        identity = _identity(ctx.product)
        reference = rules.weight_reference_for(identity["category"])
        variables = {
            **identity,
            "category_reference": f"{reference[0]:g}-{reference[1]:g} lbs" if reference else None,
            "weight_reference": _weight_reference_lines(),
            "packaging_percent": round((rules.PACKAGING_FACTOR - 1) * 100),
            "condition_bands": _condition_band_lines(),
            "user_condition": ctx.options.user_provided_condition,
        }
        result = await self._run(PHYSICAL_ATTRIBUTES, ctx, variables, ctx.working_images)

        result["weight"] = rules.complete_weight(result.get("weight"))
        condition = _condition_block(result.get("condition"))
        canonical = rules.canonical_condition_grade(condition.get("grade"))
        if canonical:
            condition["grade"] = canonical
        if rules.parse_float(condition.get("numericScore")) is None:
            condition["numericScore"] = rules.default_score_for_grade(condition.get("grade"))
        if ctx.options.user_provided_condition:
            condition["userOverride"] = ctx.options.user_provided_condition
        result["condition"] = condition

        ctx.physical = result
        logger.info(
            f"[{ctx.correlation_id}] physical_attributes complete: weight={result['weight'].get('estimatedLbs')} lbs, "
            f"condition={condition.get('grade')}"
        )
        return result

    async def pricing(self, ctx: PhaseContext) -> Dict[str, Any]:
        condition = rules.section(ctx.physical, "condition")
        weight = rules.section(ctx.physical, "weight")
        seller = ctx.options.seller_config
        grade = _condition_label(condition)
        variables = {
            **_identity(ctx.product),
            "condition": grade,
            "numeric_score": condition.get("numericScore"),
            "weight_lbs": weight.get("estimatedLbs") or 0,
            "comparables": rules.format_comparables(ctx.options.market_data),
            "comparables_count": len(ctx.options.market_data),
            "condition_factor_percent": round((1 - rules.price_factor_for_grade(grade)) * 100),
            "best_offer_min_price": rules.BEST_OFFER_MIN_PRICE,
            "shipping_preference": seller.get("shippingPreference") or "Buyer pays",
            "returns_accepted": bool(seller.get("returnsAccepted")),
        }
        result = await self._run(PRICING, ctx, variables)
        result["pricing"] = rules.apply_pricing_rules(result.get("pricing"), len(ctx.options.market_data))

        ctx.pricing = result
        strategy = result["pricing"].get("strategyRecommendation") or {}
        logger.info(
            f"[{ctx.correlation_id}] pricing complete: price={result['pricing'].get('suggestedPrice')}, "
            f"format={strategy.get('listingFormat')}"
        )
        return result

    async def content_generation(self, ctx: PhaseContext) -> Dict[str, Any]:
        condition = rules.section(ctx.physical, "condition")
        identity = _identity(ctx.product)
        grade = _condition_label(condition)
        variables = {
            **identity,
            "condition": grade,
            "numeric_score": condition.get("numericScore"),
            "price": rules.section(ctx.pricing, "pricing").get("suggestedPrice") or 0,
            "weight_lbs": rules.section(ctx.physical, "weight").get("estimatedLbs") or 0,
            "flaws": _flaws(condition),
            "title_max_length": rules.TITLE_MAX_LENGTH,
            "seller_config": ctx.options.seller_config,
        }
        result = await self._run(CONTENT_GENERATION, ctx, variables)
        self._finish_content(result, identity["brand"], identity["model"], grade)

        ctx.content = result
        logger.info(
            f"[{ctx.correlation_id}] content_generation complete: title_length={len(result['title'])}, "
            f"item_specifics={len(result['itemSpecifics'])}"
        )
        return result

    # Condensed variant

    async def visual_snapshot(self, ctx: PhaseContext) -> Dict[str, Any]:
        variables = {
            "prohibited_categories": list(rules.PROHIBITED_CATEGORIES),
            "weight_reference": _weight_reference_lines(),
            "packaging_percent": round((rules.PACKAGING_FACTOR - 1) * 100),
            "condition_grades": list(rules.CONDITION_GRADES),
        }
        result = await self._run(VISUAL_SNAPSHOT, ctx, variables, ctx.working_images)
        if result.get("weight") is not None:
            result["weight"] = rules.complete_weight(result["weight"])
        condition = _condition_block(result.get("condition"))
        if ctx.options.user_provided_condition:
            condition["userOverride"] = ctx.options.user_provided_condition
        if condition:
            result["condition"] = condition

        ctx.snapshot = result
        product = rules.section(result, "productIdentification")
        logger.info(
            f"[{ctx.correlation_id}] visual_snapshot complete: brand={product.get('brand')}, "
            f"model={product.get('model')}, compliant={rules.section(result, 'compliance').get('isEbayCompliant')}"
        )
        return result

    async def listing_from_snapshot(self, ctx: PhaseContext) -> Dict[str, Any]:
        snapshot = ctx.snapshot or {}
        product = rules.section(snapshot, "productIdentification")
        identity = _identity(product)
        condition = _condition_block(snapshot.get("condition"))
        seller = ctx.options.seller_config
        variables = {
            **identity,
            "snapshot_json": json.dumps(snapshot, indent=2, default=str),
            "comparables": rules.format_comparables(ctx.options.market_data),
            "comparables_count": len(ctx.options.market_data),
            "best_offer_min_price": rules.BEST_OFFER_MIN_PRICE,
            "title_max_length": rules.TITLE_MAX_LENGTH,
            "shipping_preference": seller.get("shippingPreference") or "Buyer pays",
            "returns_accepted": bool(seller.get("returnsAccepted")),
        }
        result = await self._run(LISTING_FROM_SNAPSHOT, ctx, variables)

        listed_condition = _condition_block(result.get("condition"))
        grade = _condition_label(listed_condition or condition)
        self._finish_content(result, identity["brand"], identity["model"], grade)

        # blocks the listing call dropped come from the snapshot
        if not isinstance(result.get("productIdentification"), dict):
            result["productIdentification"] = {**identity, "upc": product.get("upc"), "mpn": product.get("mpn")}
        if not isinstance(result.get("condition"), dict):
            result["condition"] = listed_condition or {"grade": condition.get("grade"), "flaws": _flaws(condition)}
        if condition.get("userOverride"):
            result["condition"] = {**result["condition"], "userOverride": condition["userOverride"]}
        weight = result.get("weight")
        result["weight"] = rules.complete_weight(weight if isinstance(weight, dict) else snapshot.get("weight"))
        if not isinstance(result.get("dimensions"), dict):
            result["dimensions"] = dict(rules.section(snapshot, "dimensions"))
        result["pricing"] = rules.apply_pricing_rules(result.get("pricing"), len(ctx.options.market_data))

        ctx.listing = result
        keywords = rules.section(result, "seo").get("keywords")
        logger.info(
            f"[{ctx.correlation_id}] listing_from_snapshot complete: title_length={len(result['title'])}, "
            f"keywords={len(keywords) if isinstance(keywords, list) else 0}"
        )
        return result

    @staticmethod
    def _finish_content(result: Dict[str, Any], brand: str, model: str, condition: str) -> None:
        result["itemSpecifics"] = normalize_item_specifics(result.get("itemSpecifics"), brand, model, condition)
        result["title"] = rules.truncate_title(str(result.get("title") or ""))
