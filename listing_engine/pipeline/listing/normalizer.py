from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union
import logging

from . import rules
from .schema import (
    ComplianceFlags,
    Condition,
    DEFAULT_DISCLAIMERS,
    Description,
    Dimensions,
    LegalDisclaimers,
    ListingMetadata,
    ListingPayload,
    ListingRecommendations,
    MarketAnalysis,
    PriceRange,
    Pricing,
    ProductIdentification,
    PromotedListings,
    QualityChecks,
    SeoOptimization,
    Shipping,
    StrategyRecommendation,
    Weight,
)

logger = logging.getLogger(__name__)

# values models echo back from the prompt's JSON template instead of real data
PLACEHOLDER_VALUES = frozenset({"null", "string", "undefined", "none", "n/a"})
REQUIRED_ITEM_SPECIFICS = ("Brand", "Model", "Condition")

ItemSpecificValue = Union[str, List[str]]


def is_placeholder(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        text = value.strip()
        return not text or text.lower() in PLACEHOLDER_VALUES
    return False


def _text(value: Any, default: str) -> str:
    if is_placeholder(value) or isinstance(value, (dict, list, bool)):
        return default
    return str(value).strip()


def _number(value: Any, default: float) -> float:
    number = rules.parse_float(value)
    return default if number is None else number


def _flag(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return default


def _str_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item).strip() for item in value if not is_placeholder(item) and not isinstance(item, (dict, list))]


def _first(*values: Any) -> Any:
    for value in values:
        if not is_placeholder(value):
            return value
    return None


def normalize_item_specifics(raw: Any, brand: str, model: str, condition: str) -> Dict[str, ItemSpecificValue]:
    """
    Fill Brand/Model/Condition from the upstream identity, then drop every
    placeholder entry. Values end up as strings or lists of strings.
    """
    specifics: Dict[str, Any] = dict(raw) if isinstance(raw, Mapping) else {}
    fallbacks = {"Brand": brand, "Model": model, "Condition": condition}
    for key, fallback in fallbacks.items():
        if is_placeholder(specifics.get(key)):
            specifics[key] = fallback

    cleaned: Dict[str, ItemSpecificValue] = {}
    for key, value in specifics.items():
        if is_placeholder(key):
            continue
        if isinstance(value, (list, tuple)):
            values = _str_list(value)
            if values:
                cleaned[str(key)] = values
        elif isinstance(value, Mapping) or is_placeholder(value):
            continue
        elif isinstance(value, bool):
            cleaned[str(key)] = "Yes" if value else "No"
        else:
            cleaned[str(key)] = str(value).strip()
    return cleaned


def _product_identification(data: Mapping[str, Any]) -> ProductIdentification:
    pid = rules.section(data, "productIdentification")
    defaults = ProductIdentification()
    return ProductIdentification(
        brand=_text(pid.get("brand"), defaults.brand),
        model=_text(pid.get("model"), defaults.model),
        category=_text(_first(pid.get("category"), data.get("category")), defaults.category),
        upc=_text(pid.get("upc"), defaults.upc),
        mpn=_text(pid.get("mpn"), defaults.mpn),
    )


def _description(data: Mapping[str, Any]) -> Description:
    raw = data.get("description")
    defaults = Description()
    if isinstance(raw, Mapping):
        structure = raw.get("structure")
        return Description(
            plain_text=_text(raw.get("plainText"), defaults.plain_text),
            structure=dict(structure) if isinstance(structure, Mapping) else {},
        )
    return Description(plain_text=_text(raw, defaults.plain_text))


def _condition(data: Mapping[str, Any]) -> Condition:
    raw = rules.section(data, "condition")
    grade_text = _text(raw.get("grade"), rules.DEFAULT_CONDITION_GRADE)
    grade = rules.canonical_condition_grade(grade_text) or grade_text
    return Condition(
        grade=grade,
        numeric_score=_number(raw.get("numericScore"), rules.default_score_for_grade(grade)),
        description=_text(raw.get("description"), ""),
        flaws=_str_list(raw.get("flaws")),
        user_override=_text(raw.get("userOverride"), ""),
    )


def _weight(data: Mapping[str, Any]) -> Weight:
    raw = rules.complete_weight(data.get("weight"))
    defaults = Weight()
    confidence = _text(raw.get("confidenceLevel"), defaults.confidence_level).lower()
    return Weight(
        estimated_lbs=_number(raw.get("estimatedLbs"), defaults.estimated_lbs),
        estimated_oz=_number(raw.get("estimatedOz"), defaults.estimated_oz),
        estimated_kg=_number(raw.get("estimatedKg"), defaults.estimated_kg),
        confidence_level=confidence,
        requires_manual_verification=confidence == "low" or _flag(raw.get("requiresManualVerification"), True),
        rationale=_text(raw.get("rationale"), defaults.rationale),
    )


def _dimensions(data: Mapping[str, Any]) -> Dimensions:
    raw = rules.section(data, "dimensions")
    defaults = Dimensions()
    return Dimensions(
        length=_number(raw.get("length"), defaults.length),
        width=_number(raw.get("width"), defaults.width),
        height=_number(raw.get("height"), defaults.height),
        unit=_text(raw.get("unit"), defaults.unit),
        confidence_level=_text(raw.get("confidenceLevel"), defaults.confidence_level).lower(),
    )


def _pricing(data: Mapping[str, Any]) -> Pricing:
    raw = rules.section(data, "pricing")
    price_range = rules.section(raw, "priceRange")
    analysis = rules.section(raw, "marketAnalysis")
    strategy = rules.section(raw, "strategyRecommendation")

    p = Pricing()
    a = MarketAnalysis()
    s = StrategyRecommendation()
    return Pricing(
        suggested_price=_number(raw.get("suggestedPrice"), p.suggested_price),
        price_range=PriceRange(
            min=_number(price_range.get("min"), 0.0),
            max=_number(price_range.get("max"), 0.0),
        ),
        currency=_text(raw.get("currency"), p.currency),
        confidence_score=_number(raw.get("confidenceScore"), p.confidence_score),
        rationale=_text(raw.get("rationale"), p.rationale),
        market_data_available=_flag(raw.get("marketDataAvailable"), p.market_data_available),
        market_analysis=MarketAnalysis(
            sold_listings_analyzed=int(_number(analysis.get("soldListingsAnalyzed"), a.sold_listings_analyzed)),
            average_sold_price=_number(analysis.get("averageSoldPrice"), a.average_sold_price),
            price_distribution=_text(analysis.get("priceDistribution"), a.price_distribution),
            competitive_position=_text(analysis.get("competitivePosition"), a.competitive_position),
        ),
        strategy_recommendation=StrategyRecommendation(
            listing_format=_text(strategy.get("listingFormat"), s.listing_format),
            auction_start_price=_number(strategy.get("auctionStartPrice"), s.auction_start_price),
            best_offer_enabled=_flag(strategy.get("bestOfferEnabled"), s.best_offer_enabled),
            best_offer_auto_accept=_number(strategy.get("bestOfferAutoAccept"), s.best_offer_auto_accept),
            best_offer_auto_decline=_number(strategy.get("bestOfferAutoDecline"), s.best_offer_auto_decline),
            shipping_strategy=_text(strategy.get("shippingStrategy"), s.shipping_strategy),
            reasoning=_text(strategy.get("reasoning"), s.reasoning),
        ),
    )


def _shipping(data: Mapping[str, Any]) -> Shipping:
    raw = rules.section(data, "shipping")
    d = Shipping()
    return Shipping(
        recommended_service=_text(_first(raw.get("recommendedService"), raw.get("service")), d.recommended_service),
        estimated_cost=_number(raw.get("estimatedCost"), d.estimated_cost),
        handling_time=_text(raw.get("handlingTime"), d.handling_time),
        package_type=_text(raw.get("packageType"), d.package_type),
        requires_signature=_flag(raw.get("requiresSignature"), d.requires_signature),
        fragile=_flag(raw.get("fragile"), d.fragile),
        seller_template_match=_text(raw.get("sellerTemplateMatch"), d.seller_template_match),
    )


def _seo(data: Mapping[str, Any]) -> SeoOptimization:
    raw = rules.section(data, "seoOptimization")
    compact = rules.section(data, "seo")
    return SeoOptimization(
        primary_keywords=_str_list(raw.get("primaryKeywords")) or _str_list(data.get("seoKeywords")) or _str_list(compact.get("keywords")),
        secondary_keywords=_str_list(raw.get("secondaryKeywords")),
        longtail_keywords=_str_list(raw.get("longtailKeywords")),
        competitor_keywords=_str_list(raw.get("competitorKeywords")),
        search_volume=_text(raw.get("searchVolume"), SeoOptimization().search_volume),
    )


def _listing_recommendations(data: Mapping[str, Any]) -> ListingRecommendations:
    raw = rules.section(data, "listingRecommendations")
    promoted = rules.section(raw, "promotedListings")
    d = ListingRecommendations()
    pd = PromotedListings()
    return ListingRecommendations(
        best_offer_enabled=_flag(raw.get("bestOfferEnabled"), d.best_offer_enabled),
        international_shipping=_flag(raw.get("internationalShipping"), d.international_shipping),
        returns_accepted=_flag(raw.get("returnsAccepted"), d.returns_accepted),
        return_period=_text(raw.get("returnPeriod"), d.return_period),
        return_shipping_paid_by=_text(raw.get("returnShippingPaidBy"), d.return_shipping_paid_by),
        promoted_listings=PromotedListings(
            recommended=_flag(promoted.get("recommended"), pd.recommended),
            suggested_ad_rate=_text(promoted.get("suggestedAdRate"), pd.suggested_ad_rate),
            reasoning=_text(promoted.get("reasoning"), pd.reasoning),
        ),
    )


def _quality_checks(data: Mapping[str, Any]) -> QualityChecks:
    raw = rules.section(data, "qualityChecks")
    d = QualityChecks()
    return QualityChecks(
        image_quality=_text(raw.get("imageQuality"), d.image_quality),
        image_quality_notes=_text(raw.get("imageQualityNotes"), d.image_quality_notes),
        information_completeness=_number(raw.get("informationCompleteness"), d.information_completeness),
        missing_information=_str_list(raw.get("missingInformation")),
        recommended_additional_photos=_str_list(raw.get("recommendedAdditionalPhotos")),
    )


def _compliance_flags(data: Mapping[str, Any]) -> ComplianceFlags:
    raw = rules.section(data, "complianceFlags")
    d = ComplianceFlags()
    return ComplianceFlags(
        brand_authenticity=_text(raw.get("brandAuthenticity"), d.brand_authenticity),
        prohibited_items=_flag(raw.get("prohibitedItems"), d.prohibited_items),
        restricted_categories=_flag(raw.get("restrictedCategories"), d.restricted_categories),
        requires_additional_disclosures=_flag(raw.get("requiresAdditionalDisclosures"), d.requires_additional_disclosures),
        warnings=_str_list(raw.get("warnings")),
    )


def _legal_disclaimers(data: Mapping[str, Any]) -> LegalDisclaimers:
    raw = rules.section(data, "legalDisclaimers")
    return LegalDisclaimers(**{key: _text(raw.get(key), text) for key, text in DEFAULT_DISCLAIMERS.items()})


def normalize_listing(
    data: Optional[Mapping[str, Any]],
    *,
    model_version: str = "unknown",
    processing_time_ms: int = 0,
    correlation_id: str = "",
    variant: str = "full",
    generated_at: Optional[datetime] = None,
) -> ListingPayload:
    """
    Map merged phase output onto a complete ListingPayload.

    Total over its input: any mapping, including {}, yields a payload whose
    every field holds either a usable model value or its documented default.
    """
    data = data if isinstance(data, Mapping) else {}

    product = _product_identification(data)
    condition = _condition(data)
    item_specifics = normalize_item_specifics(
        data.get("itemSpecifics"),
        brand=product.brand,
        model=product.model,
        condition=condition.user_override or condition.grade,
    )

    payload = ListingPayload(
        product_identification=product,
        title=rules.truncate_title(_text(data.get("title"), "Untitled Item")),
        subtitle=_text(data.get("subtitle"), ""),
        description=_description(data),
        condition=condition,
        weight=_weight(data),
        dimensions=_dimensions(data),
        pricing=_pricing(data),
        shipping=_shipping(data),
        item_specifics=item_specifics,
        seo_optimization=_seo(data),
        listing_recommendations=_listing_recommendations(data),
        quality_checks=_quality_checks(data),
        compliance_flags=_compliance_flags(data),
        legal_disclaimers=_legal_disclaimers(data),
        metadata=ListingMetadata(
            generated_at=(generated_at or datetime.now(timezone.utc)).isoformat(),
            model_version=model_version,
            processing_time=processing_time_ms,
            correlation_id=correlation_id,
            pipeline_variant=variant,
        ),
    )
    logger.debug(f"[{correlation_id}] normalized listing: {len(item_specifics)} item specifics, title={payload.title!r}")
    return payload
