"""
Canonical listing payload.

Field names are snake_case in Python and camelCase on the wire (the mobile app
and the marketplace API both speak camelCase). Every field has a default, so a
payload built from nothing is still complete.
"""
from __future__ import annotations
from typing import Any, Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_DISCLAIMERS = {
    "pricing": (
        "AI-suggested prices are estimates based on market analysis. Seller is solely responsible "
        "for final pricing decisions. Actual market value may vary."
    ),
    "condition": (
        "AI condition assessment is preliminary. Seller must verify and accurately represent item "
        "condition in final listing."
    ),
    "accuracy": (
        "All AI-generated content is advisory. Seller is responsible for ensuring listing accuracy "
        "and compliance with eBay policies."
    ),
    "liability": "AI suggestions do not guarantee sales performance or listing acceptance by eBay.",
}


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        protected_namespaces=(),
    )


class ProductIdentification(_Schema):
    brand: str = "Unbranded"
    model: str = "Unknown"
    category: str = "Other"
    upc: str = "Does Not Apply"
    mpn: str = "Does Not Apply"


class Description(_Schema):
    plain_text: str = "No description available"
    structure: Dict[str, Any] = Field(default_factory=dict)


class Condition(_Schema):
    grade: str = "Used"
    numeric_score: float = 7.0
    description: str = ""
    flaws: List[str] = Field(default_factory=list)
    user_override: str = ""


class Weight(_Schema):
    estimated_lbs: float = 0.0
    estimated_oz: float = 0.0
    estimated_kg: float = 0.0
    confidence_level: str = "low"
    requires_manual_verification: bool = True
    rationale: str = "Weight estimation unavailable"


class Dimensions(_Schema):
    length: float = 0.0
    width: float = 0.0
    height: float = 0.0
    unit: str = "inches"
    confidence_level: str = "low"


class PriceRange(_Schema):
    min: float = 0.0
    max: float = 0.0


class MarketAnalysis(_Schema):
    sold_listings_analyzed: int = 0
    average_sold_price: float = 0.0
    price_distribution: str = "No market data available"
    competitive_position: str = "Unknown"


class StrategyRecommendation(_Schema):
    listing_format: str = "Fixed Price"
    auction_start_price: float = 0.0
    best_offer_enabled: bool = True
    best_offer_auto_accept: float = 0.0
    best_offer_auto_decline: float = 0.0
    shipping_strategy: str = "Buyer Pays"
    reasoning: str = "Default strategy"


class Pricing(_Schema):
    suggested_price: float = 0.0
    price_range: PriceRange = Field(default_factory=PriceRange)
    currency: str = "USD"
    confidence_score: float = 0.5
    rationale: str = "No pricing rationale provided"
    market_data_available: bool = False
    market_analysis: MarketAnalysis = Field(default_factory=MarketAnalysis)
    strategy_recommendation: StrategyRecommendation = Field(default_factory=StrategyRecommendation)


class Shipping(_Schema):
    recommended_service: str = "USPS Priority Mail"
    estimated_cost: float = 0.0
    handling_time: str = "1 business day"
    package_type: str = "Box"
    requires_signature: bool = False
    fragile: bool = False
    seller_template_match: str = ""


class SeoOptimization(_Schema):
    primary_keywords: List[str] = Field(default_factory=list)
    secondary_keywords: List[str] = Field(default_factory=list)
    longtail_keywords: List[str] = Field(default_factory=list)
    competitor_keywords: List[str] = Field(default_factory=list)
    search_volume: str = "Unknown"


class PromotedListings(_Schema):
    recommended: bool = False
    suggested_ad_rate: str = "5%"
    reasoning: str = ""


class ListingRecommendations(_Schema):
    best_offer_enabled: bool = True
    international_shipping: bool = False
    returns_accepted: bool = True
    return_period: str = "30 days"
    return_shipping_paid_by: str = "Buyer"
    promoted_listings: PromotedListings = Field(default_factory=PromotedListings)


class QualityChecks(_Schema):
    image_quality: str = "unknown"
    image_quality_notes: str = ""
    information_completeness: float = 0.5
    missing_information: List[str] = Field(default_factory=list)
    recommended_additional_photos: List[str] = Field(default_factory=list)


class ComplianceFlags(_Schema):
    brand_authenticity: str = "uncertain"
    prohibited_items: bool = False
    restricted_categories: bool = False
    requires_additional_disclosures: bool = False
    warnings: List[str] = Field(default_factory=list)


class LegalDisclaimers(_Schema):
    pricing: str = DEFAULT_DISCLAIMERS["pricing"]
    condition: str = DEFAULT_DISCLAIMERS["condition"]
    accuracy: str = DEFAULT_DISCLAIMERS["accuracy"]
    liability: str = DEFAULT_DISCLAIMERS["liability"]


class ListingMetadata(_Schema):
    generated_at: str
    model_version: str
    processing_time: int = 0 #ms
    correlation_id: str = ""
    pipeline_variant: str = "full"


class ListingPayload(_Schema):
    product_identification: ProductIdentification = Field(default_factory=ProductIdentification)
    title: str = "Untitled Item"
    subtitle: str = ""
    description: Description = Field(default_factory=Description)
    condition: Condition = Field(default_factory=Condition)
    weight: Weight = Field(default_factory=Weight)
    dimensions: Dimensions = Field(default_factory=Dimensions)
    pricing: Pricing = Field(default_factory=Pricing)
    shipping: Shipping = Field(default_factory=Shipping)
    item_specifics: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    seo_optimization: SeoOptimization = Field(default_factory=SeoOptimization)
    listing_recommendations: ListingRecommendations = Field(default_factory=ListingRecommendations)
    quality_checks: QualityChecks = Field(default_factory=QualityChecks)
    compliance_flags: ComplianceFlags = Field(default_factory=ComplianceFlags)
    legal_disclaimers: LegalDisclaimers = Field(default_factory=LegalDisclaimers)
    metadata: ListingMetadata

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
