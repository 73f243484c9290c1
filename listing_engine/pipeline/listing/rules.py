"""
Listing business rules.

Thresholds and reference tables used by the listing phases. Prompts render these
values instead of hard-coding them, and the same values are applied to model
output after each phase so the result does not depend on the model obeying them.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import math
import re

# Compliance
PROHIBITED_CATEGORIES: Tuple[str, ...] = (
    "Adult content",
    "Weapons",
    "Drugs",
    "Counterfeits",
    "Medical devices",
    "Live animals",
    "ID documents",
)
RESTRICTED_COMPLIANCE_LEVEL = "RESTRICTED"
LOW_CONFIDENCE_LABELS = frozenset({"LOW"})
REVIEW_CONFIDENCE_THRESHOLD = 0.4

# Weight
PACKAGING_FACTOR = 1.15
OZ_PER_LB = 16.0
KG_PER_LB = 0.45359237
WEIGHT_CONFIDENCE_LEVELS = ("high", "medium", "low")

# keyword -> (min lbs, max lbs), unpackaged
WEIGHT_REFERENCE_LBS: Dict[str, Tuple[float, float]] = {
    "smartphone": (0.3, 0.5),
    "shoes": (1.5, 2.5),
    "sneakers": (1.5, 2.5),
    "laptop": (3.0, 6.0),
    "t-shirt": (0.3, 0.5),
    "book": (0.5, 2.0),
    "toy figure": (0.2, 0.4),
    "action figure": (0.3, 0.65),
    "plush": (0.4, 1.0),
    "board game": (1.5, 3.0),
}

# Condition
CONDITION_GRADES: Tuple[str, ...] = (
    "New",
    "Like New",
    "Very Good",
    "Good",
    "Acceptable",
    "For parts or not working",
)
DEFAULT_CONDITION_GRADE = "Used"

# grade -> (min score, max score) on the 1-10 scale
CONDITION_SCORE_BANDS: Dict[str, Tuple[float, float]] = {
    "New": (10.0, 10.0),
    "Like New": (9.0, 9.5),
    "Very Good": (8.0, 8.5),
    "Good": (7.0, 7.5),
    "Acceptable": (6.0, 6.5),
    "For parts or not working": (1.0, 3.0),
    DEFAULT_CONDITION_GRADE: (7.0, 7.0),
}

_GRADE_ALIASES = {
    "brand new": "New",
    "new with tags": "New",
    "new in box": "New",
    "like-new": "Like New",
    "like new": "Like New",
    "open box": "Like New",
    "very good": "Very Good",
    "for parts": "For parts or not working",
    "for parts only": "For parts or not working",
    "parts only": "For parts or not working",
    "not working": "For parts or not working",
    "used": DEFAULT_CONDITION_GRADE,
    "pre-owned": DEFAULT_CONDITION_GRADE,
}

# Pricing
CONDITION_PRICE_FACTORS: Dict[str, float] = {
    "New": 1.0,
    "Like New": 0.95,
    "Very Good": 0.9,
    "Good": 0.85,
    "Acceptable": 0.75,
    "For parts or not working": 0.4,
    DEFAULT_CONDITION_GRADE: 0.85,
}
BEST_OFFER_MIN_PRICE = 30.0
BEST_OFFER_AUTO_ACCEPT_RATIO = 0.90
BEST_OFFER_AUTO_DECLINE_RATIO = 0.70
NO_MARKET_DATA_CONFIDENCE_CEILING = 0.4
MAX_MARKET_COMPARABLES = 10
COMPARABLE_TITLE_CHARS = 50

# Content
TITLE_MAX_LENGTH = 80


def parse_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Lenient number parsing: numbers and numeric strings ("$12.50" included); anything else is default."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, str):
        value = value.strip().lstrip("$").replace(",", "")
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def section(data: Any, key: str) -> Mapping[str, Any]:
    """data[key] when both are objects; model replies put strings or numbers where blocks belong."""
    return as_mapping(as_mapping(data).get(key))


# Compliance gate

def is_compliant(grounding: Mapping[str, Any]) -> bool:
    return is_truthy(section(grounding, "compliance").get("isEbayCompliant"))


def review_reasons(grounding: Mapping[str, Any]) -> List[str]:
    """Reasons a compliant grounding result still needs a human; empty when it can proceed."""
    reasons = []
    if is_truthy(section(grounding, "recommendations").get("reviewNeeded")):
        reasons.append("model requested review")

    confidence = section(grounding, "productIdentification").get("confidence")
    numeric = parse_float(confidence)
    if numeric is not None:
        if numeric < REVIEW_CONFIDENCE_THRESHOLD:
            reasons.append(f"identification confidence {numeric:.2f} below {REVIEW_CONFIDENCE_THRESHOLD}")
    elif isinstance(confidence, str) and confidence.strip().upper() in LOW_CONFIDENCE_LABELS:
        reasons.append("identification confidence LOW")

    level = section(grounding, "compliance").get("level")
    if isinstance(level, str) and level.strip().upper() == RESTRICTED_COMPLIANCE_LEVEL:
        reasons.append("restricted category")
    return reasons


# Weight

def weight_reference_for(category: Optional[str]) -> Optional[Tuple[float, float]]:
    if not category:
        return None
    text = category.lower()
    for keyword, band in WEIGHT_REFERENCE_LBS.items():
        if keyword in text:
            return band
    return None


def with_packaging(lbs: float) -> float:
    return round(lbs * PACKAGING_FACTOR, 2)


def complete_weight(weight: Any) -> Dict[str, Any]:
    """
    Fill lbs/oz/kg from whichever unit the model supplied.

    Accepts both the estimated{Lbs,Oz,Kg} shape and the compact
    {"value", "unit", "confidence"} shape, and a bare "2.5 lbs" string or number.
    Low confidence always forces manual verification.
    """
    if isinstance(weight, (str, int, float)) and not isinstance(weight, bool):
        weight = _weight_from_text(str(weight))
    result = dict(as_mapping(weight))

    if "value" in result and not any(k in result for k in ("estimatedLbs", "estimatedOz", "estimatedKg")):
        value = parse_float(result.get("value"))
        unit = str(result.get("unit") or "oz").lower()
        if value is not None:
            if unit in ("lb", "lbs", "pound", "pounds"):
                result["estimatedLbs"] = value
            elif unit in ("kg", "kilogram", "kilograms"):
                result["estimatedKg"] = value
            else:
                result["estimatedOz"] = value

    lbs = parse_float(result.get("estimatedLbs"))
    oz = parse_float(result.get("estimatedOz"))
    kg = parse_float(result.get("estimatedKg"))
    if lbs is None:
        if oz is not None:
            lbs = oz / OZ_PER_LB
        elif kg is not None:
            lbs = kg / KG_PER_LB
    if lbs is not None:
        result["estimatedLbs"] = round(lbs, 2)
        result["estimatedOz"] = round(oz if oz is not None else lbs * OZ_PER_LB, 1)
        result["estimatedKg"] = round(kg if kg is not None else lbs * KG_PER_LB, 3)

    confidence = str(result.get("confidenceLevel") or result.get("confidence") or "low").strip().lower()
    if confidence not in WEIGHT_CONFIDENCE_LEVELS:
        confidence = "low"
    result["confidenceLevel"] = confidence
    if confidence == "low":
        result["requiresManualVerification"] = True
    return result


_WEIGHT_TEXT = re.compile(r"^\s*([\d.,]+)\s*([a-zA-Z]*)")


def _weight_from_text(text: str) -> Dict[str, Any]:
    match = _WEIGHT_TEXT.match(text)
    if not match or parse_float(match.group(1)) is None:
        return {}
    return {"value": parse_float(match.group(1)), "unit": match.group(2) or "lbs"}


# Condition

def canonical_condition_grade(grade: Any) -> Optional[str]:
    if not isinstance(grade, str) or not grade.strip():
        return None
    text = grade.strip()
    for canonical in CONDITION_GRADES:
        if text.lower() == canonical.lower():
            return canonical
    return _GRADE_ALIASES.get(text.lower())


def default_score_for_grade(grade: Optional[str]) -> float:
    band = CONDITION_SCORE_BANDS.get(canonical_condition_grade(grade) or DEFAULT_CONDITION_GRADE)
    return band[0]


# Pricing

def price_factor_for_grade(grade: Optional[str]) -> float:
    return CONDITION_PRICE_FACTORS.get(canonical_condition_grade(grade) or DEFAULT_CONDITION_GRADE, 1.0)


def format_comparables(comparables: Iterable[Any]) -> List[str]:
    lines = []
    for item in list(comparables)[:MAX_MARKET_COMPARABLES]:
        lines.append(f"${item.price:.2f} | {item.condition} | {item.title[:COMPARABLE_TITLE_CHARS]}")
    return lines


def apply_pricing_rules(pricing: Any, comparables_count: int) -> Dict[str, Any]:
    """Apply the Best Offer thresholds and the market-data confidence ceiling to a pricing block."""
    result = dict(as_mapping(pricing))
    strategy = dict(section(result, "strategyRecommendation"))
    price = parse_float(result.get("suggestedPrice"), 0.0)

    if price > 0:
        strategy["bestOfferEnabled"] = price > BEST_OFFER_MIN_PRICE
    if strategy.get("bestOfferEnabled") and price > 0:
        if parse_float(strategy.get("bestOfferAutoAccept")) is None:
            strategy["bestOfferAutoAccept"] = round(price * BEST_OFFER_AUTO_ACCEPT_RATIO, 2)
        if parse_float(strategy.get("bestOfferAutoDecline")) is None:
            strategy["bestOfferAutoDecline"] = round(price * BEST_OFFER_AUTO_DECLINE_RATIO, 2)
    elif price > 0:
        strategy["bestOfferAutoAccept"] = None
        strategy["bestOfferAutoDecline"] = None
    result["strategyRecommendation"] = strategy

    analysis = dict(section(result, "marketAnalysis"))
    if comparables_count > 0:
        result["marketDataAvailable"] = True
        analysis.setdefault("soldListingsAnalyzed", comparables_count)
    else:
        result["marketDataAvailable"] = False
        confidence = parse_float(result.get("confidenceScore"), NO_MARKET_DATA_CONFIDENCE_CEILING)
        result["confidenceScore"] = min(confidence, NO_MARKET_DATA_CONFIDENCE_CEILING)
        analysis["soldListingsAnalyzed"] = 0
        analysis.setdefault("priceDistribution", "No market data available")
    result["marketAnalysis"] = analysis
    return result


# Content

def truncate_title(title: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    title = " ".join(title.split())
    if len(title) <= max_length:
        return title
    cut = title[:max_length + 1].rsplit(" ", 1)[0] if " " in title[:max_length + 1] else title[:max_length]
    return cut[:max_length].rstrip()
