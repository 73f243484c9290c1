"""
Shapes listing output into what the marketplace's Inventory API accepts.

Pure functions only; the REST calls themselves happen elsewhere.
"""
from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional, Union

from .normalizer import is_placeholder
from .rules import canonical_condition_grade
from .schema import ListingPayload

EBAY_CONDITIONS = {
    "New": "NEW",
    "Like New": "LIKE_NEW",
    "Very Good": "USED_VERY_GOOD",
    "Good": "USED_GOOD",
    "Acceptable": "USED_ACCEPTABLE",
    "For parts or not working": "FOR_PARTS_OR_NOT_WORKING",
}
DEFAULT_EBAY_CONDITION = "USED_EXCELLENT"


def to_inventory_aspects(item_specifics: Mapping[str, Union[str, List[str], Any]]) -> Dict[str, List[str]]:
    """Inventory aspects must be string-array valued."""
    aspects: Dict[str, List[str]] = {}
    for key, value in (item_specifics or {}).items():
        values = value if isinstance(value, (list, tuple)) else [value]
        cleaned = [str(v).strip() for v in values if not is_placeholder(v)]
        if cleaned:
            aspects[str(key)] = cleaned
    return aspects


def find_leaf_category(subtree: Optional[Mapping[str, Any]]) -> Optional[str]:
    """
    Walk a taxonomy subtree down its first children to a leaf category id.

    `subtree` is the body of a category-subtree lookup ({"categorySubtreeNode": ...}
    or the node itself). None means the category was already a leaf and there
    is nothing to walk.
    """
    if not subtree:
        return None
    node = subtree.get("categorySubtreeNode", subtree)
    while node:
        children = node.get("childCategoryTreeNodes") or []
        if node.get("leafCategoryTreeNode") or not children:
            return (node.get("category") or {}).get("categoryId")
        node = children[0]
    return None


def to_ebay_condition(grade: Optional[str]) -> str:
    canonical = canonical_condition_grade(grade)
    return EBAY_CONDITIONS.get(canonical, DEFAULT_EBAY_CONDITION)


def build_inventory_item(payload: ListingPayload, quantity: int = 1) -> Dict[str, Any]:
    product: Dict[str, Any] = {
        "title": payload.title,
        "description": payload.description.plain_text,
        "aspects": to_inventory_aspects(payload.item_specifics),
        "brand": payload.product_identification.brand,
    }
    identity = payload.product_identification
    if not is_placeholder(identity.mpn) and identity.mpn != "Does Not Apply":
        product["mpn"] = identity.mpn
    if not is_placeholder(identity.upc) and identity.upc != "Does Not Apply":
        product["upc"] = [identity.upc]

    item: Dict[str, Any] = {
        "availability": {"shipToLocationAvailability": {"quantity": quantity}},
        "condition": to_ebay_condition(payload.condition.user_override or payload.condition.grade),
        "product": product,
    }
    if payload.condition.description:
        item["conditionDescription"] = payload.condition.description
    weight = payload.weight
    if weight.estimated_lbs > 0:
        item["packageWeightAndSize"] = {
            "weight": {"value": weight.estimated_lbs, "unit": "POUND"},
        }
        dims = payload.dimensions
        if dims.length > 0 and dims.width > 0 and dims.height > 0:
            item["packageWeightAndSize"]["dimensions"] = {
                "length": dims.length,
                "width": dims.width,
                "height": dims.height,
                "unit": "INCH",
            }
    return item
