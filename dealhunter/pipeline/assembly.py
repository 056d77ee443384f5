"""Final result assembly: hydrate matcher output and group deals by aisle."""

from __future__ import annotations

import structlog

from dealhunter.classifier.taxonomy import PARENT_CATEGORIES
from dealhunter.models.contracts import (
    DealCategory,
    GroceryMatch,
    MasterInventoryItem,
    MatchItem,
)

log = structlog.get_logger("pipeline.assembly")


def to_grocery_match(
    item: MasterInventoryItem,
    *,
    item_name: str | None = None,
    deal_description: str | None = None,
    confidence: float | None = None,
) -> GroceryMatch:
    """Display view of an inventory item; matcher values override the item's own."""
    return GroceryMatch(
        id=item.id,
        item_name=item_name or item.normalized_name,
        product_name=item.product_name,
        store_name=item.store_name,
        price=item.price,
        quantity=item.unit,
        brand=item.brand,
        original_price=item.original_price,
        deal_description=deal_description or item.deal_description,
        valid_dates=item.valid_dates,
        category=item.category,
        is_sale=item.is_sale,
        confidence=1.0 if confidence is None else min(max(confidence, 0.0), 1.0),
    )


def hydrate_matches(
    matches: list[MatchItem],
    inventory: list[MasterInventoryItem],
) -> list[GroceryMatch]:
    """Join matcher output back onto the inventory by id.

    Ids the matcher invented (not in the inventory) are dropped, not errors.
    """
    by_id = {item.id: item for item in inventory}
    hydrated: list[GroceryMatch] = []
    dropped: list[str] = []
    for match in matches:
        item = by_id.get(match.id)
        if item is None:
            dropped.append(match.id)
            continue
        hydrated.append(
            to_grocery_match(
                item,
                item_name=match.item_name,
                deal_description=match.deal_description,
                confidence=match.confidence,
            )
        )
    if dropped:
        log.warning("matches_dropped_unknown_id", count=len(dropped), ids=dropped[:10])
    return hydrated


def group_by_category(inventory: list[MasterInventoryItem]) -> list[DealCategory]:
    """Every inventory item under its parent category, in taxonomy order."""
    groups: list[DealCategory] = []
    for category in PARENT_CATEGORIES:
        items = [to_grocery_match(i) for i in inventory if i.category == category]
        if items:
            groups.append(DealCategory(category=category, items=items))
    return groups
