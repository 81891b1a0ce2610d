"""
app/discounts/resolver.py
-------------------------
Picks the single rule source that governs each cart line.

Priority: Custom > Batch (deprecated, always empty) > Product > Default.
A line nothing applies to resolves to SourceKind.NONE; it still takes
part in buy-get and cart evaluation.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

from app.discounts.types import (
    DiscountSet, LineRule, ProductDiscountConfiguration, SaleItem, SourceKind,
)


@dataclass(frozen=True)
class Resolution:
    """The chosen source plus the line rules it contributes."""
    source: SourceKind
    rules:  Tuple[LineRule, ...] = ()
    config: Optional[ProductDiscountConfiguration] = None


def resolve_source(item: SaleItem, campaign: DiscountSet) -> SourceKind:
    """Return which tier governs `item` under `campaign`."""
    if item.has_custom_discount:
        return SourceKind.CUSTOM
    if campaign.product_configuration_for(item.product_id) is not None:
        return SourceKind.PRODUCT
    if campaign.default_rules:
        return SourceKind.DEFAULT
    return SourceKind.NONE


def resolve_line(item: SaleItem, campaign: DiscountSet) -> Resolution:
    source = resolve_source(item, campaign)

    if source is SourceKind.PRODUCT:
        config = campaign.product_configuration_for(item.product_id)
        return Resolution(source, config.rules, config)

    if source is SourceKind.DEFAULT:
        return Resolution(source, campaign.default_rules)

    return Resolution(source)
