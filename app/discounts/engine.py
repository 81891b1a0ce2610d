"""
app/discounts/engine.py
-----------------------
Pure-Python discount calculation engine.

calculate_discounts(campaign, cart) runs one forward pass:

    resolve source → line rules → buy-get → cart rules → aggregate

and returns a fresh, immutable DiscountResult. Nothing is read from or
written to the DB here; the caller loads the campaign and persists the
sale. Given the same snapshots the result is always identical.
"""
from __future__ import annotations
import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence, Union

from app.discounts.buy_get import evaluate_buy_get
from app.discounts.cart_rules import evaluate_cart_rules
from app.discounts.errors import InvalidInput
from app.discounts.rules import evaluate_lines
from app.discounts.types import (
    ZERO, AppliedRuleInfo, Cart, DiscountResult, DiscountSet, LineItemResult, LineLedger, SaleItem,
)

logger = logging.getLogger(__name__)


def check_cart(items: Sequence[SaleItem]) -> None:
    """Fail fast on carts the engine must not price."""
    if not items:
        raise InvalidInput('Cart is empty.')

    seen = set()
    for item in items:
        if item.line_id in seen:
            raise InvalidInput(f'Duplicate line id {item.line_id!r}.', {'lineId': item.line_id})
        seen.add(item.line_id)

        if item.quantity <= 0:
            raise InvalidInput(f'Line {item.line_id!r} has a non-positive quantity.',
                               {'lineId': item.line_id})
        if item.unit_price < 0:
            raise InvalidInput(f'Line {item.line_id!r} has a negative unit price.',
                               {'lineId': item.line_id})
        if item.custom_discount_value is not None and item.custom_discount_value < 0:
            raise InvalidInput(f'Line {item.line_id!r} has a negative custom discount.',
                               {'lineId': item.line_id})


# ── Aggregator ────────────────────────────────────────────────────

def aggregate(ledgers: Sequence[LineLedger], cart_rules: Iterable[AppliedRuleInfo]) -> DiscountResult:
    """Freeze the ledgers, rounding each line discount once, and compute totals."""
    line_items = tuple(
        LineItemResult(
            item=l.item,
            source=l.source,
            applied_rules=tuple(l.applied),
            line_value=l.line_value,
            line_discount=l.line_discount,
            net_price=l.net_price,
        )
        for l in ledgers
    )
    cart_rules = tuple(cart_rules)

    original_subtotal   = sum((li.line_value for li in line_items), ZERO)
    total_item_discount = sum((li.line_discount for li in line_items), ZERO)
    total_cart_discount = sum((r.total_calculated_discount for r in cart_rules), ZERO)
    total_discount      = total_item_discount + total_cart_discount
    final_total         = max(ZERO, original_subtotal - total_discount)

    return DiscountResult(
        line_items=line_items,
        applied_cart_rules=cart_rules,
        original_subtotal=original_subtotal,
        total_item_discount=total_item_discount,
        total_cart_discount=total_cart_discount,
        total_discount=total_discount,
        final_total=final_total,
    )


# ── Main public function ──────────────────────────────────────────

def calculate_discounts(campaign: DiscountSet,
                        cart: Union[Cart, Sequence[SaleItem]],
                        as_of: Optional[date] = None) -> DiscountResult:
    """
    Price `cart` under `campaign`.

    Args:
        campaign: resolved campaign snapshot (the caller decides it is active).
        cart:     a Cart or a plain sequence of SaleItem, in cart order.
        as_of:    when given, rules whose validity window excludes this
                  date are skipped. None ignores windows.

    Raises:
        InvalidInput: empty cart, duplicate line id, quantity <= 0,
                      negative unit price or negative custom discount.
    """
    items: List[SaleItem] = list(cart.items if isinstance(cart, Cart) else cart)
    check_cart(items)

    ledgers = evaluate_lines(campaign, items, as_of)
    evaluate_buy_get(campaign, ledgers)
    cart_rules = evaluate_cart_rules(campaign, ledgers, as_of)

    result = aggregate(ledgers, cart_rules)
    logger.debug("Campaign '%s': %d lines, subtotal %s, discount %s, total %s",
                 campaign.name, len(items), result.original_subtotal,
                 result.total_discount, result.final_total)
    return result
