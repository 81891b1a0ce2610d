"""
app/discounts/cart_rules.py
---------------------------
Cart Rule Evaluator: the campaign-wide price and quantity rules.

Both rules look at the cart after line and buy-get discounts, both may
fire, and together they never take more than that subtotal.
"""
from __future__ import annotations
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from app.discounts.rules import usable
from app.discounts.types import (
    HUNDRED, PERCENTAGE, ZERO, AppliedRuleInfo, DiscountSet, LineLedger, money,
)

logger = logging.getLogger(__name__)


def cart_rule_amount(config, subtotal: Decimal) -> Decimal:
    """Percentages come off the post-line subtotal; fixed amounts apply once."""
    if config.type == PERCENTAGE:
        return subtotal * config.value / HUNDRED
    return config.value


def evaluate_cart_rules(campaign: DiscountSet, ledgers: Sequence[LineLedger],
                        as_of: Optional[date] = None) -> List[AppliedRuleInfo]:
    subtotal = sum((l.net_price for l in ledgers), ZERO)
    quantity = sum((l.item.quantity for l in ledgers), ZERO)
    remaining = subtotal

    logger.debug('Cart rules: subtotal=%s quantity=%s', subtotal, quantity)

    applied: List[AppliedRuleInfo] = []
    for rule in campaign.cart_rules:
        config = rule.config
        if not usable(config, as_of):
            continue
        if not config.condition_met(rule.measure(subtotal, quantity)):
            continue

        amount = money(max(ZERO, min(cart_rule_amount(config, subtotal), remaining)))
        if amount <= 0:
            continue
        remaining -= amount

        applied.append(AppliedRuleInfo(
            discount_campaign_name=campaign.name,
            source_rule_name=config.name,
            rule_type=f'campaign_{rule.kind}',
            total_calculated_discount=amount,
            applied_once=True,
            description=config.description or f"{rule.label}: '{config.name}' applied.",
        ))

    return applied
