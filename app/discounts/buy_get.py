"""
app/discounts/buy_get.py
------------------------
Cross-Item Rule Evaluator ("buy X, get Y").

    triggers = floor(qty of buy product in cart / buy_quantity)
               capped at 1 if not repeatable (or the campaign is one-time),
               capped at max_applications if set
    reward   = triggers × get_quantity units of the get product

Reward units go to the cheapest matching lines first, ties broken by
ascending line id. The reward is booked on the line it lands on, so it
counts as an item discount.
"""
from __future__ import annotations
import logging
from decimal import ROUND_FLOOR
from typing import List, Sequence

from app.discounts.errors import MalformedRuleConfig
from app.discounts.types import (
    BUY_GET_VALUE_TYPES, FIXED, FREE, HUNDRED, PERCENTAGE, ZERO,
    AppliedRuleInfo, BuyGetRule, DiscountSet, LineLedger, money,
)

logger = logging.getLogger(__name__)

BUY_GET_RULE_TYPE = 'buy_get'


def validate_buy_get_rule(rule: BuyGetRule) -> None:
    errors = []
    if rule.buy_quantity <= 0:
        errors.append('Buy quantity must be greater than zero')
    if rule.get_quantity <= 0:
        errors.append('Get quantity must be greater than zero')
    if rule.discount_type not in BUY_GET_VALUE_TYPES:
        errors.append(f"Unknown discount type '{rule.discount_type}'")
    if rule.discount_value < 0:
        errors.append('Discount value cannot be negative')
    if rule.discount_type == PERCENTAGE and rule.discount_value > HUNDRED:
        errors.append('Percentage discount cannot exceed 100%')
    if rule.max_applications is not None and rule.max_applications < 0:
        errors.append('Max applications cannot be negative')
    if errors:
        raise MalformedRuleConfig(rule.name, errors)


def trigger_count(rule: BuyGetRule, ledgers: Sequence[LineLedger], one_time: bool = False) -> int:
    """How many times `rule` fires for this cart."""
    bought = sum((l.item.quantity for l in ledgers if l.item.product_id == rule.buy_product_id), ZERO)
    count = int((bought / rule.buy_quantity).to_integral_value(rounding=ROUND_FLOOR))
    if not rule.is_repeatable or one_time:
        count = min(count, 1)
    if rule.max_applications is not None:
        count = min(count, rule.max_applications)
    return count


def _unit_discount(rule: BuyGetRule, unit_price):
    if rule.discount_type == FREE:
        return unit_price
    if rule.discount_type == FIXED:
        return min(rule.discount_value, unit_price)
    return unit_price * rule.discount_value / HUNDRED


def apply_buy_get_rule(rule: BuyGetRule, campaign: DiscountSet,
                       ledgers: Sequence[LineLedger]) -> List[AppliedRuleInfo]:
    """Book one rule's reward onto the matching ledgers. Returns the records created."""
    triggers = trigger_count(rule, ledgers, campaign.is_one_time_per_transaction)
    if triggers <= 0:
        return []

    to_reward = rule.get_quantity * triggers
    targets = sorted(
        (l for l in ledgers if l.item.product_id == rule.get_product_id),
        key=lambda l: (l.item.unit_price, l.item.line_id),
    )

    records = []
    for ledger in targets:
        if to_reward <= 0:
            break
        units = min(ledger.item.quantity, to_reward)
        amount = ledger.take(_unit_discount(rule, ledger.item.unit_price) * units)
        if amount <= 0:
            # line already fully discounted; try the next one
            continue
        to_reward -= units

        once = triggers == 1 and (not rule.is_repeatable or campaign.is_one_time_per_transaction)
        info = AppliedRuleInfo(
            discount_campaign_name=campaign.name,
            source_rule_name=rule.name,
            rule_type=BUY_GET_RULE_TYPE,
            total_calculated_discount=money(amount),
            product_id_affected=ledger.item.product_id,
            batch_id_affected=ledger.item.batch_id,
            applied_once=once,
            application_count=triggers,
            description=(f'{rule.name}: Buy {rule.buy_quantity} {rule.buy_product_id}, '
                         f'Get {rule.get_quantity} {rule.get_product_id} ({units} rewarded)'),
        )
        ledger.record(info)
        records.append(info)

    if to_reward > 0:
        logger.debug("Buy-get '%s': %s reward units had no line to land on", rule.name, to_reward)
    return records


def evaluate_buy_get(campaign: DiscountSet, ledgers: Sequence[LineLedger]) -> List[AppliedRuleInfo]:
    """Run every enabled buy-get rule in declaration order."""
    applied = []
    for rule in campaign.buy_get_rules:
        if not rule.is_enabled:
            continue
        try:
            validate_buy_get_rule(rule)
        except MalformedRuleConfig as e:
            logger.warning('Skipping buy-get rule: %s', e.message)
            continue
        applied.extend(apply_buy_get_rule(rule, campaign, ledgers))
    return applied
