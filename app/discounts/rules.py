"""
app/discounts/rules.py
----------------------
Line Rule Evaluator.

For each cart line, in cart order:
  Custom  → the cashier's override, nothing else.
  Product / Default → every enabled sub-rule whose condition holds
            contributes; contributions stack and are clamped to the line
            value.

With campaign.is_one_time_per_transaction a sub-rule that has fired on
one line is suppressed for every later line (first line wins).
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from app.discounts.buy_get import validate_buy_get_rule
from app.discounts.errors import MalformedRuleConfig
from app.discounts.resolver import Resolution, resolve_line
from app.discounts.types import (
    FIXED, HUNDRED, PERCENTAGE, RULE_VALUE_TYPES,
    AppliedRuleInfo, DiscountSet, LineLedger, LineRule, RuleConfig, SaleItem, SourceKind, money,
)

logger = logging.getLogger(__name__)

MANUAL_CAMPAIGN_NAME = 'Manual Discount'
CUSTOM_RULE_TYPE     = 'custom_item_discount'

_SOURCE_PREFIX = {
    SourceKind.PRODUCT: 'product_config',
    SourceKind.DEFAULT: 'campaign_default',
}


# ── Single rule helpers ───────────────────────────────────────────

def validate_rule_config(config: RuleConfig) -> None:
    """Raise MalformedRuleConfig if the config contradicts itself."""
    errors = []
    if config.type not in RULE_VALUE_TYPES:
        errors.append(f"Unknown discount type '{config.type}'")
    if config.value < 0:
        errors.append('Discount value cannot be negative')
    if config.type == PERCENTAGE and config.value > HUNDRED:
        errors.append('Percentage discount cannot exceed 100%')
    if config.condition_min is not None and config.condition_min < 0:
        errors.append('Minimum condition cannot be negative')
    if (config.condition_min is not None and config.condition_max is not None
            and config.condition_min > config.condition_max):
        errors.append('Maximum condition cannot be less than minimum condition')
    if config.max_applications is not None and config.max_applications < 0:
        errors.append('Max applications cannot be negative')
    if errors:
        raise MalformedRuleConfig(config.name, errors)


def rule_amount(config: RuleConfig, gross, quantity):
    """
    Unclamped, unrounded discount for one rule.
    Percentages are always taken from the line value, never a quantity.
    """
    if config.type == FIXED:
        if config.apply_fixed_once:
            return config.value
        return config.value * quantity
    return gross * config.value / HUNDRED


def usable(config: Optional[RuleConfig], as_of: Optional[date]) -> bool:
    """True when the rule is enabled, inside its window and well-formed."""
    if config is None or not config.is_enabled:
        return False
    if not config.is_live(as_of):
        logger.debug("Rule '%s' outside its validity window on %s", config.name, as_of)
        return False
    try:
        validate_rule_config(config)
    except MalformedRuleConfig as e:
        logger.warning('Skipping rule: %s', e.message)
        return False
    return True


# ── Pass state ────────────────────────────────────────────────────

@dataclass
class PassState:
    """Firing counts for the current pass, keyed by sub-rule identity."""
    one_time: bool = False
    fired:    Dict[str, int] = field(default_factory=dict)
    checked:  Dict[str, bool] = field(default_factory=dict)

    def allows(self, key: str, config: RuleConfig) -> bool:
        count = self.fired.get(key, 0)
        if self.one_time and count >= 1:
            return False
        if config.max_applications is not None and count >= config.max_applications:
            return False
        return True

    def mark(self, key: str) -> None:
        self.fired[key] = self.fired.get(key, 0) + 1

    def usable(self, key: str, config: RuleConfig, as_of: Optional[date]) -> bool:
        # one validation, and at most one warning, per rule per pass
        if key not in self.checked:
            self.checked[key] = usable(config, as_of)
        return self.checked[key]


def rule_key(resolution: Resolution, rule: LineRule) -> str:
    if resolution.source is SourceKind.PRODUCT:
        return f'product:{resolution.config.id}:{rule.kind}'
    return f'default:{rule.kind}'


def rule_type_for(source: SourceKind, rule: LineRule) -> str:
    return f'{_SOURCE_PREFIX[source]}_{rule.kind}'


# ── Custom (manual override) ──────────────────────────────────────

def evaluate_custom(item: SaleItem, ledger: LineLedger) -> None:
    """
    Apply the cashier-entered discount. A value of exactly zero means
    "override removed": no discount and no audit record.
    """
    value = item.custom_discount_value
    if value == 0:
        return

    is_fixed   = item.custom_discount_type == FIXED
    apply_once = is_fixed and item.custom_apply_fixed_once

    if not is_fixed:
        raw = item.gross * value / HUNDRED
    elif apply_once:
        raw = value
        # Partial refund: pro-rate a once-only amount over what is kept
        if item.original_quantity and item.original_quantity > item.quantity:
            raw = value / item.original_quantity * item.quantity
    else:
        raw = value * item.quantity

    amount = ledger.take(raw)
    if amount <= 0:
        return

    kind = 'Fixed' if is_fixed else 'Percentage'
    ledger.record(AppliedRuleInfo(
        discount_campaign_name=MANUAL_CAMPAIGN_NAME,
        source_rule_name=f'Custom {kind} Discount',
        rule_type=CUSTOM_RULE_TYPE,
        total_calculated_discount=money(amount),
        product_id_affected=item.product_id,
        batch_id_affected=item.batch_id,
        applied_once=apply_once,
        description=f'Custom {item.custom_discount_type} discount of {value} applied manually.',
    ))


# ── Product / Default ─────────────────────────────────────────────

def evaluate_sub_rules(item: SaleItem, resolution: Resolution, ledger: LineLedger,
                       campaign: DiscountSet, state: PassState,
                       as_of: Optional[date] = None) -> None:
    """Stack every satisfied sub-rule of the resolved source onto `ledger`."""
    for rule in resolution.rules:
        config = rule.config
        key = rule_key(resolution, rule)

        if not state.usable(key, config, as_of):
            continue
        if not state.allows(key, config):
            logger.debug("Rule '%s' already used up in this transaction; line %s skipped",
                         config.name, item.line_id)
            continue

        measure = rule.measure(item)
        if not config.condition_met(measure):
            continue

        amount = ledger.take(rule_amount(config, item.gross, item.quantity))
        if amount <= 0:
            continue

        state.mark(key)
        once = state.one_time or (config.type == FIXED and config.apply_fixed_once)
        ledger.record(AppliedRuleInfo(
            discount_campaign_name=campaign.name,
            source_rule_name=config.name,
            rule_type=rule_type_for(resolution.source, rule),
            total_calculated_discount=money(amount),
            product_id_affected=item.product_id,
            batch_id_affected=item.batch_id,
            applied_once=once,
            description=config.description or f"{resolution.source.value.title()} {rule.label}: '{config.name}' applied.",
        ))


def evaluate_line(item: SaleItem, campaign: DiscountSet, state: PassState,
                  as_of: Optional[date] = None) -> LineLedger:
    resolution = resolve_line(item, campaign)
    ledger = LineLedger(item=item, source=resolution.source)

    if resolution.source is SourceKind.CUSTOM:
        evaluate_custom(item, ledger)
    elif resolution.source in (SourceKind.PRODUCT, SourceKind.DEFAULT):
        evaluate_sub_rules(item, resolution, ledger, campaign, state, as_of)

    return ledger


def evaluate_lines(campaign: DiscountSet, items: Sequence[SaleItem],
                   as_of: Optional[date] = None) -> List[LineLedger]:
    """Run the resolver and line evaluator over the cart, in cart order."""
    state = PassState(one_time=campaign.is_one_time_per_transaction)
    return [evaluate_line(item, campaign, state, as_of) for item in items]


# ── Operator visibility ───────────────────────────────────────────

def collect_rule_problems(campaign: DiscountSet) -> List[Tuple[str, List[str]]]:
    """
    List every malformed rule in the campaign as (location, errors).
    Used by the CLI; the engine itself just skips these rules.
    """
    problems = []

    def check(location, config):
        try:
            validate_rule_config(config)
        except MalformedRuleConfig as e:
            problems.append((location, e.errors))

    for rule in campaign.default_rules:
        check(f'default {rule.kind}', rule.config)
    for pc in campaign.product_configurations:
        for rule in pc.rules:
            check(f'product {pc.product_id} {rule.kind}', rule.config)
    for rule in campaign.cart_rules:
        check(f'cart {rule.kind}', rule.config)

    for bg in campaign.buy_get_rules:
        try:
            validate_buy_get_rule(bg)
        except MalformedRuleConfig as e:
            problems.append((f'buy-get {bg.id}', e.errors))

    return problems
