"""
app/discounts/serializers.py
----------------------------
DiscountResult → plain JSON-compatible dict, camelCase field for field.

Money leaves as 2-dp floats; quantities as int when whole.
"""
from __future__ import annotations
from decimal import Decimal

from app.discounts.types import AppliedRuleInfo, DiscountResult, LineItemResult


def _money(value: Decimal) -> float:
    return float(value)


def _qty(value: Decimal):
    return int(value) if value == value.to_integral_value() else float(value)


def applied_rule_to_dict(info: AppliedRuleInfo) -> dict:
    return {
        'discountCampaignName':    info.discount_campaign_name,
        'sourceRuleName':          info.source_rule_name,
        'ruleType':                info.rule_type,
        'totalCalculatedDiscount': _money(info.total_calculated_discount),
        'productIdAffected':       info.product_id_affected,
        'batchIdAffected':         info.batch_id_affected,
        'appliedOnce':             info.applied_once,
        'applicationCount':        info.application_count,
        'description':             info.description,
    }


def line_item_to_dict(line: LineItemResult) -> dict:
    item = line.item
    return {
        'lineId':               item.line_id,
        'productId':            item.product_id,
        'batchId':              item.batch_id,
        'quantity':             _qty(item.quantity),
        'originalPrice':        _money(item.unit_price),
        'customDiscountValue':  None if item.custom_discount_value is None else _money(item.custom_discount_value),
        'customDiscountType':   item.custom_discount_type if item.has_custom_discount else None,
        'customApplyFixedOnce': item.custom_apply_fixed_once,
        'ruleSource':           line.source.value,
        'lineTotal':            _money(line.line_value),
        'totalDiscount':        _money(line.line_discount),
        'netPrice':             _money(line.net_price),
        'appliedRules':         [applied_rule_to_dict(r) for r in line.applied_rules],
    }


def result_to_dict(result: DiscountResult) -> dict:
    """The wire shape returned by the calculate-discounts endpoint."""
    return {
        'lineItems':           [line_item_to_dict(li) for li in result.line_items],
        'totalItemDiscount':   _money(result.total_item_discount),
        'totalCartDiscount':   _money(result.total_cart_discount),
        'appliedCartRules':    [applied_rule_to_dict(r) for r in result.applied_cart_rules],
        'originalSubtotal':    _money(result.original_subtotal),
        'totalDiscount':       _money(result.total_discount),
        'finalTotal':          _money(result.final_total),
        'appliedRulesSummary': [applied_rule_to_dict(r) for r in result.get_applied_rules_summary()],
    }
