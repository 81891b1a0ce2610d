"""
app/discounts/validators.py
---------------------------
Request-body validation and parsing for the discount API.

validate_* functions return a dict of field -> error_message; an empty
dict means the body has the right shape. parse_* functions convert the
camelCase JSON into engine snapshots and must only be called on input
that validated cleanly.

Shape checks live here. Semantic checks (quantity <= 0, a percentage
rule over 100...) are left to the engine, which rejects or skips them.
"""
from __future__ import annotations
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from app.discounts.types import (
    BUY_GET_VALUE_TYPES, CART_RULE_KINDS, FIXED, LINE_RULE_KINDS, RULE_VALUE_TYPES,
    BuyGetRule, Cart, DiscountSet, ProductDiscountConfiguration, RuleConfig, SaleItem,
    to_decimal,
)


# camelCase JSON keys, in LINE_RULE_KINDS / CART_RULE_KINDS order
PRODUCT_RULE_FIELDS = (
    'lineItemValueRuleJson',
    'lineItemQuantityRuleJson',
    'specificQtyThresholdRuleJson',
    'specificUnitPriceThresholdRuleJson',
)
DEFAULT_RULE_FIELDS = (
    'defaultLineItemValueRuleJson',
    'defaultLineItemQuantityRuleJson',
    'defaultSpecificQtyThresholdRuleJson',
    'defaultSpecificUnitPriceThresholdRuleJson',
)
CART_RULE_FIELDS = (
    'globalCartPriceRuleJson',
    'globalCartQuantityRuleJson',
)


# ── Small helpers ─────────────────────────────────────────────────

def _is_number(value) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    try:
        Decimal(str(value))
    except InvalidOperation:
        return False
    return Decimal(str(value)).is_finite()


def _is_date(value) -> bool:
    if value is None:
        return True
    try:
        date.fromisoformat(str(value)[:10])
    except ValueError:
        return False
    return True


def _to_date(value) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _opt_decimal(value):
    return None if value is None or value == '' else to_decimal(value)


def _is_whole_number(value) -> bool:
    if value is None or value == '':
        return True
    if isinstance(value, bool):
        return False
    try:
        int(value)
    except (TypeError, ValueError, OverflowError):
        return False
    return True


def _is_flag(value) -> bool:
    """JSON booleans only; "false" must not read as true."""
    return value is None or isinstance(value, bool)


def _check_whole(raw: dict, keys, field: str, errors: dict) -> None:
    for key in keys:
        if not _is_whole_number(raw.get(key)):
            errors[f'{field}.{key}'] = f'{key} must be a whole number.'


def _check_flags(raw: dict, keys, field: str, errors: dict) -> None:
    for key in keys:
        if not _is_flag(raw.get(key)):
            errors[f'{field}.{key}'] = f'{key} must be true or false.'


def _opt_int(value):
    return None if value is None or value == '' else int(value)


def _flag(raw: dict, key: str, default: bool) -> bool:
    value = raw.get(key)
    return default if value is None else value is True


def _first(raw: dict, *keys):
    """First present, non-None value among `keys`."""
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


# ── Validation ────────────────────────────────────────────────────

def validate_rule_json(raw, field: str) -> dict:
    """Shape-check one rule JSON object (null is allowed: no rule)."""
    errors = {}
    if raw is None:
        return errors
    if not isinstance(raw, dict):
        return {field: 'Rule must be an object or null.'}

    if raw.get('type', FIXED) not in RULE_VALUE_TYPES:
        errors[f'{field}.type'] = "Type must be 'percentage' or 'fixed'."
    if not _is_number(raw.get('value', 0)):
        errors[f'{field}.value'] = 'Value must be a valid number.'
    for key in ('conditionMin', 'conditionMax'):
        if raw.get(key) not in (None, '') and not _is_number(raw[key]):
            errors[f'{field}.{key}'] = f'{key} must be a valid number.'
    _check_whole(raw, ('maxApplications',), field, errors)
    _check_flags(raw, ('isEnabled', 'applyFixedOnce'), field, errors)
    for key in ('validFrom', 'validTo'):
        if not _is_date(raw.get(key)):
            errors[f'{field}.{key}'] = f'{key} must be an ISO date.'
    return errors


def validate_sale_item(raw, field: str) -> dict:
    if not isinstance(raw, dict):
        return {field: 'Cart line must be an object.'}

    errors = {}
    if _first(raw, 'lineId', 'saleItemId') is None:
        errors[f'{field}.lineId'] = 'Line id is required.'
    if raw.get('productId') is None:
        errors[f'{field}.productId'] = 'Product id is required.'
    if not _is_number(_first(raw, 'unitPrice', 'price')):
        errors[f'{field}.price'] = 'Price must be a valid number.'
    if not _is_number(raw.get('quantity')):
        errors[f'{field}.quantity'] = 'Quantity must be a valid number.'

    if raw.get('customDiscountValue') is not None:
        if not _is_number(raw['customDiscountValue']):
            errors[f'{field}.customDiscountValue'] = 'Custom discount must be a valid number.'
        if raw.get('customDiscountType', FIXED) not in RULE_VALUE_TYPES:
            errors[f'{field}.customDiscountType'] = "Type must be 'percentage' or 'fixed'."
    if raw.get('originalQuantity') is not None and not _is_number(raw['originalQuantity']):
        errors[f'{field}.originalQuantity'] = 'Original quantity must be a valid number.'
    _check_flags(raw, ('customApplyFixedOnce',), field, errors)
    return errors


def validate_buy_get_json(raw, field: str) -> dict:
    if not isinstance(raw, dict):
        return {field: 'Buy-get rule must be an object.'}

    errors = {}
    for key in ('buyProductId', 'getProductId'):
        if raw.get(key) is None:
            errors[f'{field}.{key}'] = f'{key} is required.'
    for key in ('buyQuantity', 'getQuantity'):
        if not _is_number(raw.get(key)):
            errors[f'{field}.{key}'] = f'{key} must be a valid number.'
    if raw.get('discountType', 'free') not in BUY_GET_VALUE_TYPES:
        errors[f'{field}.discountType'] = "Type must be 'percentage', 'fixed' or 'free'."
    if not _is_number(raw.get('discountValue', 0)):
        errors[f'{field}.discountValue'] = 'Discount value must be a valid number.'
    _check_whole(raw, ('maxApplications',), field, errors)
    _check_flags(raw, ('isRepeatable', 'isEnabled'), field, errors)
    return errors


def validate_campaign(raw, field: str = 'activeCampaign') -> dict:
    if not isinstance(raw, dict):
        return {field: 'Campaign must be an object.'}

    errors = {}
    if not str(raw.get('name') or '').strip():
        errors[f'{field}.name'] = 'Campaign name is required.'
    for key in ('validFrom', 'validTo'):
        if not _is_date(raw.get(key)):
            errors[f'{field}.{key}'] = f'{key} must be an ISO date.'
    _check_flags(raw, ('isActive', 'isDefault', 'isOneTimePerTransaction'), field, errors)

    for key in DEFAULT_RULE_FIELDS + CART_RULE_FIELDS:
        errors.update(validate_rule_json(raw.get(key), f'{field}.{key}'))

    configs = raw.get('productConfigurations') or []
    if not isinstance(configs, list):
        errors[f'{field}.productConfigurations'] = 'Must be a list.'
    else:
        for i, pc in enumerate(configs):
            path = f'{field}.productConfigurations[{i}]'
            if not isinstance(pc, dict):
                errors[path] = 'Product configuration must be an object.'
                continue
            if pc.get('productId') is None:
                errors[f'{path}.productId'] = 'Product id is required.'
            _check_whole(pc, ('priority',), path, errors)
            _check_flags(pc, ('isActiveForProductInCampaign',), path, errors)
            for key in PRODUCT_RULE_FIELDS:
                errors.update(validate_rule_json(pc.get(key), f'{path}.{key}'))

    buy_get = raw.get('buyGetRulesJson') or []
    if not isinstance(buy_get, list):
        errors[f'{field}.buyGetRulesJson'] = 'Must be a list.'
    else:
        for i, rule in enumerate(buy_get):
            errors.update(validate_buy_get_json(rule, f'{field}.buyGetRulesJson[{i}]'))
    return errors


def validate_cart(raw, field: str = 'cart') -> dict:
    if not isinstance(raw, list):
        return {field: 'Cart must be a list of line items.'}
    errors = {}
    for i, line in enumerate(raw):
        errors.update(validate_sale_item(line, f'{field}[{i}]'))
    return errors


def validate_calculate_request(body) -> dict:
    """
    Validate the body of POST /api/v1/calculate-discounts.

    Accepted shapes:
        {"cart": [...], "activeCampaign": {...}}
        {"cart": [...], "campaignId": 3}
        {"cart": [...]}                       ← stored default campaign
    """
    if not isinstance(body, dict):
        return {'body': 'Request body must be a JSON object.'}

    errors = {}
    if 'cart' not in body:
        errors['cart'] = 'Cart is required.'
    else:
        errors.update(validate_cart(body['cart']))

    if body.get('activeCampaign') is not None:
        errors.update(validate_campaign(body['activeCampaign']))
    elif body.get('campaignId') is not None and (body['campaignId'] == ''
                                                or not _is_whole_number(body['campaignId'])):
        errors['campaignId'] = 'Campaign id must be a whole number.'
    return errors


# ── Parsing ───────────────────────────────────────────────────────

def parse_rule_config(raw: Optional[dict], fallback_name: str = 'Rule') -> Optional[RuleConfig]:
    if raw is None:
        return None
    return RuleConfig(
        name             = str(raw.get('name') or fallback_name),
        type             = raw.get('type', FIXED),
        value            = to_decimal(raw.get('value', 0)),
        is_enabled       = _flag(raw, 'isEnabled', False),
        condition_min    = _opt_decimal(raw.get('conditionMin')),
        condition_max    = _opt_decimal(raw.get('conditionMax')),
        apply_fixed_once = _flag(raw, 'applyFixedOnce', False),
        max_applications = _opt_int(raw.get('maxApplications')),
        valid_from       = _to_date(raw.get('validFrom')),
        valid_to         = _to_date(raw.get('validTo')),
        description      = raw.get('description'),
    )


def _line_rules(raw: dict, fields) -> tuple:
    rules = []
    for key, kind in zip(fields, LINE_RULE_KINDS):
        config = parse_rule_config(raw.get(key), fallback_name=kind.label.capitalize())
        if config is not None:
            rules.append(kind(config))
    return tuple(rules)


def parse_sale_item(raw: dict) -> SaleItem:
    custom = raw.get('customDiscountValue')
    return SaleItem(
        line_id                 = str(_first(raw, 'lineId', 'saleItemId')),
        product_id              = str(raw['productId']),
        batch_id                = None if _first(raw, 'batchId', 'id') is None else str(_first(raw, 'batchId', 'id')),
        unit_price              = to_decimal(_first(raw, 'unitPrice', 'price')),
        quantity                = to_decimal(raw['quantity']),
        custom_discount_value   = None if custom is None else to_decimal(custom),
        custom_discount_type    = raw.get('customDiscountType') or FIXED,
        custom_apply_fixed_once = _flag(raw, 'customApplyFixedOnce', False),
        original_quantity       = _opt_decimal(raw.get('originalQuantity')),
    )


def parse_cart(raw: list) -> Cart:
    return Cart(items=tuple(parse_sale_item(line) for line in raw))


def parse_buy_get_rule(raw: dict, index: int = 0) -> BuyGetRule:
    return BuyGetRule(
        id               = str(raw.get('id') or f'bogo-{index}'),
        name             = str(raw.get('name') or f"Buy {raw['buyQuantity']} Get {raw['getQuantity']}"),
        buy_product_id   = str(raw['buyProductId']),
        buy_quantity     = to_decimal(raw['buyQuantity']),
        get_product_id   = str(raw['getProductId']),
        get_quantity     = to_decimal(raw['getQuantity']),
        discount_type    = raw.get('discountType', 'free'),
        discount_value   = to_decimal(raw.get('discountValue', 0)),
        is_repeatable    = _flag(raw, 'isRepeatable', False),
        max_applications = _opt_int(raw.get('maxApplications')),
        is_enabled       = _flag(raw, 'isEnabled', True),
    )


def parse_product_configuration(raw: dict, index: int = 0) -> ProductDiscountConfiguration:
    return ProductDiscountConfiguration(
        id           = str(raw.get('id') or f'pc-{index}'),
        product_id   = str(raw['productId']),
        rules        = _line_rules(raw, PRODUCT_RULE_FIELDS),
        is_active    = _flag(raw, 'isActiveForProductInCampaign', True),
        priority     = int(raw.get('priority') or 0),
        product_name = raw.get('productNameAtConfiguration'),
    )


def parse_campaign(raw: dict) -> DiscountSet:
    cart_rules = []
    for key, kind in zip(CART_RULE_FIELDS, CART_RULE_KINDS):
        config = parse_rule_config(raw.get(key), fallback_name=kind.label)
        if config is not None:
            cart_rules.append(kind(config))

    return DiscountSet(
        id                          = str(raw.get('id') or ''),
        name                        = str(raw['name']).strip(),
        is_active                   = _flag(raw, 'isActive', True),
        is_default                  = _flag(raw, 'isDefault', False),
        is_one_time_per_transaction = _flag(raw, 'isOneTimePerTransaction', False),
        valid_from                  = _to_date(raw.get('validFrom')),
        valid_to                    = _to_date(raw.get('validTo')),
        product_configurations      = tuple(parse_product_configuration(pc, i)
                                            for i, pc in enumerate(raw.get('productConfigurations') or [])),
        buy_get_rules               = tuple(parse_buy_get_rule(r, i)
                                            for i, r in enumerate(raw.get('buyGetRulesJson') or [])),
        default_rules               = _line_rules(raw, DEFAULT_RULE_FIELDS),
        cart_rules                  = tuple(cart_rules),
    )
