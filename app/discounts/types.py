"""
app/discounts/types.py
----------------------
Immutable snapshots the discount engine reads and produces.

Inputs (cart lines, campaign, rule configs) arrive already parsed from
JSON or built from DB rows. Rule kinds are a closed set of variants,
each knowing which measure its bounds gate.

All money is Decimal. Amounts are rounded once, at the point they are
written into an AppliedRuleInfo or a line or result total; intermediate
sub-rule math stays unrounded.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import ClassVar, List, Optional, Tuple


Q       = Decimal('0.01')   # quantize target
ZERO    = Decimal('0')
HUNDRED = Decimal('100')

PERCENTAGE = 'percentage'
FIXED      = 'fixed'
FREE       = 'free'

RULE_VALUE_TYPES    = (PERCENTAGE, FIXED)
BUY_GET_VALUE_TYPES = (PERCENTAGE, FIXED, FREE)


def to_decimal(value) -> Decimal:
    """Convert int / float / str / Decimal to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Decimal) -> Decimal:
    """Round half-up to cents."""
    return value.quantize(Q, rounding=ROUND_HALF_UP)


def _coerce(obj, *names):
    """Coerce numeric dataclass fields to Decimal in a frozen __post_init__."""
    for name in names:
        value = getattr(obj, name)
        if value is not None:
            object.__setattr__(obj, name, to_decimal(value))


# ── Cart ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SaleItem:
    """One cart line, quantity already converted to the base unit."""
    line_id:                 str
    product_id:              str
    unit_price:              Decimal
    quantity:                Decimal
    batch_id:                Optional[str] = None
    custom_discount_value:   Optional[Decimal] = None
    custom_discount_type:    str = FIXED
    custom_apply_fixed_once: bool = False
    original_quantity:       Optional[Decimal] = None   # set on partial refunds

    def __post_init__(self):
        _coerce(self, 'unit_price', 'quantity', 'custom_discount_value', 'original_quantity')

    @property
    def gross(self) -> Decimal:
        """Unrounded unit_price × quantity."""
        return self.unit_price * self.quantity

    @property
    def line_value(self) -> Decimal:
        return money(self.gross)

    @property
    def has_custom_discount(self) -> bool:
        return self.custom_discount_value is not None


@dataclass(frozen=True)
class Cart:
    items: Tuple[SaleItem, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'items', tuple(self.items))


# ── Rule configuration ────────────────────────────────────────────

@dataclass(frozen=True)
class RuleConfig:
    """
    A single percentage or fixed rule.

    condition_min / condition_max are inclusive; None means unbounded on
    that side. apply_fixed_once only matters for fixed rules: True applies
    the value once per line, False multiplies it by the line quantity.
    """
    name:             str
    type:             str
    value:            Decimal
    is_enabled:       bool = True
    condition_min:    Optional[Decimal] = None
    condition_max:    Optional[Decimal] = None
    apply_fixed_once: bool = False
    max_applications: Optional[int] = None
    valid_from:       Optional[date] = None
    valid_to:         Optional[date] = None
    description:      Optional[str] = None

    def __post_init__(self):
        _coerce(self, 'value', 'condition_min', 'condition_max')

    def is_live(self, as_of: Optional[date]) -> bool:
        """False when as_of falls outside the validity window."""
        if as_of is None:
            return True
        if self.valid_from and as_of < self.valid_from:
            return False
        if self.valid_to and as_of > self.valid_to:
            return False
        return True

    def condition_met(self, measure: Decimal) -> bool:
        if self.condition_min is not None and measure < self.condition_min:
            return False
        if self.condition_max is not None and measure > self.condition_max:
            return False
        return True


@dataclass(frozen=True)
class LineRule:
    """Base of the four per-line rule kinds. `measure` is what the bounds gate."""
    config: RuleConfig

    kind:  ClassVar[str] = ''
    label: ClassVar[str] = ''

    def measure(self, item: SaleItem) -> Decimal:
        raise NotImplementedError


@dataclass(frozen=True)
class ValueRule(LineRule):
    kind  = 'line_item_value'
    label = 'line value rule'

    def measure(self, item: SaleItem) -> Decimal:
        return item.line_value


@dataclass(frozen=True)
class QuantityRule(LineRule):
    kind  = 'line_item_quantity'
    label = 'quantity rule'

    def measure(self, item: SaleItem) -> Decimal:
        return item.quantity


@dataclass(frozen=True)
class SpecificQtyThresholdRule(LineRule):
    kind  = 'specific_qty_threshold'
    label = 'quantity threshold rule'

    def measure(self, item: SaleItem) -> Decimal:
        return item.quantity


@dataclass(frozen=True)
class SpecificUnitPriceThresholdRule(LineRule):
    kind  = 'specific_unit_price'
    label = 'unit price threshold rule'

    def measure(self, item: SaleItem) -> Decimal:
        return item.unit_price


# Evaluation order within a rule source.
LINE_RULE_KINDS = (ValueRule, QuantityRule, SpecificQtyThresholdRule, SpecificUnitPriceThresholdRule)


@dataclass(frozen=True)
class CartRule:
    config: RuleConfig

    kind:  ClassVar[str] = ''
    label: ClassVar[str] = ''

    def measure(self, subtotal: Decimal, quantity: Decimal) -> Decimal:
        raise NotImplementedError


@dataclass(frozen=True)
class CartPriceRule(CartRule):
    kind  = 'global_cart_price'
    label = 'Cart price threshold rule'

    def measure(self, subtotal: Decimal, quantity: Decimal) -> Decimal:
        return subtotal


@dataclass(frozen=True)
class CartQuantityRule(CartRule):
    kind  = 'global_cart_quantity'
    label = 'Cart quantity threshold rule'

    def measure(self, subtotal: Decimal, quantity: Decimal) -> Decimal:
        return quantity


CART_RULE_KINDS = (CartPriceRule, CartQuantityRule)


@dataclass(frozen=True)
class ProductDiscountConfiguration:
    """Up to four line rules bound to one product within one campaign."""
    id:           str
    product_id:   str
    rules:        Tuple[LineRule, ...] = ()
    is_active:    bool = True          # isActiveForProductInCampaign
    priority:     int = 0              # lower wins when a product has several configs
    product_name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'rules', tuple(self.rules))


@dataclass(frozen=True)
class BuyGetRule:
    id:               str
    name:             str
    buy_product_id:   str
    buy_quantity:     Decimal
    get_product_id:   str
    get_quantity:     Decimal
    discount_type:    str = FREE
    discount_value:   Decimal = ZERO
    is_repeatable:    bool = False
    max_applications: Optional[int] = None
    is_enabled:       bool = True

    def __post_init__(self):
        _coerce(self, 'buy_quantity', 'get_quantity', 'discount_value')


@dataclass(frozen=True)
class DiscountSet:
    """A campaign snapshot. The engine only ever reads it."""
    id:                          str
    name:                        str
    is_active:                   bool = True
    is_default:                  bool = False
    is_one_time_per_transaction: bool = False
    valid_from:                  Optional[date] = None
    valid_to:                    Optional[date] = None
    product_configurations:      Tuple[ProductDiscountConfiguration, ...] = ()
    batch_configurations:        Tuple = ()      # deprecated tier, always empty
    buy_get_rules:               Tuple[BuyGetRule, ...] = ()
    default_rules:               Tuple[LineRule, ...] = ()
    cart_rules:                  Tuple[CartRule, ...] = ()

    def __post_init__(self):
        for name in ('product_configurations', 'batch_configurations', 'buy_get_rules',
                     'default_rules', 'cart_rules'):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    def product_configuration_for(self, product_id: str) -> Optional[ProductDiscountConfiguration]:
        """Active config for product_id with the lowest priority (first declared on ties)."""
        candidates = [c for c in self.product_configurations
                      if c.is_active and c.product_id == product_id]
        if not candidates:
            return None
        return min(candidates, key=lambda c: c.priority)


# ── Output ────────────────────────────────────────────────────────

class SourceKind(Enum):
    """Rule source governing a line's item-level discount, highest priority first."""
    CUSTOM  = 'custom'
    BATCH   = 'batch'      # deprecated, never selected
    PRODUCT = 'product'
    DEFAULT = 'default'
    NONE    = 'none'


@dataclass(frozen=True)
class AppliedRuleInfo:
    """One firing of one rule against one line or the cart."""
    discount_campaign_name:   str
    source_rule_name:         str
    rule_type:                str
    total_calculated_discount: Decimal
    product_id_affected:      Optional[str] = None
    batch_id_affected:        Optional[str] = None
    applied_once:             bool = False
    application_count:        int = 1
    description:              str = ''


@dataclass(frozen=True)
class LineItemResult:
    item:          SaleItem
    source:        SourceKind
    applied_rules: Tuple[AppliedRuleInfo, ...]
    line_value:    Decimal
    line_discount: Decimal
    net_price:     Decimal

    @property
    def line_id(self) -> str:
        return self.item.line_id


@dataclass(frozen=True)
class DiscountResult:
    line_items:          Tuple[LineItemResult, ...]
    applied_cart_rules:  Tuple[AppliedRuleInfo, ...]
    original_subtotal:   Decimal
    total_item_discount: Decimal
    total_cart_discount: Decimal
    total_discount:      Decimal
    final_total:         Decimal

    def get_line_item(self, line_id: str) -> Optional[LineItemResult]:
        for line in self.line_items:
            if line.line_id == line_id:
                return line
        return None

    def get_applied_rules_summary(self) -> List[AppliedRuleInfo]:
        """Every line's applied rules in cart order, then the cart rules."""
        summary: List[AppliedRuleInfo] = []
        for line in self.line_items:
            summary.extend(line.applied_rules)
        summary.extend(self.applied_cart_rules)
        return summary


# ── Working state for one evaluation pass ─────────────────────────

@dataclass
class LineLedger:
    """
    Mutable per-line accumulator used while the stages run.
    Frozen into a LineItemResult by the aggregator.

    `discount` is the unrounded running total; line_discount and
    net_price round it once.
    """
    item:    SaleItem
    source:  SourceKind = SourceKind.NONE
    applied: List[AppliedRuleInfo] = field(default_factory=list)
    discount: Decimal = ZERO

    @property
    def line_value(self) -> Decimal:
        return self.item.line_value

    @property
    def remaining(self) -> Decimal:
        return self.line_value - self.discount

    @property
    def line_discount(self) -> Decimal:
        return money(self.discount)

    @property
    def net_price(self) -> Decimal:
        return self.line_value - self.line_discount

    def take(self, raw_amount: Decimal) -> Decimal:
        """
        Clamp raw_amount to what is left of the line and book it, unrounded.
        Returns the booked amount (ZERO when nothing is left).
        """
        amount = max(ZERO, min(raw_amount, self.remaining))
        self.discount += amount
        return amount

    def record(self, info: AppliedRuleInfo) -> None:
        self.applied.append(info)
