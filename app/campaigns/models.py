"""
app/campaigns/models.py
-----------------------
Stored discount campaigns.

Rule columns hold JSON text in the same camelCase shape the API accepts:
  {"isEnabled": true, "name": "10% over 500", "type": "percentage",
   "value": 10, "conditionMin": 500, "conditionMax": null,
   "applyFixedOnce": false}

to_dict() yields the API shape; to_snapshot() turns it into the
immutable DiscountSet the engine reads.
"""
import json
from datetime import datetime, date
from app import db
from app.discounts.validators import (
    CART_RULE_FIELDS, DEFAULT_RULE_FIELDS, PRODUCT_RULE_FIELDS, parse_campaign,
)


def _load(raw, default=None):
    try:
        return json.loads(raw) if raw else default
    except (ValueError, TypeError):
        return default


def _dump(value):
    return None if value is None else json.dumps(value)


class DiscountCampaign(db.Model):
    """A named, time-boxed collection of discount rules (a "discount set")."""
    __tablename__ = 'discount_sets'

    id                          = db.Column(db.Integer, primary_key=True)
    name                        = db.Column(db.String(200), nullable=False)
    description                 = db.Column(db.String(300), nullable=True)
    is_active                   = db.Column(db.Boolean, nullable=False, default=True)
    is_default                  = db.Column(db.Boolean, nullable=False, default=False)
    is_one_time_per_transaction = db.Column(db.Boolean, nullable=False, default=False)
    valid_from                  = db.Column(db.Date, nullable=True)    # None = always eligible
    valid_to                    = db.Column(db.Date, nullable=True)    # None = never expires

    # Rule JSON (NULL = no rule of this kind)
    global_cart_price_rule                 = db.Column(db.Text, nullable=True)
    global_cart_quantity_rule              = db.Column(db.Text, nullable=True)
    default_line_item_value_rule           = db.Column(db.Text, nullable=True)
    default_line_item_quantity_rule        = db.Column(db.Text, nullable=True)
    default_specific_qty_threshold_rule    = db.Column(db.Text, nullable=True)
    default_specific_unit_price_threshold_rule = db.Column(db.Text, nullable=True)
    buy_get_rules                          = db.Column(db.Text, nullable=False, default='[]')

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    product_configurations = db.relationship(
        'ProductDiscountConfig', backref='campaign', lazy='select',
        cascade='all, delete-orphan', order_by='ProductDiscountConfig.id',
    )

    # API key → column, in the order the API lists them
    RULE_COLUMNS = dict(zip(
        DEFAULT_RULE_FIELDS + CART_RULE_FIELDS,
        (
            'default_line_item_value_rule',
            'default_line_item_quantity_rule',
            'default_specific_qty_threshold_rule',
            'default_specific_unit_price_threshold_rule',
            'global_cart_price_rule',
            'global_cart_quantity_rule',
        ),
    ))

    # ── Helpers ───────────────────────────────────────────────────

    def get_rule(self, key: str):
        return _load(getattr(self, self.RULE_COLUMNS[key]))

    def set_rule(self, key: str, value):
        setattr(self, self.RULE_COLUMNS[key], _dump(value))

    @property
    def buy_get_list(self) -> list:
        return _load(self.buy_get_rules, [])

    @buy_get_list.setter
    def buy_get_list(self, value: list):
        self.buy_get_rules = json.dumps(value or [])

    @property
    def is_valid_today(self) -> bool:
        """True if the campaign is active and within its date range."""
        if not self.is_active:
            return False
        today = date.today()
        if self.valid_from and today < self.valid_from:
            return False
        if self.valid_to and today > self.valid_to:
            return False
        return True

    def summary_dict(self) -> dict:
        return {
            'id':                      self.id,
            'name':                    self.name,
            'isActive':                self.is_active,
            'isDefault':               self.is_default,
            'isOneTimePerTransaction': self.is_one_time_per_transaction,
            'validFrom':               self.valid_from.isoformat() if self.valid_from else None,
            'validTo':                 self.valid_to.isoformat() if self.valid_to else None,
            'isValidToday':            self.is_valid_today,
        }

    def to_dict(self) -> dict:
        data = self.summary_dict()
        data['description'] = self.description
        for key in self.RULE_COLUMNS:
            data[key] = self.get_rule(key)
        data['productConfigurations'] = [pc.to_dict() for pc in self.product_configurations]
        data['buyGetRulesJson'] = self.buy_get_list
        return data

    def to_snapshot(self):
        """Immutable engine view of this campaign."""
        return parse_campaign(self.to_dict())

    def __repr__(self):
        return f'<DiscountCampaign {self.name!r} active={self.is_active}>'


class ProductDiscountConfig(db.Model):
    """Up to four line rules bound to one product inside one campaign."""
    __tablename__ = 'product_discount_configs'

    id              = db.Column(db.Integer, primary_key=True)
    discount_set_id = db.Column(db.Integer, db.ForeignKey('discount_sets.id'), nullable=False, index=True)
    product_id      = db.Column(db.String(100), nullable=False, index=True)   # general product id
    product_name    = db.Column(db.String(200), nullable=True)                # snapshot at configuration
    is_active       = db.Column(db.Boolean, nullable=False, default=True)
    priority        = db.Column(db.Integer, nullable=False, default=0)        # lower wins

    line_item_value_rule               = db.Column(db.Text, nullable=True)
    line_item_quantity_rule            = db.Column(db.Text, nullable=True)
    specific_qty_threshold_rule        = db.Column(db.Text, nullable=True)
    specific_unit_price_threshold_rule = db.Column(db.Text, nullable=True)

    RULE_COLUMNS = dict(zip(
        PRODUCT_RULE_FIELDS,
        (
            'line_item_value_rule',
            'line_item_quantity_rule',
            'specific_qty_threshold_rule',
            'specific_unit_price_threshold_rule',
        ),
    ))

    def get_rule(self, key: str):
        return _load(getattr(self, self.RULE_COLUMNS[key]))

    def set_rule(self, key: str, value):
        setattr(self, self.RULE_COLUMNS[key], _dump(value))

    def to_dict(self) -> dict:
        data = {
            'id':                           str(self.id),
            'productId':                    self.product_id,
            'productNameAtConfiguration':   self.product_name,
            'isActiveForProductInCampaign': self.is_active,
            'priority':                     self.priority,
        }
        for key in self.RULE_COLUMNS:
            data[key] = self.get_rule(key)
        return data

    def __repr__(self):
        return f'<ProductDiscountConfig set={self.discount_set_id} product={self.product_id!r}>'
