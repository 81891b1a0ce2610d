"""
app/discounts/__init__.py
-------------------------
Discount calculation blueprint.
URL prefix: /api/v1

The engine modules (types, resolver, rules, buy_get, cart_rules, engine)
import nothing from Flask or the DB and can be used on their own.
"""
from flask import Blueprint

discounts = Blueprint('discounts', __name__)

from app.discounts import routes  # noqa: E402, F401
