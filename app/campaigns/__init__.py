"""
app/campaigns/__init__.py
-------------------------
Stored discount campaigns blueprint (read-only JSON + preview).
URL prefix: /api/v1/campaigns
"""
from flask import Blueprint

campaigns = Blueprint('campaigns', __name__)

from app.campaigns import routes  # noqa: E402, F401
