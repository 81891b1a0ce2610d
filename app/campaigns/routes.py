"""
app/campaigns/routes.py
-----------------------
Read-only JSON views over stored campaigns, plus a preview endpoint that
evaluates a sample cart against one campaign (the admin "tester").
"""
from datetime import date

from flask import abort, current_app, jsonify, request

from app import db
from app.campaigns import campaigns
from app.campaigns.models import DiscountCampaign
from app.discounts.engine import calculate_discounts
from app.discounts.rules import collect_rule_problems
from app.discounts.serializers import result_to_dict
from app.discounts.validators import parse_cart, validate_cart


# ── Lookup (used by the discounts blueprint) ─────────────────────

def get_active_campaign(campaign_id=None):
    """
    Return the campaign to price a sale with, or None.

    With an id: that campaign, if it is active and within its dates.
    Without:    the newest date-valid active campaign flagged is_default.
    """
    if campaign_id is not None:
        campaign = db.session.get(DiscountCampaign, int(campaign_id))
        if campaign is None or not campaign.is_valid_today:
            return None
        return campaign

    today = date.today()
    return DiscountCampaign.query.filter(
        DiscountCampaign.is_active == True,   # noqa: E712
        DiscountCampaign.is_default == True,  # noqa: E712
        db.or_(DiscountCampaign.valid_from.is_(None), DiscountCampaign.valid_from <= today),
        db.or_(DiscountCampaign.valid_to.is_(None),   DiscountCampaign.valid_to   >= today),
    ).order_by(DiscountCampaign.id.desc()).first()


# ── List ──────────────────────────────────────────────────────────

@campaigns.route('/')
def index():
    rows = DiscountCampaign.query.order_by(DiscountCampaign.is_active.desc(),
                                           DiscountCampaign.id.desc()).all()
    return jsonify([c.summary_dict() for c in rows])


# ── Detail ────────────────────────────────────────────────────────

@campaigns.route('/<int:campaign_id>')
def detail(campaign_id):
    campaign = db.session.get(DiscountCampaign, campaign_id) or abort(404)
    data = campaign.to_dict()
    data['ruleProblems'] = [
        {'rule': where, 'errors': errors}
        for where, errors in collect_rule_problems(campaign.to_snapshot())
    ]
    return jsonify(data)


# ── Tester ────────────────────────────────────────────────────────

@campaigns.route('/<int:campaign_id>/preview', methods=['POST'])
def preview(campaign_id):
    """
    Evaluate a sample cart against one stored campaign, ignoring whether
    it is active or in date. Body: {"cart": [...]}.
    """
    campaign = db.session.get(DiscountCampaign, campaign_id) or abort(404)

    body = request.get_json(silent=True) or {}
    errors = validate_cart(body.get('cart'))
    if errors:
        return jsonify({'message': 'Invalid request body.', 'errors': errors}), 400

    result = calculate_discounts(campaign.to_snapshot(), parse_cart(body['cart']))
    current_app.logger.info(f"Preview of campaign {campaign.name!r}: discount={result.total_discount}")
    return jsonify(result_to_dict(result))
