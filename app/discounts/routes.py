"""
app/discounts/routes.py
-----------------------
HTTP entry point for discount calculation (web POS, mobile clients).
"""
from datetime import date

from flask import current_app, jsonify, request

from app.discounts import discounts
from app.discounts.engine import calculate_discounts
from app.discounts.serializers import result_to_dict
from app.discounts.validators import (
    parse_campaign, parse_cart, validate_calculate_request,
)


def evaluation_date():
    """Date used to gate rule validity windows, or None when not enforced."""
    if current_app.config.get('DISCOUNT_ENFORCE_VALIDITY', True):
        return date.today()
    return None


@discounts.route('/calculate-discounts', methods=['POST'])
def calculate():
    """
    Body: {"cart": [...], "activeCampaign": {...}}  or  {"cart": [...], "campaignId": 3}.
    With neither campaign field the stored default campaign is used.
    """
    body = request.get_json(silent=True)
    errors = validate_calculate_request(body)
    if errors:
        current_app.logger.info(f"Rejected calculate-discounts body: {len(errors)} field error(s)")
        return jsonify({'message': 'Invalid request body.', 'errors': errors}), 400

    cart = parse_cart(body['cart'])

    if body.get('activeCampaign') is not None:
        campaign = parse_campaign(body['activeCampaign'])
    else:
        from app.campaigns.routes import get_active_campaign
        row = get_active_campaign(body.get('campaignId'))
        if row is None:
            return jsonify({'status': 'error', 'message': 'No active discount campaign found.'}), 404
        campaign = row.to_snapshot()

    result = calculate_discounts(campaign, cart, as_of=evaluation_date())
    current_app.logger.info(
        f"Discounts calculated: campaign={campaign.name!r} lines={len(cart.items)} "
        f"discount={result.total_discount} total={result.final_total}"
    )
    return jsonify(result_to_dict(result)), 200
