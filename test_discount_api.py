"""
test_discount_api.py — HTTP, storage and CLI tests for the discount service.
Run: pytest test_discount_api.py -v
"""
import pytest
from datetime import date, timedelta
from decimal import Decimal

from app import create_app, db
from app.campaigns.models import DiscountCampaign, ProductDiscountConfig
from app.discounts.validators import (
    parse_campaign, parse_rule_config, parse_sale_item, validate_calculate_request,
)


# ── Fixtures ──────────────────────────────────────────────────────

@pytest.fixture(scope='function')
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def value_rule(name='10% over 500', value=10, **kwargs):
    data = {'isEnabled': True, 'name': name, 'type': 'percentage', 'value': value, 'conditionMin': 500}
    data.update(kwargs)
    return data


def cart_line(line_id='L1', product_id='P1', qty=10, price=100, **kwargs):
    data = {'lineId': line_id, 'productId': product_id, 'batchId': f'{product_id}-B1',
            'quantity': qty, 'price': price}
    data.update(kwargs)
    return data


def make_campaign(name='Store Sale', rules=None, configs=(), buy_get=(), **kwargs):
    kwargs.setdefault('is_active', True)
    c = DiscountCampaign(name=name, **kwargs)
    for key, value in (rules or {}).items():
        c.set_rule(key, value)
    c.buy_get_list = list(buy_get)
    for pc in configs:
        c.product_configurations.append(pc)
    db.session.add(c)
    db.session.commit()
    return c


def post_calc(client, body):
    return client.post('/api/v1/calculate-discounts', json=body)


# ── 1. Inline campaign ────────────────────────────────────────────

def test_calculate_with_inline_campaign(client):
    res = post_calc(client, {
        'cart': [cart_line()],
        'activeCampaign': {'name': 'Inline', 'defaultLineItemValueRuleJson': value_rule()},
    })
    assert res.status_code == 200
    data = res.get_json()
    assert data['originalSubtotal'] == 1000.0
    assert data['totalItemDiscount'] == 100.0
    assert data['finalTotal'] == 900.0

    li = data['lineItems'][0]
    assert li['lineId'] == 'L1'
    assert li['ruleSource'] == 'default'
    assert li['netPrice'] == 900.0
    assert li['appliedRules'][0]['ruleType'] == 'campaign_default_line_item_value'
    assert li['appliedRules'][0]['discountCampaignName'] == 'Inline'
    assert data['appliedRulesSummary'] == li['appliedRules']


def test_inline_rule_outside_window_is_skipped(client):
    expired = value_rule(validTo=(date.today() - timedelta(days=1)).isoformat())
    res = post_calc(client, {
        'cart': [cart_line()],
        'activeCampaign': {'name': 'Inline', 'defaultLineItemValueRuleJson': expired},
    })
    assert res.status_code == 200
    assert res.get_json()['totalDiscount'] == 0.0


# ── 2. Bad requests ───────────────────────────────────────────────

def test_missing_cart_and_bad_fields_return_400(client):
    res = post_calc(client, {'activeCampaign': {'name': ''}})
    assert res.status_code == 400
    errors = res.get_json()['errors']
    assert 'cart' in errors
    assert 'activeCampaign.name' in errors

    res = post_calc(client, {'cart': [{'lineId': 'L1', 'productId': 'P1', 'quantity': 'two'}]})
    errors = res.get_json()['errors']
    assert set(errors) == {'cart[0].price', 'cart[0].quantity'}


def test_non_json_body_returns_400(client):
    res = client.post('/api/v1/calculate-discounts', data='cart=1', content_type='text/plain')
    assert res.status_code == 400
    assert 'body' in res.get_json()['errors']


def test_non_integer_counts_return_400_not_500(client):
    res = post_calc(client, {
        'cart': [cart_line()],
        'activeCampaign': {
            'name': 'Inline',
            'defaultLineItemValueRuleJson': value_rule(maxApplications=float('inf')),
            'productConfigurations': [{'productId': 'P1', 'priority': 'first'}],
            'buyGetRulesJson': [{'buyProductId': 'A', 'buyQuantity': 2, 'getProductId': 'B',
                                 'getQuantity': 1, 'maxApplications': 'lots'}],
        },
    })
    assert res.status_code == 400
    assert set(res.get_json()['errors']) == {
        'activeCampaign.defaultLineItemValueRuleJson.maxApplications',
        'activeCampaign.productConfigurations[0].priority',
        'activeCampaign.buyGetRulesJson[0].maxApplications',
    }

    res = post_calc(client, {'cart': [cart_line()], 'campaignId': float('inf')})
    assert res.status_code == 400
    assert 'campaignId' in res.get_json()['errors']


def test_string_flags_return_400(client):
    res = post_calc(client, {
        'cart': [cart_line(customDiscountValue=5, customApplyFixedOnce='yes')],
        'activeCampaign': {
            'name': 'Inline',
            'isOneTimePerTransaction': 'false',
            'defaultLineItemValueRuleJson': value_rule(isEnabled='false'),
            'buyGetRulesJson': [{'buyProductId': 'A', 'buyQuantity': 2, 'getProductId': 'B',
                                 'getQuantity': 1, 'isRepeatable': 1}],
        },
    })
    assert res.status_code == 400
    assert set(res.get_json()['errors']) == {
        'cart[0].customApplyFixedOnce',
        'activeCampaign.isOneTimePerTransaction',
        'activeCampaign.defaultLineItemValueRuleJson.isEnabled',
        'activeCampaign.buyGetRulesJson[0].isRepeatable',
    }


@pytest.mark.parametrize('cart, message', [
    ([], 'Cart is empty.'),
    ([cart_line(qty=0)], "Line 'L1' has a non-positive quantity."),
    ([cart_line(), cart_line()], "Duplicate line id 'L1'."),
])
def test_invalid_cart_rejected_by_engine(client, cart, message):
    res = post_calc(client, {'cart': cart, 'activeCampaign': {'name': 'Inline'}})
    assert res.status_code == 400
    data = res.get_json()
    assert data['status'] == 'error'
    assert data['message'] == message


# ── 3. Stored campaigns ───────────────────────────────────────────

def test_calculate_with_stored_campaign_id(client):
    pc = ProductDiscountConfig(product_id='P1')
    pc.set_rule('lineItemQuantityRuleJson', {
        'isEnabled': True, 'name': '₹5 each', 'type': 'fixed', 'value': 5, 'conditionMin': 5,
    })
    c = make_campaign(configs=[pc])

    res = post_calc(client, {'cart': [cart_line(qty=10, price=20)], 'campaignId': c.id})
    assert res.status_code == 200
    data = res.get_json()
    # ₹5 × 10
    assert data['totalItemDiscount'] == 50.0
    assert data['lineItems'][0]['ruleSource'] == 'product'
    assert data['lineItems'][0]['appliedRules'][0]['ruleType'] == 'product_config_line_item_quantity'


def test_default_campaign_used_when_none_given(client):
    make_campaign('Old default', is_default=True, rules={'defaultLineItemValueRuleJson': value_rule(value=5)})
    make_campaign('New default', is_default=True, rules={'defaultLineItemValueRuleJson': value_rule()})
    make_campaign('Not default', rules={'defaultLineItemValueRuleJson': value_rule(value=50)})

    res = post_calc(client, {'cart': [cart_line()]})
    assert res.status_code == 200
    data = res.get_json()
    assert data['totalDiscount'] == 100.0
    assert data['appliedRulesSummary'][0]['discountCampaignName'] == 'New default'


def test_no_usable_campaign_returns_404(client):
    assert post_calc(client, {'cart': [cart_line()]}).status_code == 404

    inactive = make_campaign('Paused', is_active=False, is_default=True)
    assert post_calc(client, {'cart': [cart_line()], 'campaignId': inactive.id}).status_code == 404

    make_campaign('Last month', is_default=True, valid_to=date.today() - timedelta(days=1))
    assert post_calc(client, {'cart': [cart_line()]}).status_code == 404
    assert post_calc(client, {'cart': [cart_line()], 'campaignId': 999}).status_code == 404


def test_preview_ignores_active_flag(client):
    c = make_campaign('Draft', is_active=False, rules={'defaultLineItemValueRuleJson': value_rule()})
    res = client.post(f'/api/v1/campaigns/{c.id}/preview', json={'cart': [cart_line()]})
    assert res.status_code == 200
    assert res.get_json()['finalTotal'] == 900.0

    res = client.post(f'/api/v1/campaigns/{c.id}/preview', json={})
    assert res.status_code == 400


def test_campaign_list_and_detail(client):
    c = make_campaign('Broken', is_default=True,
                      rules={'defaultLineItemValueRuleJson': value_rule(value=150)})

    res = client.get('/api/v1/campaigns/')
    assert res.status_code == 200
    assert [row['name'] for row in res.get_json()] == ['Broken']
    assert res.get_json()[0]['isValidToday'] is True

    res = client.get(f'/api/v1/campaigns/{c.id}')
    data = res.get_json()
    assert data['defaultLineItemValueRuleJson']['value'] == 150
    assert data['ruleProblems'] == [{
        'rule': 'default line_item_value',
        'errors': ['Percentage discount cannot exceed 100%'],
    }]

    assert client.get('/api/v1/campaigns/404').status_code == 404


def test_health(client):
    res = client.get('/health')
    assert res.status_code == 200
    assert res.get_json() == {'status': 'ok'}


# ── 4. CLI ────────────────────────────────────────────────────────

def test_seed_demo_then_price_a_basket(app, client):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['seed-demo'])
    assert 'Demo campaign created' in result.output
    assert 'already exists' in runner.invoke(args=['seed-demo']).output
    assert 'well-formed' in runner.invoke(args=['check-campaigns']).output

    res = post_calc(client, {'cart': [
        cart_line('L1', 'RICE', qty=2, price=50),
        cart_line('L2', 'SUGAR', qty=1, price=40),
        cart_line('L3', 'SOAP', qty=3, price=20),
    ]})
    assert res.status_code == 200
    data = res.get_json()
    # free sugar ₹40 + ₹5 × 3 soaps
    assert data['originalSubtotal'] == 200.0
    assert data['totalItemDiscount'] == 55.0
    assert data['totalCartDiscount'] == 0.0
    assert data['finalTotal'] == 145.0


def test_check_campaigns_reports_bad_rule(app):
    make_campaign('Broken', rules={'globalCartPriceRuleJson': value_rule(conditionMin=-1)})
    output = app.test_cli_runner().invoke(args=['check-campaigns']).output
    assert 'Broken' in output
    assert 'Minimum condition cannot be negative' in output


# ── 5. Request parsing ────────────────────────────────────────────

def test_sale_item_accepts_alternate_keys():
    item = parse_sale_item({'saleItemId': 7, 'productId': 'P1', 'id': 'B9',
                            'unitPrice': '12.50', 'quantity': 2})
    assert item.line_id == '7'
    assert item.batch_id == 'B9'
    assert item.unit_price == Decimal('12.50')
    assert item.custom_discount_value is None
    assert item.custom_discount_type == 'fixed'


def test_rule_json_defaults():
    config = parse_rule_config({'name': 'Bare', 'value': 5})
    assert config.is_enabled is False
    assert config.type == 'fixed'
    assert config.apply_fixed_once is False
    assert parse_rule_config(None) is None
    # only a JSON true switches a flag on
    assert parse_rule_config({'name': 'Str', 'isEnabled': 'false'}).is_enabled is False
    assert parse_rule_config({'name': 'On', 'isEnabled': True}).is_enabled is True


def test_campaign_parse_keeps_rule_order_and_buy_get():
    snapshot = parse_campaign({
        'name': ' Mixed ',
        'defaultLineItemQuantityRuleJson': value_rule('Qty'),
        'defaultLineItemValueRuleJson': value_rule('Value'),
        'globalCartQuantityRuleJson': value_rule('Cart qty'),
        'buyGetRulesJson': [{'buyProductId': 'A', 'buyQuantity': 2, 'getProductId': 'B', 'getQuantity': 1}],
        'productConfigurations': [{'productId': 'P1', 'isActiveForProductInCampaign': False}],
    })
    assert snapshot.name == 'Mixed'
    assert [r.config.name for r in snapshot.default_rules] == ['Value', 'Qty']
    assert [r.kind for r in snapshot.cart_rules] == ['global_cart_quantity']
    assert snapshot.buy_get_rules[0].name == 'Buy 2 Get 1'
    assert snapshot.buy_get_rules[0].discount_type == 'free'
    assert snapshot.product_configurations[0].is_active is False


def test_validate_request_reports_nested_paths():
    errors = validate_calculate_request({
        'cart': [cart_line()],
        'activeCampaign': {
            'name': 'X',
            'globalCartPriceRuleJson': {'type': 'bogus', 'value': 'ten'},
            'buyGetRulesJson': [{'buyProductId': 'A'}],
        },
    })
    assert 'activeCampaign.globalCartPriceRuleJson.type' in errors
    assert 'activeCampaign.globalCartPriceRuleJson.value' in errors
    assert 'activeCampaign.buyGetRulesJson[0].getProductId' in errors
    assert 'activeCampaign.buyGetRulesJson[0].buyQuantity' in errors
    assert validate_calculate_request({'cart': [], 'campaignId': 'abc'}) == {
        'campaignId': 'Campaign id must be a whole number.',
    }
