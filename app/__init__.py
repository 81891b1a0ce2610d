import click
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()


def create_app(config_name='default'):
    """Application factory — creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # ── Logging ───────────────────────────────────────────────────
    from app.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    # ── Blueprints ────────────────────────────────────────────────
    from app.discounts import discounts as discounts_blueprint
    app.register_blueprint(discounts_blueprint, url_prefix='/api/v1')

    from app.campaigns import campaigns as campaigns_blueprint
    app.register_blueprint(campaigns_blueprint, url_prefix='/api/v1/campaigns')

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})

    # ── Error Handlers ────────────────────────────────────────────
    from app.discounts.errors import DiscountError

    @app.errorhandler(DiscountError)
    def handle_discount_error(error):
        app.logger.warning(f"DiscountError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    def internal_error(e):
        app.logger.error(f"Unhandled error: {e}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    # ── ProxyFix for Render (HTTPS Termination) ──
    from werkzeug.middleware.proxy_fix import ProxyFix
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        click.echo('✅  Database tables created.')

    @app.cli.command('show-campaigns')
    def show_campaigns():
        """List stored discount campaigns (diagnostic)."""
        from app.campaigns.models import DiscountCampaign
        rows = DiscountCampaign.query.order_by(DiscountCampaign.id).all()
        if not rows:
            click.echo('No campaigns found. Run flask seed-demo first.')
            return
        click.echo(f'{"ID":<6} {"Name":<32} {"Active":<8} {"Default":<8} {"Valid today"}')
        click.echo('─' * 68)
        for row in rows:
            click.echo(f'{row.id:<6} {row.name[:31]:<32} {str(row.is_active):<8} '
                       f'{str(row.is_default):<8} {row.is_valid_today}')

    @app.cli.command('check-campaigns')
    def check_campaigns():
        """Report malformed rules; the engine skips them at checkout."""
        from app.campaigns.models import DiscountCampaign
        from app.discounts.rules import collect_rule_problems

        found = 0
        for row in DiscountCampaign.query.order_by(DiscountCampaign.id).all():
            for where, errors in collect_rule_problems(row.to_snapshot()):
                found += 1
                click.echo(f'⚠️  [{row.id}] {row.name}: {where}: {"; ".join(errors)}')
        if not found:
            click.echo('✅  All campaign rules are well-formed.')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Populate database with a demo default campaign."""
        from app.campaigns.models import DiscountCampaign, ProductDiscountConfig

        click.echo("🌱 Seeding demo campaign...")
        db.create_all()

        if DiscountCampaign.query.filter_by(name='Demo Campaign').first():
            click.echo('ℹ️   Demo campaign already exists.')
            return

        campaign = DiscountCampaign(name='Demo Campaign', is_active=True, is_default=True,
                                    description='Seeded by flask seed-demo')
        campaign.set_rule('defaultLineItemValueRuleJson', {
            'isEnabled': True, 'name': '10% off lines over 500', 'type': 'percentage',
            'value': 10, 'conditionMin': 500,
        })
        campaign.set_rule('globalCartPriceRuleJson', {
            'isEnabled': True, 'name': '5% off bills over 2000', 'type': 'percentage',
            'value': 5, 'conditionMin': 2000,
        })
        campaign.buy_get_list = [{
            'id': 'demo-bogo', 'name': 'Buy 2 Rice Get 1 Sugar Free',
            'buyProductId': 'RICE', 'buyQuantity': 2,
            'getProductId': 'SUGAR', 'getQuantity': 1,
            'discountType': 'free', 'discountValue': 0, 'isRepeatable': True,
        }]

        config_row = ProductDiscountConfig(product_id='SOAP', product_name='Bath Soap')
        config_row.set_rule('lineItemQuantityRuleJson', {
            'isEnabled': True, 'name': '₹5 off each soap from 3', 'type': 'fixed',
            'value': 5, 'conditionMin': 3, 'applyFixedOnce': False,
        })
        campaign.product_configurations.append(config_row)

        db.session.add(campaign)
        db.session.commit()
        click.echo(f'✅  Demo campaign created (id={campaign.id}).')
