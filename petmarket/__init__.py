import click
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from werkzeug.middleware.proxy_fix import ProxyFix
from config import config

db = SQLAlchemy()


def create_app(config_name='default', config_overrides=None):
    """Application factory — creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    if config_overrides:
        app.config.update(config_overrides)

    # ── Logging ───────────────────────────────────────────────────
    from petmarket.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    # ── Blueprints ────────────────────────────────────────────────
    from petmarket.main import main as main_blueprint
    app.register_blueprint(main_blueprint)

    from petmarket.billing import billing as billing_blueprint
    app.register_blueprint(billing_blueprint, url_prefix='/billing')

    # Collaborator tables have no routes of their own but must be
    # registered before create_all().
    from petmarket.auth import models as _auth_models  # noqa: F401
    from petmarket.catalog import models as _catalog_models  # noqa: F401

    # ── Error Handlers ────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return jsonify(error='not_found', message='Resource not found.', retryable=False), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(error='method_not_allowed', message=str(e.description), retryable=False), 405

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        return jsonify(error='server_error', message='Internal server error.', retryable=True), 500

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    # ── ProxyFix (TLS terminated at the load balancer) ──
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        click.echo('✅  Database tables created.')

    @app.cli.command('show-sequences')
    def show_sequences():
        """Show current invoice sequence counters (diagnostic)."""
        from petmarket.billing.models import SequenceCounter
        from petmarket.billing.sequence import (
            COUNTER_KEY_PREFIX, format_invoice_number
        )

        rows = (
            SequenceCounter.query
            .filter(SequenceCounter.name.like(f'{COUNTER_KEY_PREFIX}%'))
            .order_by(SequenceCounter.name.desc())
            .all()
        )
        if not rows:
            click.echo('No invoices numbered yet.')
            return
        click.echo(f'{"Period":<8} {"Last Seq":<12} {"Next Invoice"}')
        click.echo('─' * 38)
        for row in rows:
            period = row.name[len(COUNTER_KEY_PREFIX):]
            next_inv = format_invoice_number(
                period, row.last_value + 1,
                prefix=app.config['INVOICE_PREFIX'],
                width=app.config['INVOICE_SEQUENCE_WIDTH'],
            )
            click.echo(f'{period:<8} {row.last_value:<12} {next_inv}')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Populate database with a demo shop, employee and products."""
        from decimal import Decimal
        from petmarket.auth.models import Employee
        from petmarket.catalog.models import Shop, Product

        click.echo("🌱 Seeding demo data...")
        db.create_all()

        shop = Shop.query.filter_by(name='Happy Paws Supplies').first()
        if not shop:
            shop = Shop(name='Happy Paws Supplies')
            db.session.add(shop)
            db.session.flush()

        if not Employee.query.filter_by(email='cashier@happypaws.test').first():
            db.session.add(Employee(
                first_name='Sarah', last_name='Cashier',
                email='cashier@happypaws.test', shop_id=shop.id,
            ))

        if Product.query.filter_by(shop_id=shop.id).count() == 0:
            demo_products = [
                ('Dry Dog Food 5kg', Decimal('24.99'), 40),
                ('Cat Litter 10L',   Decimal('9.50'),  25),
                ('Chew Toy',         Decimal('4.25'),  60),
                ('Bird Seed 1kg',    Decimal('6.00'),  15),
                ('Aquarium Filter',  Decimal('32.00'), 5),
            ]
            for name, price, stock in demo_products:
                db.session.add(Product(shop_id=shop.id, name=name, price=price, stock=stock))

        db.session.commit()
        click.echo("✅ Demo seed complete.")
