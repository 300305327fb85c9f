import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from invoicely.config import config_by_name
from invoicely.errors import AppError
from invoicely.extensions import db, migrate, login_manager, csrf, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from invoicely import models  # noqa: F401

    # --- Outbound collaborators (swapped for fakes in tests) ---
    from invoicely.services.notifier import Notifier
    from invoicely.services.paystack_service import PaystackClient

    app.extensions["payment_gateway"] = PaystackClient.from_config(app.config)
    app.extensions["notifier"] = Notifier.from_config(app.config)

    # --- Tenant middleware ---
    from invoicely.middleware.tenant import init_tenant_middleware
    init_tenant_middleware(app)

    # --- Register blueprints ---
    from invoicely.blueprints.auth import auth_bp
    from invoicely.blueprints.subscription import subscription_bp
    from invoicely.blueprints.customers import customers_bp
    from invoicely.blueprints.items import items_bp
    from invoicely.blueprints.invoices import invoices_bp
    from invoicely.blueprints.receipts import receipts_bp
    from invoicely.blueprints.taxes import taxes_bp
    from invoicely.blueprints.payments import payments_bp
    from invoicely.blueprints.reports import reports_bp
    from invoicely.blueprints.admin import admin_bp
    from invoicely.blueprints.webhooks import webhooks_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(subscription_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(items_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(receipts_bp)
    app.register_blueprint(taxes_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(webhooks_bp)

    # Exempt webhooks from CSRF — raw body needed for signature verification
    csrf.exempt(webhooks_bp)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    # --- Error handlers ---
    @app.errorhandler(AppError)
    def handle_app_error(e):
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description, "kind": e.name.lower().replace(" ", "_")}), e.code

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        return jsonify({"error": "Internal server error", "kind": "internal_error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-plans")
    def seed_plans():
        """Insert the stock Free / Pro / Business plans if missing."""
        from invoicely.services.plan_service import seed_default_plans

        created = seed_default_plans()
        if created:
            click.echo(f"Created plans: {', '.join(created)}")
        else:
            click.echo("All default plans already exist.")

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@invoicely.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    def seed_admin(email, password):
        """Create a platform admin user.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from invoicely.models.user import User

        existing = User.query.filter_by(email=email).first()
        if existing:
            click.echo(f"Admin user already exists: {email}")
            return
        admin = User(
            email=email,
            password_hash=generate_password_hash(password),
            full_name="Admin",
            is_admin=True,
        )
        db.session.add(admin)
        db.session.commit()
        click.echo(f"Created admin user: {email}")

    @app.cli.command("expire-subscriptions")
    def expire_subscriptions_command():
        """Cancel lapsed trials and cancellations; mark unpaid periods PAST_DUE.

        Run from a scheduler (cron, Railway cron job) once an hour or so.
        """
        from invoicely.services.subscription_service import expire_subscriptions

        counts = expire_subscriptions()
        click.echo(
            f"Canceled: {counts['canceled']}  Past due: {counts['past_due']}"
        )
