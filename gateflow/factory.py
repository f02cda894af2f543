# -*- coding: utf-8 -*-
from pathlib import Path

from alembic import command
from alembic.config import Config as AlembicConfig
from flask import Flask
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.middleware.proxy_fix import ProxyFix

from gateflow.config import Config
from gateflow.database import db

# Observability imports
from gateflow.services.metrics import init_metrics
from gateflow.services.request_context import init_request_context
from gateflow.services.structured_logging import init_logging

from gateflow.middleware.errors import register_error_handlers
from gateflow.services.container import build_services
from gateflow.services.rate_limiter import init_rate_limiter


def _normalize_db_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://") and "+psycopg://" not in url:
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _migrate_db(app):
    """Run Alembic migrations to head using the app's DB URL."""
    BASE_DIR = Path(__file__).resolve().parent.parent
    cfg = AlembicConfig()  # in-memory config, avoid alembic.ini dependency
    cfg.set_main_option("script_location", str(BASE_DIR / "migrations"))
    cfg.set_main_option("sqlalchemy.url", app.config["SQLALCHEMY_DATABASE_URI"])

    try:
        command.upgrade(cfg, "head")
        app.logger.info("Database migrations applied successfully")
    except Exception as e:
        app.logger.error(f"Migration failed: {e}")
        raise


def create_app(config_overrides=None, **service_overrides) -> Flask:
    """Build the app. `service_overrides` replace single services (tests pass fakes here)."""
    app = Flask(__name__)
    app.url_map.strict_slashes = False

    # --- Config ---
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # --- DB config ---
    app.config["SQLALCHEMY_DATABASE_URI"] = _normalize_db_url(app.config["SQLALCHEMY_DATABASE_URI"])
    db.init_app(app)

    # --- Proxy ---
    proxy_hops = int(app.config.get("PROXY_FIX_X_FOR") or 0)
    if proxy_hops > 0:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxy_hops, x_proto=proxy_hops)

    # --- JWT ---
    JWTManager(app)

    # --- CORS ---
    cors_origins = [
        origin.strip()
        for origin in str(app.config.get("CORS_ALLOWED_ORIGINS", "")).split(",")
        if origin.strip()
    ]
    CORS(app, resources={
        r"/api/*": {
            "origins": cors_origins,
            "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "X-Request-ID"],
            "supports_credentials": False,
            "max_age": 600,
        }}
    )

    # --- Initialize observability ---
    init_logging(app)
    init_request_context(app)
    init_metrics(app)

    register_error_handlers(app)

    # Note: Rate limiter prefers Redis, will degrade to memory if unavailable
    try:
        limiter = init_rate_limiter(app)
        app.extensions['limiter'] = limiter
    except Exception as e:
        app.logger.warning(f"Rate limiter initialization failed: {e}. Rate limiting disabled.")

    # --- Mount blueprints ---
    from gateflow.routes import access, checkout, coupons, health, payments, products, stripe_webhooks, webhooks
    app.register_blueprint(health.health_bp)
    app.register_blueprint(stripe_webhooks.stripe_webhooks_bp)
    app.register_blueprint(checkout.checkout_bp)
    app.register_blueprint(coupons.coupons_bp)
    app.register_blueprint(products.products_bp)
    app.register_blueprint(payments.payments_bp)
    app.register_blueprint(access.access_bp)
    app.register_blueprint(webhooks.webhooks_bp)

    # --- DB init ---
    with app.app_context():
        # Only auto-create tables in testing or if explicitly enabled
        is_testing = bool(app.config.get("TESTING"))
        if is_testing or app.config.get("GATEFLOW_DB_AUTOCREATE"):
            db.create_all()

        # Skip migrations in test mode since db.create_all() already creates correct schema
        if not is_testing and app.config.get("GATEFLOW_DB_MIGRATE_ON_START"):
            _migrate_db(app)

    # --- Services ---
    build_services(app, **service_overrides)

    return app
