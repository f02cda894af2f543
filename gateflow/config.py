# -*- coding: utf-8 -*-
import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///gateflow.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    GATEFLOW_DB_AUTOCREATE = _flag("GATEFLOW_DB_AUTOCREATE", "false")
    GATEFLOW_DB_MIGRATE_ON_START = _flag("GATEFLOW_DB_MIGRATE_ON_START", "true")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-jwt-secret-key")
    JWT_ALGORITHM = "HS256"

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", 300))

    # Idempotency
    IDEMPOTENCY_BACKEND = os.getenv("IDEMPOTENCY_BACKEND", "database")
    IDEMPOTENCY_TTL_HOURS = int(os.getenv("IDEMPOTENCY_TTL_HOURS", 72))
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Outbound notifications
    NOTIFIER_BACKEND = os.getenv("NOTIFIER_BACKEND", "thread")
    NOTIFIER_MAX_WORKERS = int(os.getenv("NOTIFIER_MAX_WORKERS", 4))
    WEBHOOK_TIMEOUT_SECONDS = int(os.getenv("WEBHOOK_TIMEOUT_SECONDS", 5))
    FB_GRAPH_API_VERSION = os.getenv("FB_GRAPH_API_VERSION", "v18.0")

    # Magic links
    SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
    FROM_EMAIL = os.getenv("FROM_EMAIL", "noreply@gateflow.app")
    FROM_NAME = os.getenv("FROM_NAME", "GateFlow")
    SENDGRID_SANDBOX = _flag("SENDGRID_SANDBOX", "false")
    MAGIC_LINK_TTL_MIN = int(os.getenv("MAGIC_LINK_TTL_MIN", 60))
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")

    # Observability
    GATEFLOW_LOG_JSON = _flag("GATEFLOW_LOG_JSON", "true")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    GATEFLOW_METRICS_ENABLED = _flag("GATEFLOW_METRICS_ENABLED", "true")

    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_ENABLED = _flag("RATELIMIT_ENABLED", "true")

    CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000")

    # Number of trusted reverse proxies in front of the app (werkzeug ProxyFix)
    PROXY_FIX_X_FOR = int(os.getenv("PROXY_FIX_X_FOR", 0))
