# -*- coding: utf-8 -*-
"""
Rate limiting for the public checkout and coupon endpoints.

Uses Flask-Limiter; storage comes from RATELIMIT_STORAGE_URI and falls back
to in-memory storage when the configured Redis is unreachable.
"""
import redis
from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from gateflow.services.structured_logging import get_logger

logger = get_logger('gateflow.rate_limit')

CHECKOUT_LIMIT = '10/minute'
COUPON_VERIFY_LIMIT = '30/minute'
MAGIC_LINK_LIMIT = '5/minute'

EXEMPT_PATHS = ('/healthz', '/readyz', '/metrics')


def get_client_identifier() -> str:
    """Rate-limit key: the peer address. Behind a proxy, ProxyFix (PROXY_FIX_X_FOR) sets it from X-Forwarded-For."""
    return f"ip:{get_remote_address()}"


limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[],
    strategy='fixed-window',
    headers_enabled=True,
)


@limiter.request_filter
def _exempt_infrastructure_paths() -> bool:
    return request.path in EXEMPT_PATHS


def init_rate_limiter(app):
    """Attach the shared limiter to the app, checking Redis storage first."""
    storage_uri = app.config.get('RATELIMIT_STORAGE_URI', 'memory://')

    if storage_uri.startswith(('redis://', 'rediss://')):
        try:
            redis.from_url(storage_uri, socket_connect_timeout=2).ping()
            logger.info("Rate limiter using Redis")
        except Exception as e:
            logger.warning(f"Redis unavailable ({e.__class__.__name__}), using in-memory storage for rate limiting")
            app.config['RATELIMIT_STORAGE_URI'] = 'memory://'

    limiter.init_app(app)
    return limiter
