# -*- coding: utf-8 -*-

from flask import Blueprint, jsonify
import time

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from gateflow.database import db
from gateflow.services.structured_logging import get_logger

logger = get_logger('gateflow.health')

health_bp = Blueprint('health', __name__)


@health_bp.route('/healthz', methods=['GET', 'HEAD'])
def healthz():
    """Liveness check. Exempt from rate limiting."""
    return jsonify({
        'status': 'healthy',
        'service': 'gateflow',
        'timestamp': time.time()
    }), 200


@health_bp.route('/readyz', methods=['GET', 'HEAD'])
def readyz():
    """Readiness check: the database must answer a trivial query."""
    try:
        db.session.execute(text('SELECT 1'))
        database_ok = True
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(f"Readiness check failed: {e.__class__.__name__}")
        database_ok = False

    return jsonify({
        'status': 'ready' if database_ok else 'unavailable',
        'service': 'gateflow',
        'timestamp': time.time(),
        'checks': {
            'database': database_ok
        }
    }), 200 if database_ok else 503
