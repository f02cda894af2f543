"""
Error Handling Middleware
Consistent JSON error responses for the public and admin APIs
"""
from flask import jsonify
from sqlalchemy.exc import OperationalError, IntegrityError
from werkzeug.exceptions import HTTPException

from gateflow.database import db
from gateflow.errors import DownstreamFailure, ResourceNotFound, ValidationError
from gateflow.services.structured_logging import get_logger

logger = get_logger('gateflow.errors')


def register_error_handlers(app):
    """Register JSON error handlers on the app"""

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(ResourceNotFound)
    def handle_resource_not_found(e):
        return jsonify({
            'error': 'not_found',
            'message': e.message
        }), 404

    @app.errorhandler(DownstreamFailure)
    def handle_downstream_failure(e):
        logger.log_error_event(e.message, error_kind=e.error_kind)
        return jsonify({
            'error': 'downstream_failure',
            'message': e.message
        }), 502

    @app.errorhandler(OperationalError)
    def handle_operational_error(e):
        """Handle database operational errors (connection lost, locked, missing table)"""
        db.session.rollback()
        error_msg = str(e.orig) if hasattr(e, 'orig') else str(e)
        logger.log_error_event(f"Database operational error: {error_msg}", error_kind='downstream_failure')
        return jsonify({
            'error': 'database_error',
            'message': 'Database operation failed. Please try again later.'
        }), 503

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        """Handle database integrity errors (foreign key, unique constraint)"""
        db.session.rollback()
        error_msg = str(e.orig) if hasattr(e, 'orig') else str(e)
        logger.error(f"Database integrity error: {error_msg}")

        if 'foreign key' in error_msg.lower():
            return jsonify({
                'error': 'invalid_reference',
                'message': 'Referenced entity does not exist'
            }), 400

        return jsonify({
            'error': 'duplicate_entry',
            'message': 'This entry already exists'
        }), 409

    @app.errorhandler(429)
    def handle_rate_limited(e):
        return jsonify({
            'error': 'rate_limit_exceeded',
            'message': 'Rate limit exceeded. Please try again later.',
            'limit': getattr(e, 'description', None)
        }), 429

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({
            'error': e.name,
            'message': e.description
        }), e.code
