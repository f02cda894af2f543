from functools import wraps
from typing import Optional

from flask import jsonify
from flask_jwt_extended import create_access_token, get_jwt, get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError


def issue_access_token(user) -> str:
    """Access token for a customer or admin, admin rights travel as a claim"""
    return create_access_token(
        identity=user.id,
        additional_claims={'email': user.email, 'is_admin': bool(user.is_admin)},
    )


def admin_required(f):
    """Decorator to require a JWT with the is_admin claim"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            verify_jwt_in_request()
        except (JWTExtendedException, PyJWTError):
            return jsonify({'error': 'auth_required', 'message': 'Authentication required'}), 401

        if not get_jwt().get('is_admin'):
            return jsonify({'error': 'forbidden', 'message': 'Admin access required'}), 403

        return f(*args, **kwargs)
    return decorated_function


def current_customer_id() -> Optional[str]:
    """User id from an optional bearer token; invalid tokens count as anonymous"""
    try:
        verify_jwt_in_request(optional=True)
    except (JWTExtendedException, PyJWTError):
        return None
    return get_jwt_identity()
