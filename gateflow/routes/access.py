"""
Access Routes

Magic-link sign in for guest buyers and the customer's own product access.
"""

from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, get_jwt_identity
from pydantic import BaseModel, EmailStr, ValidationError

from gateflow.database import db
from gateflow.middleware.auth import issue_access_token
from gateflow.models.payment import GuestPurchase
from gateflow.models.user import User
from gateflow.schemas.common import validation_error_response
from gateflow.services.container import get_services
from gateflow.services.rate_limiter import MAGIC_LINK_LIMIT, limiter
from gateflow.services.structured_logging import get_logger, mask_email

logger = get_logger('gateflow.access')

access_bp = Blueprint('access', __name__)


class MagicLinkRequest(BaseModel):
    email: EmailStr


@access_bp.route('/auth/magic-link', methods=['POST'])
@limiter.limit(MAGIC_LINK_LIMIT)
def request_magic_link():
    """Resend the claim link. Always 202 so the endpoint cannot be used to enumerate emails."""
    try:
        data = MagicLinkRequest(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return validation_error_response(e)

    email = str(data.email).strip().lower()
    has_pending = db.session.query(GuestPurchase.id).filter(
        GuestPurchase.customer_email == email,
        GuestPurchase.claimed_by_user_id.is_(None),
    ).first() is not None

    if has_pending:
        get_services().notifier.send_magic_link(email)
    else:
        logger.info('Magic link requested without pending purchases', email=mask_email(email))

    return jsonify({'message': 'If there are purchases for this email, a link is on its way'}), 202


@access_bp.route('/auth/magic', methods=['GET'])
def consume_magic_link():
    """Sign in with a magic token and claim guest purchases made with its email"""
    token = request.args.get('token')
    if not token:
        return jsonify({'error': 'missing_token', 'message': 'Missing token'}), 400

    services = get_services()
    email = services.magic_links.verify_token(token)
    if not email:
        return jsonify({'error': 'invalid_token', 'message': 'Invalid or expired link'}), 401

    user = User.find_by_email(email)
    created = False
    if user is None:
        user = User(email=email)
        db.session.add(user)
        db.session.commit()
        created = True

    granted = services.access.claim_guest_purchases(user)
    logger.info(
        'Magic link consumed',
        email=mask_email(email),
        user_created=created,
        claimed=len(granted),
    )

    return jsonify({
        'access_token': issue_access_token(user),
        'user': user.to_dict(),
        'claimed_product_ids': granted,
    }), 200


@access_bp.route('/api/access/me', methods=['GET'])
@jwt_required()
def my_access():
    user_id = get_jwt_identity()
    grants = get_services().access.list_access(user_id)
    return jsonify({'access': [grant.to_dict() for grant in grants]}), 200
