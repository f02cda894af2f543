# -*- coding: utf-8 -*-
"""
Coupon Routes

Public verification (rate limited) and admin coupon management.
"""
from datetime import timezone

from flask import Blueprint, request, jsonify
from pydantic import ValidationError

from gateflow.middleware.auth import admin_required
from gateflow.schemas.common import validation_error_response
from gateflow.schemas.coupons import CreateCouponRequest, VerifyCouponRequest
from gateflow.services.container import get_services
from gateflow.services.rate_limiter import COUPON_VERIFY_LIMIT, limiter

coupons_bp = Blueprint('coupons', __name__)


def _naive_utc(value):
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@coupons_bp.route('/api/coupons/verify', methods=['POST'])
@limiter.limit(COUPON_VERIFY_LIMIT)
def verify_coupon():
    try:
        data = VerifyCouponRequest(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return validation_error_response(e)

    quote = get_services().coupons.verify(
        data.code,
        data.product_id,
        email=str(data.email) if data.email else None,
        amount=data.amount,
    )
    return jsonify(quote.to_dict()), 200


@coupons_bp.route('/api/v1/coupons', methods=['GET'])
@admin_required
def list_coupons():
    include_oto = request.args.get('include_oto', 'false').lower() in ('1', 'true', 'yes')
    coupons = get_services().coupons.list_coupons(include_oto=include_oto)
    return jsonify({'coupons': [coupon.to_dict() for coupon in coupons]}), 200


@coupons_bp.route('/api/v1/coupons', methods=['POST'])
@admin_required
def create_coupon():
    try:
        data = CreateCouponRequest(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return validation_error_response(e)

    fields = data.model_dump()
    fields['allowed_emails'] = [str(email) for email in data.allowed_emails]
    fields['starts_at'] = _naive_utc(data.starts_at)
    fields['expires_at'] = _naive_utc(data.expires_at)
    if fields['currency']:
        fields['currency'] = fields['currency'].upper()

    coupon = get_services().coupons.create_coupon(**fields)
    return jsonify(coupon.to_dict()), 201
