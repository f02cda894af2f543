# -*- coding: utf-8 -*-
"""
Order bump routes.
"""
from flask import Blueprint, request, jsonify
from pydantic import ValidationError

from gateflow.database import db
from gateflow.middleware.auth import admin_required
from gateflow.models.product import OrderBump, Product
from gateflow.schemas.common import validation_error_response
from gateflow.schemas.products import CreateOrderBumpRequest

products_bp = Blueprint('products', __name__)


@products_bp.route('/api/products/<product_id>/order-bumps', methods=['GET'])
def list_order_bumps(product_id: str):
    """Active bumps offered on the checkout of `product_id`"""
    product = db.session.query(Product).filter_by(id=product_id, is_active=True).first()
    if product is None:
        return jsonify({'error': 'product_not_found', 'message': 'Product not found or inactive'}), 404

    bumps = (
        db.session.query(OrderBump)
        .join(Product, OrderBump.bump_product_id == Product.id)
        .filter(
            OrderBump.main_product_id == product.id,
            OrderBump.is_active.is_(True),
            Product.is_active.is_(True),
        )
        .order_by(OrderBump.display_order, OrderBump.created_at)
        .all()
    )
    return jsonify({'order_bumps': [bump.to_dict() for bump in bumps]}), 200


@products_bp.route('/api/v1/order-bumps', methods=['POST'])
@admin_required
def create_order_bump():
    try:
        data = CreateOrderBumpRequest(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return validation_error_response(e)

    for field in ('main_product_id', 'bump_product_id'):
        if db.session.get(Product, getattr(data, field)) is None:
            return jsonify({'error': 'product_not_found', 'message': 'Product not found', 'field': field}), 404

    # A duplicate pair raises IntegrityError, answered with 409 by the error handlers
    bump = OrderBump(**data.model_dump())
    db.session.add(bump)
    db.session.commit()
    return jsonify(bump.to_dict()), 201
