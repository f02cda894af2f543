"""
Stripe Checkout routes for one-off product purchases.
"""
from decimal import Decimal, ROUND_HALF_UP

from flask import Blueprint, jsonify, request, current_app
from pydantic import ValidationError

from gateflow.database import db
from gateflow.middleware.auth import current_customer_id
from gateflow.models.product import OrderBump, Product
from gateflow.models.user import User
from gateflow.schemas.checkout import CreateCheckoutSessionRequest
from gateflow.schemas.common import validation_error_response
from gateflow.services.container import get_services
from gateflow.services.rate_limiter import CHECKOUT_LIMIT, limiter
from gateflow.services.structured_logging import get_logger, mask_email

logger = get_logger("gateflow.checkout")

checkout_bp = Blueprint("checkout", __name__)


def to_minor_units(amount) -> int:
    """12.34 -> 1234"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _line_item(name: str, currency: str, amount) -> dict:
    return {
        "price_data": {
            "currency": currency.lower(),
            "product_data": {"name": name},
            "unit_amount": to_minor_units(amount),
        },
        "quantity": 1,
    }


@checkout_bp.route("/api/checkout/create-session", methods=["POST"])
@limiter.limit(CHECKOUT_LIMIT)
def create_checkout_session():
    """Creates a Stripe Checkout session for a product, with optional bump and coupon."""
    try:
        data = CreateCheckoutSessionRequest(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return validation_error_response(e)

    services = get_services()
    product = db.session.query(Product).filter_by(id=data.product_id, is_active=True).first()
    if product is None:
        return jsonify({"error": "product_not_found", "message": "Product not found or inactive"}), 404

    user_id = current_customer_id()
    email = str(data.email).strip().lower() if data.email else None
    if user_id and not email:
        user = db.session.get(User, user_id)
        email = user.email if user else None

    bump = None
    if data.bump_product_id:
        bump = db.session.query(OrderBump).filter_by(
            main_product_id=product.id,
            bump_product_id=data.bump_product_id,
            is_active=True,
        ).first()
        if bump is None or not bump.bump_product.is_active:
            return jsonify({
                "error": "invalid_bump",
                "message": "Order bump not available for this product",
                "field": "bump_product_id",
            }), 400

    quote = None
    if data.coupon_code:
        # raises ValidationError, rendered by the error handlers
        quote = services.coupons.verify(data.coupon_code, product.id, email=email, amount=product.price)

    main_amount = Decimal(product.price) - (quote.discount_amount if quote else Decimal("0"))
    line_items = [_line_item(product.name, product.currency, main_amount)]
    if bump is not None:
        line_items.append(_line_item(bump.bump_title, product.currency, bump.effective_price))

    metadata = {
        "product_id": product.id,
        "user_id": user_id or "",
        "email": email or "",
        "bump_product_id": bump.bump_product_id if bump else "",
        "has_bump": "true" if bump else "false",
        "coupon_id": quote.coupon.id if quote else "",
        "has_coupon": "true" if quote else "false",
        "discount_amount": str(quote.discount_amount) if quote else "0",
        "first_name": data.first_name or "",
        "last_name": data.last_name or "",
    }

    base_url = current_app.config.get("PUBLIC_BASE_URL", "").rstrip("/")
    params = {
        "mode": "payment",
        "line_items": line_items,
        "metadata": metadata,
        "payment_intent_data": {"metadata": metadata},
        "success_url": data.success_url or f"{base_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": data.cancel_url or f"{base_url}/checkout/{product.slug}",
    }
    if email:
        params["customer_email"] = email

    # DownstreamFailure propagates to the 502 handler
    session = services.stripe.create_checkout_session(**params)

    logger.info(
        f"Created checkout session: {session.id}",
        product_id=product.id,
        has_bump=bool(bump),
        has_coupon=bool(quote),
        email=mask_email(email),
    )
    return jsonify({"session_id": session.id, "url": getattr(session, "url", None)}), 200


@checkout_bp.route("/api/oto/<session_id>", methods=["GET"])
def get_oto_offer(session_id: str):
    """One-time offer unlocked by the purchase made in `session_id`, if still valid."""
    offer = get_services().oto.get_offer_for_session(session_id)
    if offer is None:
        return jsonify({"has_oto": False}), 200
    return jsonify(offer), 200
