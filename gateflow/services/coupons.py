# -*- coding: utf-8 -*-
"""
Coupon verification and one-time offer (OTO) coupons.

Amounts here are major currency units (Decimal), as stored on products and
coupons. Checkout converts to minor units when talking to Stripe.
"""
import secrets
import string
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import func

from gateflow.database import db
from gateflow.errors import ValidationError
from gateflow.models.base import utcnow
from gateflow.models.coupon import Coupon, CouponRedemption
from gateflow.models.payment import PaymentTransaction
from gateflow.models.product import OtoOffer
from gateflow.services.structured_logging import get_logger, mask_email

logger = get_logger('gateflow.coupons')

CENTS = Decimal('0.01')
OTO_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class CouponQuote:
    coupon: Coupon
    discount_amount: Decimal
    final_amount: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            'valid': True,
            'coupon_id': self.coupon.id,
            'code': self.coupon.code,
            'discount_type': self.coupon.discount_type,
            'discount_value': str(self.coupon.discount_value),
            'discount_amount': str(self.discount_amount),
            'final_amount': str(self.final_amount) if self.final_amount is not None else None,
            'exclude_order_bumps': self.coupon.exclude_order_bumps,
        }


def compute_discount(coupon: Coupon, amount: Decimal) -> Decimal:
    """Percentage of the amount, or the fixed value capped at the amount."""
    amount = Decimal(amount)
    if coupon.discount_type == 'percentage':
        discount = amount * Decimal(coupon.discount_value) / Decimal(100)
    else:
        discount = min(Decimal(coupon.discount_value), amount)
    return discount.quantize(CENTS, rounding=ROUND_HALF_UP)


class CouponService:

    def __init__(self, db_session=None):
        self._session = db_session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def find_by_code(self, code: str) -> Optional[Coupon]:
        return self.session.query(Coupon).filter_by(code=Coupon.normalize_code(code)).first()

    def verify(self, code: str, product_id: str, email: Optional[str] = None,
               amount: Optional[Decimal] = None, now=None) -> CouponQuote:
        """Check a coupon against a product and customer.

        Raises ValidationError with a stable code when the coupon cannot be used.
        """
        now = now or utcnow()
        coupon = self.find_by_code(code)
        if coupon is None:
            raise ValidationError('coupon_not_found', 'Coupon not found', field='code', status_code=404)
        if not coupon.is_active:
            raise ValidationError('coupon_inactive', 'Coupon is not active', field='code')
        if coupon.starts_at and coupon.starts_at > now:
            raise ValidationError('coupon_not_started', 'Coupon is not valid yet', field='code')
        if coupon.expires_at and coupon.expires_at <= now:
            raise ValidationError('coupon_expired', 'Coupon has expired', field='code')

        allowed_products = coupon.allowed_product_ids or []
        if allowed_products and product_id not in allowed_products:
            raise ValidationError('coupon_not_valid_for_product',
                                  'Coupon cannot be used for this product', field='product_id')

        normalized_email = email.strip().lower() if email else None
        allowed_emails = [e.strip().lower() for e in (coupon.allowed_emails or [])]
        if allowed_emails and normalized_email not in allowed_emails:
            raise ValidationError('coupon_not_valid_for_email',
                                  'Coupon cannot be used with this email', field='email')

        if coupon.usage_limit_global is not None and coupon.current_usage_count >= coupon.usage_limit_global:
            raise ValidationError('coupon_usage_limit_reached', 'Coupon usage limit reached', field='code')

        if normalized_email and coupon.usage_limit_per_user is not None:
            used = self.session.query(func.count(CouponRedemption.id)).filter(
                CouponRedemption.coupon_id == coupon.id,
                CouponRedemption.customer_email == normalized_email,
            ).scalar()
            if used >= coupon.usage_limit_per_user:
                raise ValidationError('coupon_usage_limit_reached',
                                      'Coupon already used with this email', field='email')

        if amount is None:
            return CouponQuote(coupon=coupon, discount_amount=Decimal('0'))
        discount = compute_discount(coupon, Decimal(amount))
        return CouponQuote(coupon=coupon, discount_amount=discount, final_amount=Decimal(amount) - discount)

    def create_coupon(self, **fields) -> Coupon:
        fields['code'] = Coupon.normalize_code(fields.get('code'))
        if self.find_by_code(fields['code']) is not None:
            raise ValidationError('coupon_code_taken', 'A coupon with this code already exists',
                                  field='code', status_code=409)
        if fields.get('allowed_emails'):
            fields['allowed_emails'] = [e.strip().lower() for e in fields['allowed_emails']]
        coupon = Coupon(**{k: v for k, v in fields.items() if v is not None})
        self.session.add(coupon)
        self.session.commit()
        logger.info("Coupon created", coupon_id=coupon.id, code=coupon.code)
        return coupon

    def list_coupons(self, include_oto: bool = False):
        query = self.session.query(Coupon)
        if not include_oto:
            query = query.filter(Coupon.is_oto_coupon.is_(False))
        return query.order_by(Coupon.created_at.desc()).all()


class OtoService:
    """Generates the short-lived coupon offered right after a purchase."""

    def __init__(self, db_session=None):
        self._session = db_session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _new_code(self) -> str:
        while True:
            code = 'OTO-' + ''.join(secrets.choice(OTO_CODE_ALPHABET) for _ in range(8))
            if self.session.query(Coupon.id).filter_by(code=code).first() is None:
                return code

    def generate_for_transaction(self, transaction_id: str) -> Optional[Coupon]:
        tx = self.session.get(PaymentTransaction, transaction_id)
        if tx is None:
            return None

        existing = self.session.query(Coupon).filter_by(oto_source_transaction_id=tx.id).first()
        if existing is not None:
            return existing

        offer = self.session.query(OtoOffer).filter_by(source_product_id=tx.product_id, is_active=True).first()
        if offer is None or not offer.oto_product or not offer.oto_product.is_active:
            return None

        now = utcnow()
        coupon = Coupon(
            code=self._new_code(),
            name=f"One-time offer: {offer.oto_product.name}",
            discount_type=offer.discount_type,
            discount_value=offer.discount_value,
            currency=offer.oto_product.currency,
            allowed_emails=[tx.customer_email],
            allowed_product_ids=[offer.oto_product_id],
            usage_limit_global=1,
            usage_limit_per_user=1,
            starts_at=now,
            expires_at=now + timedelta(minutes=offer.duration_minutes),
            is_oto_coupon=True,
            oto_source_transaction_id=tx.id,
        )
        self.session.add(coupon)
        self.session.commit()
        logger.info(
            "OTO coupon generated",
            transaction_id=tx.id,
            oto_product_id=offer.oto_product_id,
            email=mask_email(tx.customer_email),
        )
        return coupon

    def get_offer_for_session(self, session_id: str, now=None) -> Optional[dict]:
        now = now or utcnow()
        tx = self.session.query(PaymentTransaction).filter_by(session_id=session_id).first()
        if tx is None:
            return None
        coupon = self.session.query(Coupon).filter_by(oto_source_transaction_id=tx.id, is_active=True).first()
        if coupon is None or (coupon.expires_at and coupon.expires_at <= now) or coupon.current_usage_count >= 1:
            return None

        product_id = coupon.allowed_product_ids[0]
        return {
            'has_oto': True,
            'coupon_code': coupon.code,
            'coupon_id': coupon.id,
            'oto_product_id': product_id,
            'discount_type': coupon.discount_type,
            'discount_value': str(coupon.discount_value),
            'expires_at': coupon.expires_at.isoformat() if coupon.expires_at else None,
            'seconds_remaining': int((coupon.expires_at - now).total_seconds()) if coupon.expires_at else None,
        }
