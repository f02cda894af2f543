# -*- coding: utf-8 -*-
from sqlalchemy import CheckConstraint

from gateflow.database import db
from gateflow.models.base import new_id, utcnow, isoformat


class Coupon(db.Model):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("discount_value > 0", name="coupon_positive_discount"),
        CheckConstraint("discount_type IN ('percentage', 'fixed')", name="coupon_discount_type"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    # Always stored uppercase; lookups normalise the input the same way.
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=True)
    discount_type = db.Column(db.String(16), nullable=False)
    discount_value = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=True)
    allowed_emails = db.Column(db.JSON, nullable=False, default=list)
    allowed_product_ids = db.Column(db.JSON, nullable=False, default=list)
    exclude_order_bumps = db.Column(db.Boolean, nullable=False, default=False)
    usage_limit_global = db.Column(db.Integer, nullable=True)
    usage_limit_per_user = db.Column(db.Integer, nullable=True, default=1)
    current_usage_count = db.Column(db.Integer, nullable=False, default=0)
    starts_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_oto_coupon = db.Column(db.Boolean, nullable=False, default=False)
    oto_source_transaction_id = db.Column(db.String(36), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    redemptions = db.relationship("CouponRedemption", back_populates="coupon", cascade="all, delete-orphan")

    @staticmethod
    def normalize_code(code: str) -> str:
        return (code or "").strip().upper()

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "discount_type": self.discount_type,
            "discount_value": str(self.discount_value),
            "currency": self.currency,
            "allowed_emails": self.allowed_emails or [],
            "allowed_product_ids": self.allowed_product_ids or [],
            "exclude_order_bumps": self.exclude_order_bumps,
            "usage_limit_global": self.usage_limit_global,
            "usage_limit_per_user": self.usage_limit_per_user,
            "current_usage_count": self.current_usage_count,
            "starts_at": isoformat(self.starts_at),
            "expires_at": isoformat(self.expires_at),
            "is_active": self.is_active,
            "is_oto_coupon": self.is_oto_coupon,
        }


class CouponRedemption(db.Model):
    __tablename__ = "coupon_redemptions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    coupon_id = db.Column(db.String(36), db.ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.String(36), nullable=True)
    customer_email = db.Column(db.String(255), nullable=False, index=True)
    transaction_id = db.Column(db.String(36), db.ForeignKey("payment_transactions.id"), nullable=True)
    redeemed_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    coupon = db.relationship("Coupon", back_populates="redemptions")
