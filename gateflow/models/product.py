# -*- coding: utf-8 -*-
"""
Catalog models: products, order bumps and one-time offers.
"""
from decimal import Decimal

from sqlalchemy import CheckConstraint, UniqueConstraint

from gateflow.database import db
from gateflow.models.base import new_id, utcnow, isoformat


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True, nullable=False, index=True)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    currency = db.Column(db.String(3), nullable=False, default="USD")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    # NULL means unlimited access
    auto_grant_duration_days = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "price": str(self.price),
            "currency": self.currency,
            "is_active": self.is_active,
            "auto_grant_duration_days": self.auto_grant_duration_days,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Product {self.slug}>"


class OrderBump(db.Model):
    """Upsell offered on the checkout of a main product."""
    __tablename__ = "order_bumps"
    __table_args__ = (
        UniqueConstraint("main_product_id", "bump_product_id", name="unique_bump_pair"),
        CheckConstraint("main_product_id != bump_product_id", name="no_self_bump"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    main_product_id = db.Column(db.String(36), db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    bump_product_id = db.Column(db.String(36), db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    # NULL = use the bump product's own price
    bump_price = db.Column(db.Numeric(10, 2), nullable=True)
    bump_title = db.Column(db.String(255), nullable=False)
    bump_description = db.Column(db.String(1000), nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    # NULL = fall back to the bump product's auto_grant_duration_days
    access_duration_days = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    main_product = db.relationship("Product", foreign_keys=[main_product_id])
    bump_product = db.relationship("Product", foreign_keys=[bump_product_id])

    @property
    def effective_price(self) -> Decimal:
        if self.bump_price is not None:
            return Decimal(self.bump_price)
        return Decimal(self.bump_product.price)

    @property
    def effective_duration_days(self):
        if self.access_duration_days is not None:
            return self.access_duration_days
        return self.bump_product.auto_grant_duration_days

    def to_dict(self):
        return {
            "id": self.id,
            "main_product_id": self.main_product_id,
            "bump_product_id": self.bump_product_id,
            "bump_title": self.bump_title,
            "bump_description": self.bump_description,
            "bump_price": str(self.bump_price) if self.bump_price is not None else None,
            "effective_price": str(self.effective_price),
            "currency": self.bump_product.currency,
            "access_duration_days": self.access_duration_days,
            "display_order": self.display_order,
            "is_active": self.is_active,
        }


class OtoOffer(db.Model):
    """One-time offer: buying source_product unlocks a short-lived coupon for oto_product."""
    __tablename__ = "oto_offers"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    source_product_id = db.Column(db.String(36), db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, unique=True)
    oto_product_id = db.Column(db.String(36), db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    discount_type = db.Column(db.String(16), nullable=False, default="percentage")
    discount_value = db.Column(db.Numeric(10, 2), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=15)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    oto_product = db.relationship("Product", foreign_keys=[oto_product_id])
