# -*- coding: utf-8 -*-
from sqlalchemy import UniqueConstraint

from gateflow.database import db
from gateflow.models.base import new_id, utcnow, isoformat


class ProductAccess(db.Model):
    """A user's entitlement to a product (AccessGrant). Deleted, not soft-deleted, on revocation."""
    __tablename__ = "user_product_access"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="unique_user_product_access"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    access_granted_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    # NULL means unlimited
    access_expires_at = db.Column(db.DateTime, nullable=True)
    access_duration_days = db.Column(db.Integer, nullable=True)

    @property
    def is_permanent(self) -> bool:
        return self.access_expires_at is None

    def is_active(self, now=None) -> bool:
        if self.access_expires_at is None:
            return True
        return self.access_expires_at > (now or utcnow())

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "product_id": self.product_id,
            "access_granted_at": isoformat(self.access_granted_at),
            "access_expires_at": isoformat(self.access_expires_at),
            "access_duration_days": self.access_duration_days,
        }
