# -*- coding: utf-8 -*-
"""
Payment models.

PaymentTransaction is the aggregate root of a purchase: exactly one row per
checkout/payment session. AccessGrant rows (see access.py) and guest purchases
are derived from it and kept consistent by the side-effect appliers.
"""
from enum import Enum

from gateflow.database import db
from gateflow.models.base import new_id, utcnow, isoformat


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    DISPUTED = "disputed"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionStatus.REFUNDED, TransactionStatus.DISPUTED)


# Status moves forward only; refunded and disputed are terminal.
ALLOWED_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.COMPLETED},
    TransactionStatus.COMPLETED: {TransactionStatus.REFUNDED, TransactionStatus.DISPUTED},
    TransactionStatus.REFUNDED: set(),
    TransactionStatus.DISPUTED: set(),
}


class PaymentTransaction(db.Model):
    __tablename__ = "payment_transactions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    session_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    stripe_payment_intent_id = db.Column(db.String(255), unique=True, nullable=True, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    customer_email = db.Column(db.String(255), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
    # Minor currency units, as reported by the processor
    amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TransactionStatus.PENDING.value, index=True)
    refund_id = db.Column(db.String(255), nullable=True)
    refunded_amount = db.Column(db.Integer, nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)
    dispute = db.Column(db.JSON, nullable=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    product = db.relationship("Product")

    @property
    def status_enum(self) -> TransactionStatus:
        return TransactionStatus(self.status)

    def can_transition_to(self, new_status: TransactionStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS[self.status_enum]

    def transition_to(self, new_status: TransactionStatus) -> None:
        if not self.can_transition_to(new_status):
            raise ValueError(f"Illegal transaction status change {self.status} -> {new_status.value}")
        self.status = new_status.value
        self.updated_at = utcnow()

    @classmethod
    def find_by_payment_reference(cls, payment_intent_id: str):
        """Locate by payment intent id, falling back to session id (payment-intent flow)."""
        if not payment_intent_id:
            return None
        tx = cls.query.filter_by(stripe_payment_intent_id=payment_intent_id).first()
        if tx is None:
            tx = cls.query.filter_by(session_id=payment_intent_id).first()
        return tx

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "stripe_payment_intent_id": self.stripe_payment_intent_id,
            "product_id": self.product_id,
            "customer_email": self.customer_email,
            "user_id": self.user_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "refund_id": self.refund_id,
            "refunded_amount": self.refunded_amount,
            "refunded_at": isoformat(self.refunded_at),
            "dispute": self.dispute,
            "metadata": self.metadata_json or {},
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<PaymentTransaction {self.session_id} {self.status}>"


class GuestPurchase(db.Model):
    """Purchase made without an authenticated account, claimed on first sign-in."""
    __tablename__ = "guest_purchases"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    customer_email = db.Column(db.String(255), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)
    # Bump rows use "<session_id>_bump"
    session_id = db.Column(db.String(255), unique=True, nullable=False)
    transaction_amount = db.Column(db.Integer, nullable=False, default=0)
    claimed_by_user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    claimed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @classmethod
    def for_session(cls, session_id: str):
        """Main and bump rows recorded for one checkout session."""
        return cls.query.filter(
            cls.session_id.in_([session_id, f"{session_id}_bump"])
        ).all()
