# -*- coding: utf-8 -*-
"""
Typed payment events.

`parse_event` converts a verified provider payload into one of the event
classes below. Handlers only ever see these classes, never raw dicts, so a
renamed or missing provider field fails here instead of deep in a handler.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
CHECKOUT_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
CHARGE_REFUNDED = "charge.refunded"
CHARGE_DISPUTE_CREATED = "charge.dispute.created"


def _ref_id(value) -> Optional[str]:
    """Expandable Stripe references arrive either as an id or as an object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class PurchaseMetadata:
    """Checkout metadata written by the create-session endpoint."""
    product_id: Optional[str] = None
    user_id: Optional[str] = None
    bump_product_id: Optional[str] = None
    coupon_id: Optional[str] = None
    discount_amount: float = 0.0
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_metadata(cls, metadata: Optional[dict]) -> "PurchaseMetadata":
        md = metadata or {}
        has_bump = md.get("has_bump") == "true"
        has_coupon = md.get("has_coupon") == "true"
        try:
            discount = float(md.get("discount_amount") or 0)
        except (TypeError, ValueError):
            discount = 0.0
        return cls(
            product_id=md.get("product_id") or None,
            user_id=md.get("user_id") or None,
            bump_product_id=(md.get("bump_product_id") or None) if has_bump else None,
            coupon_id=(md.get("coupon_id") or None) if has_coupon else None,
            discount_amount=discount,
            first_name=md.get("first_name") or None,
            last_name=md.get("last_name") or None,
            email=md.get("email") or None,
        )


@dataclass(frozen=True)
class PaymentEvent:
    id: str
    type: str
    occurred_at: Optional[datetime]
    raw: dict = field(repr=False, compare=False)


@dataclass(frozen=True)
class CheckoutCompleted(PaymentEvent):
    session_id: Optional[str] = None
    payment_status: Optional[str] = None
    customer_email: Optional[str] = None
    amount_total: int = 0
    currency: str = "usd"
    payment_intent_id: Optional[str] = None
    metadata: PurchaseMetadata = field(default_factory=PurchaseMetadata)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


@dataclass(frozen=True)
class PaymentSucceeded(PaymentEvent):
    payment_intent_id: Optional[str] = None
    customer_email: Optional[str] = None
    amount: int = 0
    currency: str = "usd"
    metadata: PurchaseMetadata = field(default_factory=PurchaseMetadata)


@dataclass(frozen=True)
class ChargeRefunded(PaymentEvent):
    charge_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    amount_refunded: int = 0
    refund_id: Optional[str] = None


@dataclass(frozen=True)
class DisputeCreated(PaymentEvent):
    dispute_id: Optional[str] = None
    charge_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    reason: Optional[str] = None
    status: Optional[str] = None
    created: Optional[datetime] = None


@dataclass(frozen=True)
class UnhandledEvent(PaymentEvent):
    pass


AnyPaymentEvent = Union[CheckoutCompleted, PaymentSucceeded, ChargeRefunded, DisputeCreated, UnhandledEvent]

# Every class a dispatcher must route.
EVENT_CLASSES = (CheckoutCompleted, PaymentSucceeded, ChargeRefunded, DisputeCreated, UnhandledEvent)


def _parse_checkout(base: dict, obj: dict) -> CheckoutCompleted:
    customer_details = obj.get("customer_details") or {}
    return CheckoutCompleted(
        **base,
        session_id=obj.get("id"),
        payment_status=obj.get("payment_status"),
        customer_email=customer_details.get("email") or obj.get("customer_email"),
        amount_total=int(obj.get("amount_total") or 0),
        currency=obj.get("currency") or "usd",
        payment_intent_id=_ref_id(obj.get("payment_intent")),
        metadata=PurchaseMetadata.from_metadata(obj.get("metadata")),
    )


def _parse_payment_intent(base: dict, obj: dict) -> PaymentSucceeded:
    metadata = PurchaseMetadata.from_metadata(obj.get("metadata"))
    return PaymentSucceeded(
        **base,
        payment_intent_id=obj.get("id"),
        customer_email=obj.get("receipt_email") or metadata.email,
        amount=int(obj.get("amount") or 0),
        currency=obj.get("currency") or "usd",
        metadata=metadata,
    )


def _parse_refund(base: dict, obj: dict) -> ChargeRefunded:
    refunds = (obj.get("refunds") or {}).get("data") or []
    return ChargeRefunded(
        **base,
        charge_id=obj.get("id"),
        payment_intent_id=_ref_id(obj.get("payment_intent")),
        amount_refunded=int(obj.get("amount_refunded") or 0),
        refund_id=refunds[0].get("id") if refunds else None,
    )


def _parse_dispute(base: dict, obj: dict) -> DisputeCreated:
    return DisputeCreated(
        **base,
        dispute_id=obj.get("id"),
        charge_id=_ref_id(obj.get("charge")),
        payment_intent_id=_ref_id(obj.get("payment_intent")),
        reason=obj.get("reason"),
        status=obj.get("status"),
        created=_timestamp(obj.get("created")),
    )


PARSERS = {
    CHECKOUT_SESSION_COMPLETED: _parse_checkout,
    CHECKOUT_ASYNC_PAYMENT_SUCCEEDED: _parse_checkout,
    PAYMENT_INTENT_SUCCEEDED: _parse_payment_intent,
    CHARGE_REFUNDED: _parse_refund,
    CHARGE_DISPUTE_CREATED: _parse_dispute,
}


def parse_event(raw: dict) -> AnyPaymentEvent:
    """Build the typed event for a verified payload.

    Raises ValueError when the payload is structurally unusable (no id/type, or
    a handled type without a `data.object`).
    """
    event_id = raw.get("id")
    event_type = raw.get("type")
    if not event_id or not event_type:
        raise ValueError("Event is missing id or type")

    base = {
        "id": event_id,
        "type": event_type,
        "occurred_at": _timestamp(raw.get("created")),
        "raw": raw,
    }

    parser = PARSERS.get(event_type)
    if parser is None:
        return UnhandledEvent(**base)

    obj = (raw.get("data") or {}).get("object")
    if not isinstance(obj, dict):
        raise ValueError(f"Event {event_id} has no data.object")
    return parser(base, obj)
