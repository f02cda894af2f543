import hashlib
import hmac
import json
import os
import tempfile
import time
from decimal import Decimal
from types import SimpleNamespace

import pytest

from gateflow.database import db
from gateflow.errors import DownstreamFailure
from gateflow.middleware.auth import issue_access_token
from gateflow.models import OrderBump, Product, User

WEBHOOK_SECRET = "whsec_test_secret"


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Stripe-Signature header value for `payload` (t=<ts>,v1=<hmac-sha256>)."""
    ts = int(timestamp if timestamp is not None else time.time())
    signature = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


class FakeStripeGateway:
    """Records calls instead of talking to Stripe."""

    def __init__(self):
        self.sessions = []
        self.refunds = []
        self.charges = {}
        self.error = None

    def create_checkout_session(self, **params):
        if self.error:
            raise self.error
        self.sessions.append(params)
        session_id = f"cs_test_{len(self.sessions)}"
        return SimpleNamespace(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")

    def create_refund(self, payment_intent_id, amount=None, reason=None, metadata=None):
        if self.error:
            raise self.error
        self.refunds.append({
            "payment_intent": payment_intent_id,
            "amount": amount,
            "reason": reason,
            "metadata": metadata,
        })
        return SimpleNamespace(id=f"re_test_{len(self.refunds)}")

    def get_charge_payment_intent(self, charge_id):
        if self.error:
            raise self.error
        return self.charges.get(charge_id)

    def fail(self, message="Your card was declined."):
        self.error = DownstreamFailure(message, stripe_code="card_declined")


def _event(event_type: str, obj: dict, event_id: str) -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": obj},
    }


def checkout_completed_event(product_id, session_id="cs_test_a1", email="buyer@example.com",
                             amount_total=4900, payment_status="paid", payment_intent="pi_test_a1",
                             metadata=None, event_id="evt_checkout_1",
                             event_type="checkout.session.completed"):
    md = {"product_id": product_id, "has_bump": "false", "has_coupon": "false"}
    md.update(metadata or {})
    obj = {
        "id": session_id,
        "object": "checkout.session",
        "mode": "payment",
        "payment_status": payment_status,
        "amount_total": amount_total,
        "currency": "usd",
        "payment_intent": payment_intent,
        "customer_details": {"email": email} if email else {"email": None},
        "metadata": md,
    }
    return _event(event_type, obj, event_id)


def payment_intent_succeeded_event(product_id, payment_intent_id="pi_test_a1", email="buyer@example.com",
                                   amount=4900, metadata=None, event_id="evt_pi_1"):
    md = {"product_id": product_id, "has_bump": "false", "has_coupon": "false"}
    md.update(metadata or {})
    obj = {
        "id": payment_intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "usd",
        "status": "succeeded",
        "receipt_email": email,
        "metadata": md,
    }
    return _event("payment_intent.succeeded", obj, event_id)


def charge_refunded_event(payment_intent="pi_test_a1", charge_id="ch_test_1", amount_refunded=4900,
                          refund_id="re_test_1", event_id="evt_refund_1"):
    obj = {
        "id": charge_id,
        "object": "charge",
        "payment_intent": payment_intent,
        "amount_refunded": amount_refunded,
        "refunded": True,
        "refunds": {"data": [{"id": refund_id, "amount": amount_refunded}]},
    }
    return _event("charge.refunded", obj, event_id)


def dispute_created_event(charge_id="ch_test_1", payment_intent="pi_test_a1", dispute_id="dp_test_1",
                          reason="fraudulent", event_id="evt_dispute_1"):
    obj = {
        "id": dispute_id,
        "object": "dispute",
        "charge": charge_id,
        "payment_intent": payment_intent,
        "reason": reason,
        "status": "needs_response",
        "created": int(time.time()),
    }
    return _event("charge.dispute.created", obj, event_id)


@pytest.fixture
def stripe_gateway():
    return FakeStripeGateway()


@pytest.fixture
def app(stripe_gateway):
    """Create and configure a new app instance for each test."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    from gateflow.factory import create_app
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "JWT_SECRET_KEY": "test-jwt-secret-key-with-enough-bytes",
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "IDEMPOTENCY_BACKEND": "database",
        "NOTIFIER_BACKEND": "sync",
        "RATELIMIT_ENABLED": False,
        "RATELIMIT_STORAGE_URI": "memory://",
        "GATEFLOW_LOG_JSON": False,
        "PUBLIC_BASE_URL": "https://shop.example.com",
        "CORS_ALLOWED_ORIGINS": "http://localhost:3000",
    }, stripe=stripe_gateway)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["gateflow"]


@pytest.fixture
def post_webhook(client):
    """POST a signed event to /webhooks/<provider>."""
    def _post(event, secret=WEBHOOK_SECRET, provider="stripe", body=None):
        payload = json.dumps(event)
        headers = {"Stripe-Signature": sign_payload(payload, secret)}
        return client.post(
            f"/webhooks/{provider}",
            data=body if body is not None else payload,
            headers=headers,
            content_type="application/json",
        )
    return _post


@pytest.fixture
def product(app):
    product = Product(name="Course", slug="course", price=Decimal("49.00"), currency="USD")
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture
def limited_product(app):
    product = Product(name="Membership", slug="membership", price=Decimal("19.00"), currency="USD",
                      auto_grant_duration_days=30)
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture
def order_bump(app, product):
    bump_product = Product(name="Workbook", slug="workbook", price=Decimal("15.00"), currency="USD")
    db.session.add(bump_product)
    db.session.flush()
    bump = OrderBump(
        main_product_id=product.id,
        bump_product_id=bump_product.id,
        bump_title="Add the workbook",
        bump_price=Decimal("9.00"),
        access_duration_days=7,
    )
    db.session.add(bump)
    db.session.commit()
    return bump


@pytest.fixture
def user(app):
    user = User(email="buyer@example.com")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin_user(app):
    admin = User(email="admin@example.com", is_admin=True)
    db.session.add(admin)
    db.session.commit()
    return admin


@pytest.fixture
def admin_headers(admin_user):
    return {"Authorization": f"Bearer {issue_access_token(admin_user)}"}


@pytest.fixture
def user_headers(user):
    return {"Authorization": f"Bearer {issue_access_token(user)}"}


@pytest.fixture
def events():
    """Builders for Stripe event payloads."""
    return SimpleNamespace(
        checkout_completed=checkout_completed_event,
        payment_intent_succeeded=payment_intent_succeeded_event,
        charge_refunded=charge_refunded_event,
        dispute_created=dispute_created_event,
        generic=_event,
    )


@pytest.fixture
def sign():
    return sign_payload
