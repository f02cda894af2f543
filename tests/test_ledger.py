"""
Tests for PaymentLedger.complete_payment.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from gateflow.database import db
from gateflow.errors import DownstreamFailure
from gateflow.models import Coupon, CouponRedemption, GuestPurchase, PaymentTransaction, ProductAccess
from gateflow.services.ledger import CompletionRequest


@pytest.fixture
def ledger(services):
    return services.ledger


def _request(product, **overrides):
    values = dict(
        session_id="cs_test_ledger",
        product_id=product.id,
        customer_email="buyer@example.com",
        amount=4900,
        currency="usd",
        payment_intent_id="pi_test_ledger",
    )
    values.update(overrides)
    return CompletionRequest(**values)


class TestValidation:

    @pytest.mark.parametrize("overrides,error", [
        ({"session_id": ""}, "Invalid session ID"),
        ({"session_id": "sess_123"}, "Invalid session ID format"),
        ({"session_id": "cs_" + "a" * 300}, "Invalid session ID"),
        ({"customer_email": "not-an-email"}, "Valid email address is required"),
        ({"amount": 0}, "Invalid amount"),
        ({"amount": 100000000}, "Invalid amount"),
    ])
    def test_rejects_invalid_input(self, ledger, product, overrides, error):
        result = ledger.complete_payment(_request(product, **overrides))

        assert result.success is False
        assert result.error == error
        assert PaymentTransaction.query.count() == 0

    def test_inactive_product(self, ledger, product):
        product.is_active = False
        db.session.commit()

        result = ledger.complete_payment(_request(product))

        assert result.success is False
        assert result.error == "Product not found or inactive"


class TestCompletion:

    def test_transaction_recorded(self, ledger, product, user):
        result = ledger.complete_payment(_request(product, user_id=user.id, customer_email=" Buyer@Example.com "))

        tx = PaymentTransaction.query.one()
        assert result.transaction_id == tx.id
        assert tx.status == "completed"
        assert tx.customer_email == "buyer@example.com"
        assert tx.currency == "USD"
        assert tx.amount == 4900
        assert tx.stripe_payment_intent_id == "pi_test_ledger"
        assert tx.metadata_json["scenario"] == "logged_in"

    def test_limited_product_sets_expiry(self, ledger, limited_product, user):
        result = ledger.complete_payment(_request(limited_product, user_id=user.id))

        assert result.access_expires_at is not None
        assert ProductAccess.query.one().access_duration_days == 30

    def test_repeat_purchase_reports_existing_access(self, ledger, product, user):
        ledger.complete_payment(_request(product, user_id=user.id))

        result = ledger.complete_payment(_request(
            product, user_id=user.id, session_id="cs_test_again", payment_intent_id="pi_test_again"))

        assert result.success is True
        assert result.already_had_access is True
        assert result.already_processed is False

    def test_same_session_is_idempotent(self, ledger, product):
        first = ledger.complete_payment(_request(product))
        second = ledger.complete_payment(_request(product))

        assert second.already_processed is True
        assert second.scenario == "already_processed"
        assert second.transaction_id == first.transaction_id
        assert second.is_guest_purchase is True
        assert PaymentTransaction.query.count() == 1
        assert GuestPurchase.query.count() == 1

    def test_concurrent_insert_reported_as_already_processed(self, ledger, product):
        first = ledger.complete_payment(_request(product))
        lookup = ledger.find_existing
        calls = []

        def missed_precheck(*args):
            calls.append(args)
            return None if len(calls) == 1 else lookup(*args)

        with patch.object(ledger, "find_existing", side_effect=missed_precheck):
            second = ledger.complete_payment(_request(product))

        assert len(calls) == 2
        assert second.success is True
        assert second.already_processed is True
        assert second.transaction_id == first.transaction_id
        assert PaymentTransaction.query.count() == 1

    def test_conflict_without_transaction_raises(self, ledger, product):
        db.session.add(GuestPurchase(
            customer_email="someone@example.com",
            product_id=product.id,
            session_id="cs_test_other",
            transaction_amount=100,
        ))
        db.session.commit()

        with pytest.raises(DownstreamFailure):
            ledger.complete_payment(_request(product, session_id="cs_test_other", payment_intent_id="pi_test_other"))

        assert PaymentTransaction.query.count() == 0

    def test_unknown_user_id_treated_as_guest(self, ledger, product):
        result = ledger.complete_payment(_request(product, user_id="00000000-0000-0000-0000-000000000000"))

        assert result.scenario == "guest_new"
        assert PaymentTransaction.query.one().user_id is None


class TestOrderBump:

    def test_logged_in_gets_bump_with_own_duration(self, ledger, product, order_bump, user):
        result = ledger.complete_payment(_request(
            product, user_id=user.id, bump_product_id=order_bump.bump_product_id))

        assert result.bump_access_granted is True
        bump_access = ProductAccess.query.filter_by(product_id=order_bump.bump_product_id).one()
        assert bump_access.access_duration_days == 7
        tx = PaymentTransaction.query.one()
        assert tx.metadata_json["has_bump"] is True

    def test_guest_gets_bump_row(self, ledger, product, order_bump):
        ledger.complete_payment(_request(product, bump_product_id=order_bump.bump_product_id))

        rows = {g.session_id: g for g in GuestPurchase.query.all()}
        assert set(rows) == {"cs_test_ledger", "cs_test_ledger_bump"}
        assert rows["cs_test_ledger_bump"].transaction_amount == 0

    def test_bump_not_offered_is_ignored(self, ledger, product, limited_product, user):
        result = ledger.complete_payment(_request(product, user_id=user.id, bump_product_id=limited_product.id))

        assert result.success is True
        assert result.bump_access_granted is False
        assert ProductAccess.query.count() == 1


class TestCouponRedemption:

    def test_redemption_recorded_and_counted(self, ledger, product, user):
        coupon = Coupon(code="SAVE10", discount_type="percentage", discount_value=Decimal("10"))
        db.session.add(coupon)
        db.session.commit()

        ledger.complete_payment(_request(product, user_id=user.id, coupon_id=coupon.id))

        redemption = CouponRedemption.query.one()
        assert redemption.coupon_id == coupon.id
        assert redemption.user_id == user.id
        assert redemption.transaction_id == PaymentTransaction.query.one().id
        db.session.refresh(coupon)
        assert coupon.current_usage_count == 1

    def test_deleted_coupon_does_not_block_purchase(self, ledger, product):
        result = ledger.complete_payment(_request(product, coupon_id="missing-coupon"))

        assert result.success is True
        assert CouponRedemption.query.count() == 0
