"""
Tests for parsing verified payloads into typed events.
"""

import pytest

from gateflow.services.events import (
    ChargeRefunded,
    CheckoutCompleted,
    DisputeCreated,
    PaymentSucceeded,
    PurchaseMetadata,
    UnhandledEvent,
    parse_event,
)


class TestParseEvent:

    def test_checkout_completed(self, events):
        event = parse_event(events.checkout_completed(
            "prod_1", metadata={"user_id": "user_1", "has_bump": "true", "bump_product_id": "prod_2"}))

        assert isinstance(event, CheckoutCompleted)
        assert event.session_id == "cs_test_a1"
        assert event.customer_email == "buyer@example.com"
        assert event.amount_total == 4900
        assert event.is_paid
        assert event.metadata.product_id == "prod_1"
        assert event.metadata.user_id == "user_1"
        assert event.metadata.bump_product_id == "prod_2"
        assert event.occurred_at is not None

    def test_checkout_email_fallback(self, events):
        raw = events.checkout_completed("prod_1", email=None)
        raw["data"]["object"]["customer_email"] = "fallback@example.com"

        assert parse_event(raw).customer_email == "fallback@example.com"

    def test_expanded_payment_intent(self, events):
        raw = events.checkout_completed("prod_1")
        raw["data"]["object"]["payment_intent"] = {"id": "pi_expanded", "object": "payment_intent"}

        assert parse_event(raw).payment_intent_id == "pi_expanded"

    def test_payment_intent_email_from_metadata(self, events):
        raw = events.payment_intent_succeeded("prod_1", email=None, metadata={"email": "meta@example.com"})

        event = parse_event(raw)

        assert isinstance(event, PaymentSucceeded)
        assert event.customer_email == "meta@example.com"
        assert event.payment_intent_id == "pi_test_a1"

    def test_charge_refunded(self, events):
        event = parse_event(events.charge_refunded(amount_refunded=1500))

        assert isinstance(event, ChargeRefunded)
        assert event.charge_id == "ch_test_1"
        assert event.refund_id == "re_test_1"
        assert event.amount_refunded == 1500

    def test_dispute(self, events):
        event = parse_event(events.dispute_created())

        assert isinstance(event, DisputeCreated)
        assert event.charge_id == "ch_test_1"
        assert event.created is not None
        assert event.created.tzinfo is None

    def test_unknown_type(self, events):
        event = parse_event(events.generic("customer.updated", {"id": "cus_1"}, "evt_9"))
        assert isinstance(event, UnhandledEvent)
        assert event.type == "customer.updated"

    @pytest.mark.parametrize("raw", [
        {"type": "charge.refunded"},
        {"id": "evt_1"},
        {"id": "evt_1", "type": "charge.refunded", "data": {}},
        {"id": "evt_1", "type": "charge.refunded", "data": {"object": "ch_1"}},
    ])
    def test_malformed(self, raw):
        with pytest.raises(ValueError):
            parse_event(raw)


class TestPurchaseMetadata:

    def test_flags_gate_optional_ids(self):
        md = PurchaseMetadata.from_metadata({
            "product_id": "prod_1",
            "has_bump": "false",
            "bump_product_id": "prod_2",
            "has_coupon": "false",
            "coupon_id": "coupon_1",
        })

        assert md.bump_product_id is None
        assert md.coupon_id is None

    def test_empty_strings_are_none(self):
        md = PurchaseMetadata.from_metadata({"product_id": "prod_1", "user_id": "", "first_name": ""})

        assert md.user_id is None
        assert md.first_name is None

    def test_discount_amount(self):
        assert PurchaseMetadata.from_metadata({"discount_amount": "4.90"}).discount_amount == 4.9
        assert PurchaseMetadata.from_metadata({"discount_amount": "n/a"}).discount_amount == 0.0
        assert PurchaseMetadata.from_metadata(None) == PurchaseMetadata()
