"""
End-to-end tests for POST /webhooks/<provider>.

Covers the ingestion guarantees: duplicate deliveries apply side effects
once, tampered payloads never reach the database, refunds revoke access,
incomplete events are acknowledged without crashing, and unknown event
types are acknowledged.
"""

import json
import time
from unittest.mock import patch

import pytest
from sqlalchemy import event as sa_event

from gateflow.database import db
from gateflow.models import GuestPurchase, PaymentTransaction, ProcessedWebhookEvent, ProductAccess
from gateflow.services.ledger import CompletionRequest


class TestIdempotentDelivery:

    def test_same_event_twice_applies_once(self, post_webhook, events, product, user):
        event = events.checkout_completed(product.id, metadata={"user_id": user.id})

        first = post_webhook(event)
        second = post_webhook(event)

        assert first.status_code == 200
        assert first.get_json()["processed"] is True
        assert first.get_json()["message"] == "Payment processed: logged_in"

        body = second.get_json()
        assert second.status_code == 200
        assert body["processed"] is True
        assert body["message"] == f"Already processed: {event['id']}"

        assert PaymentTransaction.query.count() == 1
        assert ProductAccess.query.filter_by(user_id=user.id, product_id=product.id).count() == 1

    def test_checkout_and_payment_intent_for_one_purchase(self, post_webhook, events, product, user):
        """Both event types for one purchase must produce a single transaction."""
        post_webhook(events.checkout_completed(product.id, metadata={"user_id": user.id}))
        response = post_webhook(events.payment_intent_succeeded(product.id, metadata={"user_id": user.id}))

        body = response.get_json()
        tx = PaymentTransaction.query.one()
        assert body["processed"] is True
        assert body["message"] == f"Already processed: {tx.id}"
        assert ProductAccess.query.count() == 1

    def _checkout(self, client, stripe_gateway, product, **body):
        client.post("/api/checkout/create-session", json=dict(product_id=product.id, **body))
        return stripe_gateway.sessions[-1]["payment_intent_data"]["metadata"]

    def test_payment_intent_from_checkout_metadata(self, client, stripe_gateway, post_webhook, events, product):
        intent_metadata = self._checkout(client, stripe_gateway, product, email="buyer@example.com")
        assert intent_metadata["email"] == "buyer@example.com"

        post_webhook(events.checkout_completed(product.id, session_id="cs_test_1", metadata=intent_metadata))
        response = post_webhook(events.payment_intent_succeeded(product.id, email=None, metadata=intent_metadata))

        body = response.get_json()
        tx = PaymentTransaction.query.one()
        assert body["processed"] is True
        assert body["message"] == f"Already processed: {tx.id}"
        row = ProcessedWebhookEvent.query.filter_by(event_key="evt_pi_1").one()
        assert row.status == ProcessedWebhookEvent.STATUS_PROCESSED

    def test_payment_intent_without_email_after_checkout(self, client, stripe_gateway, post_webhook, events,
                                                          product):
        # email collected on the hosted checkout page, not known when the session was created
        intent_metadata = self._checkout(client, stripe_gateway, product)
        assert intent_metadata["email"] == ""

        post_webhook(events.checkout_completed(product.id, session_id="cs_test_1", metadata=intent_metadata))
        response = post_webhook(events.payment_intent_succeeded(product.id, email=None, metadata=intent_metadata))

        assert response.get_json()["processed"] is True
        assert PaymentTransaction.query.count() == 1

    def test_payment_intent_first_uses_metadata_email(self, client, stripe_gateway, post_webhook, events,
                                                      product):
        intent_metadata = self._checkout(client, stripe_gateway, product, email="buyer@example.com")

        response = post_webhook(events.payment_intent_succeeded(product.id, email=None, metadata=intent_metadata))

        assert response.get_json()["processed"] is True
        assert PaymentTransaction.query.one().customer_email == "buyer@example.com"

    def test_duplicate_does_not_notify_again(self, post_webhook, events, product, user, services):
        with patch.object(services.notifier, "trigger") as trigger:
            event = events.checkout_completed(product.id, metadata={"user_id": user.id})
            post_webhook(event)
            post_webhook(event)

        assert trigger.call_count == 1
        event_name, payload = trigger.call_args[0]
        assert event_name == "purchase.completed"
        assert payload["product_id"] == product.id
        assert payload["is_guest"] is False

    def test_processed_event_is_recorded(self, post_webhook, events, product):
        event = events.checkout_completed(product.id)
        post_webhook(event)

        row = ProcessedWebhookEvent.query.filter_by(event_key=event["id"]).one()
        assert row.status == ProcessedWebhookEvent.STATUS_PROCESSED
        assert row.event_type == "checkout.session.completed"


class TestSignatureRejection:

    def test_tampered_body_rejected_before_database(self, app, post_webhook, events, services):
        event = events.checkout_completed("prod_1")
        tampered = events.checkout_completed("prod_1", amount_total=1)

        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        sa_event.listen(db.engine, "before_cursor_execute", record)
        try:
            with patch.object(services.dispatcher, "dispatch") as dispatch:
                response = post_webhook(event, body=json.dumps(tampered))
        finally:
            sa_event.remove(db.engine, "before_cursor_execute", record)

        assert response.status_code == 400
        assert response.get_json() == {"error": "Invalid signature"}
        dispatch.assert_not_called()
        assert statements == []

    def test_wrong_secret_rejected(self, post_webhook, events):
        response = post_webhook(events.checkout_completed("prod_1"), secret="whsec_other")
        assert response.status_code == 400
        assert PaymentTransaction.query.count() == 0

    def test_missing_signature_header(self, client):
        response = client.post("/webhooks/stripe", data="{}", content_type="application/json")
        assert response.status_code == 400
        assert response.get_json() == {"error": "Missing signature"}

    def test_expired_timestamp_rejected(self, client, events, sign):
        payload = json.dumps(events.checkout_completed("prod_1"))
        header = sign(payload, timestamp=time.time() - 3600)

        response = client.post("/webhooks/stripe", data=payload, headers={"Stripe-Signature": header},
                               content_type="application/json")
        assert response.status_code == 400

    def test_signature_failure_counted(self, app, post_webhook, events):
        post_webhook(events.checkout_completed("prod_1"), secret="whsec_other")

        metrics = app.extensions["metrics"].get_metrics()
        assert 'gateflow_webhook_signature_failures_total{provider="stripe"} 1.0' in metrics


class TestRefundRevokesAccess:

    def test_refund_deletes_grant_and_marks_refunded(self, post_webhook, events, product, user):
        post_webhook(events.checkout_completed(product.id, metadata={"user_id": user.id}))
        assert ProductAccess.query.filter_by(user_id=user.id).count() == 1

        response = post_webhook(events.charge_refunded())

        body = response.get_json()
        assert body["processed"] is True
        assert body["message"] == "Refund processed and access revoked"
        tx = PaymentTransaction.query.one()
        assert tx.status == "refunded"
        assert tx.refund_id == "re_test_1"
        assert tx.refunded_amount == 4900
        assert ProductAccess.query.filter_by(user_id=user.id).count() == 0

    def test_second_refund_is_noop(self, post_webhook, events, product, user):
        post_webhook(events.checkout_completed(product.id, metadata={"user_id": user.id}))
        post_webhook(events.charge_refunded())

        redelivered = post_webhook(events.charge_refunded())
        assert redelivered.get_json()["message"] == "Already processed: evt_refund_1"

        second_refund = post_webhook(events.charge_refunded(event_id="evt_refund_2", refund_id="re_test_2"))
        assert second_refund.get_json()["processed"] is True
        assert second_refund.get_json()["message"] == "Already refunded"
        assert PaymentTransaction.query.one().refund_id == "re_test_1"

    def test_refund_of_guest_purchase_removes_guest_rows(self, post_webhook, events, product):
        post_webhook(events.checkout_completed(product.id, email="guest@example.com"))
        assert GuestPurchase.query.count() == 1

        post_webhook(events.charge_refunded())

        assert GuestPurchase.query.count() == 0
        assert PaymentTransaction.query.one().status == "refunded"

    def test_refund_for_unknown_transaction(self, post_webhook, events):
        response = post_webhook(events.charge_refunded(payment_intent="pi_unknown"))

        body = response.get_json()
        assert response.status_code == 200
        assert body["processed"] is False
        assert body["error"] == "Transaction not found for refund"


class TestMissingData:

    def test_checkout_without_email_is_not_fatal(self, post_webhook, events, product):
        response = post_webhook(events.checkout_completed(product.id, email=None))

        body = response.get_json()
        assert response.status_code == 200
        assert body["processed"] is False
        assert body["error"] == "Missing product_id or customer_email in session"
        assert PaymentTransaction.query.count() == 0

    def test_following_events_still_processed(self, post_webhook, events, product):
        post_webhook(events.checkout_completed(product.id, email=None, event_id="evt_broken"))

        response = post_webhook(events.checkout_completed(
            product.id, session_id="cs_test_ok", payment_intent="pi_test_ok", event_id="evt_ok"))

        assert response.get_json()["processed"] is True
        assert PaymentTransaction.query.count() == 1

    def test_failed_event_can_be_redelivered(self, post_webhook, events, product):
        event = events.checkout_completed(product.id, email=None)
        post_webhook(event)

        row = ProcessedWebhookEvent.query.filter_by(event_key=event["id"]).one()
        assert row.status == ProcessedWebhookEvent.STATUS_FAILED

        response = post_webhook(event)
        assert response.get_json()["error"] == "Missing product_id or customer_email in session"

    def test_unpaid_checkout_is_skipped(self, post_webhook, events, product):
        response = post_webhook(events.checkout_completed(product.id, payment_status="unpaid"))

        assert response.get_json()["processed"] is True
        assert response.get_json()["message"] == "Skipped: payment not yet paid"
        assert PaymentTransaction.query.count() == 0

    def test_async_payment_succeeded_completes(self, post_webhook, events, product):
        response = post_webhook(events.checkout_completed(
            product.id, payment_status="unpaid", event_type="checkout.session.async_payment_succeeded"))

        assert response.get_json()["processed"] is True
        assert PaymentTransaction.query.count() == 1


class TestScenarioRouting:

    def _request(self, product, session_id, email, user_id=None):
        return CompletionRequest(
            session_id=session_id,
            product_id=product.id,
            customer_email=email,
            amount=4900,
            user_id=user_id,
        )

    def test_guest_new(self, services, product):
        result = services.ledger.complete_payment(self._request(product, "cs_test_guest", "new@example.com"))

        assert result.success is True
        assert result.scenario == "guest_new"
        assert result.requires_login is True
        assert result.send_magic_link is True

    def test_existing_user_email(self, services, product, user):
        result = services.ledger.complete_payment(self._request(product, "cs_test_existing", user.email))

        assert result.scenario == "existing_user_email"
        assert result.requires_login is True
        assert result.send_magic_link is True
        assert ProductAccess.query.count() == 0

    def test_logged_in(self, services, product, user):
        result = services.ledger.complete_payment(
            self._request(product, "cs_test_logged", user.email, user_id=user.id))

        assert result.scenario == "logged_in"
        assert result.send_magic_link is False
        assert result.access_granted is True
        assert services.access.has_access(user.id, product.id)

    def test_guest_checkout_sends_magic_link(self, post_webhook, events, product, services):
        with patch.object(services.notifier, "send_magic_link") as send_magic_link:
            response = post_webhook(events.checkout_completed(product.id, email="Guest@Example.com"))

        assert response.get_json()["message"] == "Payment processed: guest_new"
        send_magic_link.assert_called_once_with("guest@example.com")


class TestUnknownEvents:

    def test_unknown_type_acknowledged(self, post_webhook, events):
        response = post_webhook(events.generic("customer.created", {"id": "cus_1"}, "evt_unknown_1"))

        assert response.status_code == 200
        body = response.get_json()
        assert body["processed"] is True
        assert body["message"] == "Unhandled event type: customer.created"

    def test_unknown_type_not_recorded(self, post_webhook, events):
        post_webhook(events.generic("invoice.paid", {"id": "in_1"}, "evt_unknown_2"))
        assert ProcessedWebhookEvent.query.count() == 0

    def test_handled_type_without_object(self, post_webhook, events):
        event = events.generic("charge.refunded", {}, "evt_no_object")
        event["data"] = {}

        response = post_webhook(event)
        body = response.get_json()
        assert response.status_code == 200
        assert body["processed"] is False
        assert body["error"].startswith("Malformed event")


class TestProviderRouting:

    def test_unknown_provider_404(self, post_webhook, events):
        response = post_webhook(events.checkout_completed("prod_1"), provider="paypal")
        assert response.status_code == 404

    def test_get_not_allowed(self, client):
        response = client.get("/webhooks/stripe")
        assert response.status_code == 405
        assert response.get_json() == {"error": "Method not allowed"}

    def test_unconfigured_secret(self, app, post_webhook, events, services):
        services.verifiers["stripe"].secret = None
        response = post_webhook(events.checkout_completed("prod_1"))
        assert response.status_code == 500
        assert response.get_json() == {"error": "Webhook not configured"}

    @pytest.mark.parametrize("outcome", ["processed", "duplicate"])
    def test_outcomes_counted(self, app, post_webhook, events, product, outcome):
        event = events.checkout_completed(product.id)
        post_webhook(event)
        post_webhook(event)

        metrics = app.extensions["metrics"].get_metrics()
        assert (
            f'gateflow_webhook_events_total{{event_type="checkout.session.completed",outcome="{outcome}"}} 1.0'
            in metrics
        )
