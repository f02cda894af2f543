# -*- coding: utf-8 -*-
"""
Thin wrapper around the Stripe SDK.

The API key travels with every call instead of living in the module-global
`stripe.api_key`, so tests can hand the app a fake gateway.
"""
from typing import Optional

import stripe

from gateflow.errors import DownstreamFailure


class StripeGateway:

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    def _require_key(self):
        if not self.api_key:
            raise DownstreamFailure("Stripe is not configured")

    def create_checkout_session(self, **params):
        self._require_key()
        try:
            return stripe.checkout.Session.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            raise DownstreamFailure(e.user_message or str(e), stripe_code=e.code) from e

    def create_refund(self, payment_intent_id: str, amount: Optional[int] = None,
                      reason: Optional[str] = None, metadata: Optional[dict] = None):
        self._require_key()
        params = {"payment_intent": payment_intent_id}
        if amount is not None:
            params["amount"] = amount
        if reason:
            params["reason"] = reason
        if metadata:
            params["metadata"] = metadata
        try:
            return stripe.Refund.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            raise DownstreamFailure(e.user_message or str(e), stripe_code=e.code) from e

    def get_charge_payment_intent(self, charge_id: str) -> Optional[str]:
        self._require_key()
        try:
            charge = stripe.Charge.retrieve(charge_id, api_key=self.api_key)
        except stripe.StripeError as e:
            raise DownstreamFailure(e.user_message or str(e), stripe_code=e.code) from e
        payment_intent = getattr(charge, "payment_intent", None)
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_intent = getattr(payment_intent, "id", None)
        return payment_intent
