# -*- coding: utf-8 -*-
"""
Inbound webhook signature verification.

A verifier turns the raw request body plus the provider's signature header
into a parsed event dict, or raises InvalidSignature. Nothing downstream of
the verifier ever sees an unauthenticated payload.
"""
import json
from typing import Optional

import stripe

from gateflow.errors import InvalidSignature


class StripeSignatureVerifier:
    """Verifies `Stripe-Signature` headers (t=<ts>,v1=<hmac>) against the endpoint secret."""

    provider = "stripe"
    header_name = "Stripe-Signature"

    def __init__(self, secret: Optional[str], tolerance: int = 300):
        self.secret = secret
        self.tolerance = tolerance

    @property
    def configured(self) -> bool:
        return bool(self.secret)

    def verify(self, raw_body: bytes, signature_header: Optional[str]) -> dict:
        if not signature_header:
            raise InvalidSignature("Missing signature")

        try:
            payload = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        except UnicodeDecodeError:
            raise InvalidSignature("Invalid payload encoding")

        try:
            stripe.WebhookSignature.verify_header(
                payload, signature_header, self.secret, self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature("Invalid signature", detail=str(e))

        try:
            event = json.loads(payload)
        except ValueError:
            raise InvalidSignature("Invalid payload")

        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise InvalidSignature("Invalid payload")
        return event


def build_verifiers(config) -> dict:
    """Provider name -> verifier. Unknown providers are answered with 404."""
    return {
        StripeSignatureVerifier.provider: StripeSignatureVerifier(
            config.get("STRIPE_WEBHOOK_SECRET"),
            tolerance=int(config.get("STRIPE_WEBHOOK_TOLERANCE", 300)),
        ),
    }
