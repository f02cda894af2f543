"""
Tests for StripeSignatureVerifier.
"""

import json
import time

import pytest

from gateflow.errors import InvalidSignature
from gateflow.services.signature import StripeSignatureVerifier, build_verifiers

from conftest import WEBHOOK_SECRET, sign_payload


@pytest.fixture
def verifier():
    return StripeSignatureVerifier(WEBHOOK_SECRET, tolerance=300)


def _payload(**fields):
    event = {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {}}}
    event.update(fields)
    return json.dumps(event)


class TestStripeSignatureVerifier:

    def test_valid_signature(self, verifier):
        payload = _payload()

        event = verifier.verify(payload.encode("utf-8"), sign_payload(payload))

        assert event["id"] == "evt_1"
        assert event["type"] == "checkout.session.completed"

    def test_missing_header(self, verifier):
        with pytest.raises(InvalidSignature) as exc:
            verifier.verify(_payload().encode("utf-8"), None)
        assert exc.value.message == "Missing signature"

    def test_modified_body(self, verifier):
        payload = _payload()
        header = sign_payload(payload)

        with pytest.raises(InvalidSignature) as exc:
            verifier.verify(payload.replace("evt_1", "evt_2").encode("utf-8"), header)
        assert exc.value.message == "Invalid signature"

    def test_wrong_secret(self, verifier):
        payload = _payload()
        with pytest.raises(InvalidSignature):
            verifier.verify(payload.encode("utf-8"), sign_payload(payload, secret="whsec_other"))

    def test_timestamp_outside_tolerance(self, verifier):
        payload = _payload()
        header = sign_payload(payload, timestamp=time.time() - 301)

        with pytest.raises(InvalidSignature):
            verifier.verify(payload.encode("utf-8"), header)

    def test_malformed_header(self, verifier):
        with pytest.raises(InvalidSignature):
            verifier.verify(_payload().encode("utf-8"), "garbage")

    def test_signed_but_not_an_event(self, verifier):
        payload = json.dumps({"hello": "world"})
        with pytest.raises(InvalidSignature) as exc:
            verifier.verify(payload.encode("utf-8"), sign_payload(payload))
        assert exc.value.message == "Invalid payload"

    def test_not_utf8(self, verifier):
        with pytest.raises(InvalidSignature) as exc:
            verifier.verify(b"\xff\xfe", "t=1,v1=abc")
        assert exc.value.message == "Invalid payload encoding"

    def test_configured(self):
        assert StripeSignatureVerifier("whsec_x").configured
        assert not StripeSignatureVerifier(None).configured


class TestBuildVerifiers:

    def test_stripe_registered(self):
        verifiers = build_verifiers({"STRIPE_WEBHOOK_SECRET": "whsec_x", "STRIPE_WEBHOOK_TOLERANCE": "60"})

        assert set(verifiers) == {"stripe"}
        assert verifiers["stripe"].secret == "whsec_x"
        assert verifiers["stripe"].tolerance == 60
