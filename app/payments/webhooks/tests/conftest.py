"""
Pytest fixtures for webhook tests.

Provides signed deliveries for the HMAC-signed providers and a Stripe
signature check that can be switched between accepting and rejecting.

Usage:
    def test_accepts(signed, paypal_config, attempt):
        body, headers = signed(paypal_capture_payload(attempt), "paypal-webhook-secret")
"""

import json
from unittest.mock import MagicMock

import pytest
import stripe

from payments.webhooks.signatures import HMAC_SIGNATURE_HEADER, compute_signature

PAYPAL_SECRET = "paypal-webhook-secret"


@pytest.fixture
def signed():
    """Build (raw_body, headers) for a payload signed with secret."""

    def _signed(payload: dict, secret: str = PAYPAL_SECRET, prefix: str = "") -> tuple[bytes, dict]:
        body = json.dumps(payload).encode()
        return body, {HMAC_SIGNATURE_HEADER: prefix + compute_signature(body, secret)}

    return _signed


@pytest.fixture
def stripe_signature(mocker):
    """
    Patch the Stripe SDK signature check.

    The returned mock accepts by default; set side_effect to reject.
    """
    mock = mocker.patch("stripe.Webhook.construct_event")
    mock.return_value = MagicMock(to_dict=MagicMock(return_value={}))
    mock.reject = lambda: setattr(
        mock, "side_effect", stripe.SignatureVerificationError("bad signature", "sig")
    )
    return mock
