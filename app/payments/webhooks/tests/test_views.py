"""
Tests for the provider webhook endpoint.

Tests cover:
- Signed deliveries accepted and queued
- Redeliveries acknowledged as duplicates
- Signature failures, unknown providers and malformed bodies
- Stripe-Signature verification through the SDK
"""

import json

import pytest

from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus
from payments.tests.factories import TRON_WALLETS, chain_transfer_payload, paypal_capture_payload
from payments.webhooks.signatures import HMAC_SIGNATURE_HEADER


# =============================================================================
# Setup
# =============================================================================


@pytest.fixture
def queued(mocker):
    return mocker.patch("payments.webhooks.intake.process_webhook_event.delay")


def post_webhook(client, provider: str, body: bytes, headers: dict | None = None):
    return client.post(
        f"/api/v1/webhooks/{provider}/",
        data=body,
        content_type="application/json",
        headers=headers or {},
    )


# =============================================================================
# Accepted deliveries
# =============================================================================


@pytest.mark.django_db
class TestAccepted:
    """Deliveries answered with 200."""

    def test_signed_paypal_event(self, client, signed, queued, paypal_config, paypal_attempt):
        body, headers = signed(paypal_capture_payload(paypal_attempt, event_id="WH-V1"))

        response = post_webhook(client, "paypal", body, headers)

        assert response.status_code == 200
        assert response.json() == {"received": True, "duplicate": False, "event_id": "WH-V1"}
        assert WebhookEvent.objects.get(event_id="WH-V1").status == WebhookEventStatus.PENDING

    def test_redelivery_is_duplicate(self, client, signed, queued, paypal_config, paypal_attempt):
        body, headers = signed(paypal_capture_payload(paypal_attempt, event_id="WH-V2"))
        post_webhook(client, "paypal", body, headers)

        response = post_webhook(client, "paypal", body, headers)

        assert response.status_code == 200
        assert response.json()["duplicate"] is True
        assert WebhookEvent.objects.filter(event_id="WH-V2").count() == 1

    def test_signed_chain_event(self, client, signed, queued, tron_config):
        body, headers = signed(
            chain_transfer_payload(TRON_WALLETS[0], "10.00"), "chain-webhook-secret"
        )

        response = post_webhook(client, "tron", body, headers)

        assert response.status_code == 200
        assert WebhookEvent.objects.get(provider="tron").event_type == "transfer"

    def test_stripe_event(self, client, queued, stripe_signature):
        body = json.dumps({"id": "evt_V1", "type": "checkout.session.completed"}).encode()

        response = post_webhook(client, "stripe", body, {"Stripe-Signature": "t=1,v1=abc"})

        assert response.status_code == 200
        assert response.json()["event_id"] == "evt_V1"
        assert stripe_signature.call_args.args[1] == "t=1,v1=abc"


# =============================================================================
# Refused deliveries
# =============================================================================


@pytest.mark.django_db
class TestRefused:
    """Deliveries answered with an error."""

    def test_wrong_signature_returns_401(self, client, signed, queued, paypal_config, paypal_attempt):
        body, headers = signed(paypal_capture_payload(paypal_attempt, event_id="WH-V3"), "wrong")

        response = post_webhook(client, "paypal", body, headers)

        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_WEBHOOK_SIGNATURE"
        assert WebhookEvent.objects.get(event_id="WH-V3").status == WebhookEventStatus.REJECTED
        queued.assert_not_called()

    def test_missing_secret_returns_401(self, client, signed, queued, paypal_attempt):
        """No active PayPal configuration means nothing can be verified."""
        body, headers = signed(paypal_capture_payload(paypal_attempt))

        response = post_webhook(client, "paypal", body, headers)

        assert response.status_code == 401

    def test_missing_stripe_signature_returns_401(self, client, queued, stripe_signature):
        body = json.dumps({"id": "evt_V2", "type": "charge.refunded"}).encode()

        response = post_webhook(client, "stripe", body)

        assert response.status_code == 401
        stripe_signature.assert_not_called()

    def test_rejected_stripe_signature_returns_401(self, client, queued, stripe_signature):
        stripe_signature.reject()
        body = json.dumps({"id": "evt_V3", "type": "charge.refunded"}).encode()

        response = post_webhook(client, "stripe", body, {"Stripe-Signature": "forged"})

        assert response.status_code == 401

    def test_unknown_provider_returns_404(self, client):
        response = post_webhook(client, "venmo", b"{}", {HMAC_SIGNATURE_HEADER: "00"})

        assert response.status_code == 404
        assert response.json()["error_code"] == "UNKNOWN_WEBHOOK_PROVIDER"

    def test_malformed_body_returns_400(self, client, paypal_config):
        response = post_webhook(client, "paypal", b"not json")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_WEBHOOK_PAYLOAD"
        assert WebhookEvent.objects.get().status == WebhookEventStatus.REJECTED

    def test_get_not_allowed(self, client):
        response = client.get("/api/v1/webhooks/paypal/")

        assert response.status_code == 405
