"""
Tests for WebhookIntake.

Tests cover:
- Storing and queueing authentic deliveries
- Rejection of unsigned deliveries (stored as REJECTED)
- Redeliveries and re-sent rejected events
- Unknown providers
- Malformed bodies (stored as REJECTED)
"""

import hashlib

import pytest

from core.exceptions import NotFoundError, ValidationError
from payments.config_cache import ProviderConfigCache
from payments.exceptions import WebhookSignatureError
from payments.models import WebhookEvent
from payments.state_machines import Provider, WebhookEventStatus
from payments.tests.factories import TRON_WALLETS, chain_transfer_payload, paypal_capture_payload
from payments.webhooks.intake import WebhookIntake
from payments.webhooks.signatures import HMAC_SIGNATURE_HEADER, SignatureVerifier


@pytest.fixture
def intake():
    return WebhookIntake(SignatureVerifier(ProviderConfigCache(ttl_seconds=0)))


@pytest.fixture
def queued(mocker):
    return mocker.patch("payments.webhooks.intake.process_webhook_event.delay")


@pytest.mark.django_db
class TestAccept:
    """Authentic deliveries."""

    def test_new_event_is_stored_and_queued(
        self, intake, signed, queued, paypal_config, paypal_attempt, django_capture_on_commit_callbacks
    ):
        body, headers = signed(paypal_capture_payload(paypal_attempt, event_id="WH-100"))

        with django_capture_on_commit_callbacks(execute=True):
            result = intake.receive(Provider.PAYPAL, body, headers, client_ip="203.0.113.7")

        assert result.duplicate is False
        event = result.event
        assert event.event_id == "WH-100"
        assert event.event_type == "PAYMENT.CAPTURE.COMPLETED"
        assert event.status == WebhookEventStatus.PENDING
        assert event.client_ip == "203.0.113.7"
        assert event.signature == headers[HMAC_SIGNATURE_HEADER]
        queued.assert_called_once_with(event.pk)

    def test_sensitive_headers_are_not_stored(self, intake, signed, queued, paypal_config, paypal_attempt):
        body, headers = signed(paypal_capture_payload(paypal_attempt))
        headers.update({"Authorization": "Bearer x", "Cookie": "a=b", "User-Agent": "PayPal"})

        event = intake.receive(Provider.PAYPAL, body, headers).event

        assert "Authorization" not in event.headers
        assert "Cookie" not in event.headers
        assert event.headers["User-Agent"] == "PayPal"

    def test_redelivery_is_acknowledged_without_requeue(
        self, intake, signed, queued, paypal_config, paypal_attempt, django_capture_on_commit_callbacks
    ):
        body, headers = signed(paypal_capture_payload(paypal_attempt, event_id="WH-200"))
        with django_capture_on_commit_callbacks(execute=True):
            intake.receive(Provider.PAYPAL, body, headers)
            again = intake.receive(Provider.PAYPAL, body, headers)

        assert again.duplicate is True
        assert WebhookEvent.objects.filter(event_id="WH-200").count() == 1
        assert queued.call_count == 1

    def test_chain_event_identified_by_body(self, intake, signed, queued, tron_config):
        body, headers = signed(chain_transfer_payload(TRON_WALLETS[0], "49.99"), "chain-webhook-secret")

        event = intake.receive(Provider.TRON, body, headers).event

        assert event.event_type == "transfer"
        assert len(event.event_id) == 64


@pytest.mark.django_db
class TestReject:
    """Deliveries that fail authentication or parsing."""

    def test_bad_signature_is_stored_rejected(self, intake, signed, queued, paypal_config, paypal_attempt):
        body, headers = signed(paypal_capture_payload(paypal_attempt, event_id="WH-300"), "wrong")

        with pytest.raises(WebhookSignatureError):
            intake.receive(Provider.PAYPAL, body, headers)

        event = WebhookEvent.objects.get(event_id="WH-300")
        assert event.status == WebhookEventStatus.REJECTED
        queued.assert_not_called()

    def test_rejected_event_accepted_when_resent_signed(
        self, intake, signed, queued, paypal_config, paypal_attempt
    ):
        payload = paypal_capture_payload(paypal_attempt, event_id="WH-400")
        bad_body, bad_headers = signed(payload, "wrong")
        with pytest.raises(WebhookSignatureError):
            intake.receive(Provider.PAYPAL, bad_body, bad_headers)

        body, headers = signed(payload)
        result = intake.receive(Provider.PAYPAL, body, headers)

        assert result.duplicate is False
        assert result.event.status == WebhookEventStatus.PENDING

    def test_forged_redelivery_of_known_event_rejected(
        self, intake, signed, queued, paypal_config, paypal_attempt
    ):
        """Knowing an event id is not enough to get a 200."""
        payload = paypal_capture_payload(paypal_attempt, event_id="WH-500")
        body, headers = signed(payload)
        intake.receive(Provider.PAYPAL, body, headers)

        with pytest.raises(WebhookSignatureError):
            intake.receive(Provider.PAYPAL, body, {HMAC_SIGNATURE_HEADER: "00"})

        assert WebhookEvent.objects.get(event_id="WH-500").status == WebhookEventStatus.PENDING

    def test_unknown_provider(self, intake):
        with pytest.raises(NotFoundError) as exc_info:
            intake.receive("venmo", b"{}", {})

        assert exc_info.value.error_code == "UNKNOWN_WEBHOOK_PROVIDER"

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]"])
    def test_malformed_body(self, intake, paypal_config, body):
        with pytest.raises(ValidationError) as exc_info:
            intake.receive(Provider.PAYPAL, body, {})

        assert exc_info.value.error_code == "INVALID_WEBHOOK_PAYLOAD"
        event = WebhookEvent.objects.get(provider=Provider.PAYPAL)
        assert event.status == WebhookEventStatus.REJECTED
        assert event.event_id == hashlib.sha256(body).hexdigest()
        assert event.raw_body == body.decode()
        assert event.payload == {}

    def test_malformed_redelivery_reuses_row(self, intake, paypal_config):
        for _ in range(2):
            with pytest.raises(ValidationError):
                intake.receive(Provider.PAYPAL, b"not json", {})

        assert WebhookEvent.objects.count() == 1
