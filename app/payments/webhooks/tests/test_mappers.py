"""
Tests for provider payload mapping.
"""

from decimal import Decimal

import pytest

from payments.state_machines import Provider, TransactionStatus
from payments.webhooks.mappers import (
    EVENT_MAPPERS,
    NormalizedEvent,
    event_identity,
    map_event,
    register_mapper,
)


class TestEventIdentity:
    """Deduplication keys."""

    def test_paypal(self):
        payload = {"id": "WH-1", "event_type": "PAYMENT.CAPTURE.COMPLETED"}

        assert event_identity(Provider.PAYPAL, payload, b"{}") == ("WH-1", "PAYMENT.CAPTURE.COMPLETED")

    def test_stripe(self):
        payload = {"id": "evt_1", "type": "checkout.session.completed"}

        assert event_identity(Provider.STRIPE, payload, b"{}") == ("evt_1", "checkout.session.completed")

    def test_chain_without_id_hashes_body(self):
        """More confirmations, different body, different event."""
        first, _ = event_identity(Provider.TRON, {}, b'{"confirmations": 1}')
        second, event_type = event_identity(Provider.TRON, {}, b'{"confirmations": 20}')

        assert first != second
        assert len(first) == 64
        assert event_type == "transfer"

    def test_chain_with_explicit_id(self):
        assert event_identity(Provider.TRON, {"event_id": "n-1"}, b"{}")[0] == "n-1"


class TestPayPal:
    """Tests for map_paypal."""

    def test_capture_completed(self):
        event = map_event(
            Provider.PAYPAL,
            {
                "event_type": "PAYMENT.CAPTURE.COMPLETED",
                "resource": {
                    "id": "CAP-1",
                    "custom_id": "7061993827409920001",
                    "amount": {"currency_code": "USD", "value": "49.99"},
                },
            },
        )

        assert event.outcome == TransactionStatus.COMPLETED
        assert event.transaction_ref == "7061993827409920001"
        assert event.external_ref == "CAP-1"
        assert event.confirmed_amount == Decimal("49.99")

    def test_capture_pending(self):
        event = map_event(Provider.PAYPAL, {"event_type": "PAYMENT.CAPTURE.PENDING", "resource": {"custom_id": "1"}})

        assert event.outcome == TransactionStatus.PROCESSING

    def test_capture_denied(self):
        event = map_event(
            Provider.PAYPAL,
            {
                "event_type": "PAYMENT.CAPTURE.DENIED",
                "resource": {"custom_id": "1", "status_details": {"reason": "RISK"}},
            },
        )

        assert event.outcome == TransactionStatus.FAILED
        assert event.reason == "PayPal capture denied RISK"

    def test_refund_points_to_capture(self):
        event = map_event(
            Provider.PAYPAL,
            {
                "event_type": "PAYMENT.CAPTURE.REFUNDED",
                "resource": {
                    "id": "REF-1",
                    "links": [
                        {"rel": "self", "href": "https://api.paypal.com/v2/payments/refunds/REF-1"},
                        {"rel": "up", "href": "https://api.paypal.com/v2/payments/captures/CAP-1"},
                    ],
                },
            },
        )

        assert event.outcome == TransactionStatus.REFUNDED
        assert event.captured_ref == "CAP-1"
        assert event.external_ref == "REF-1"

    def test_order_approved_asks_provider(self):
        event = map_event(
            Provider.PAYPAL,
            {
                "event_type": "CHECKOUT.ORDER.APPROVED",
                "resource": {"id": "ORDER-1", "purchase_units": [{"custom_id": "42"}]},
            },
        )

        assert event.outcome is None
        assert event.verify_with_provider
        assert event.is_actionable
        assert event.provider_ref == "ORDER-1"
        assert event.transaction_ref == "42"

    def test_unknown_type_is_ignored(self):
        event = map_event(Provider.PAYPAL, {"event_type": "BILLING.PLAN.CREATED"})

        assert not event.is_actionable


class TestStripe:
    """Tests for map_stripe."""

    def _session_event(self, event_type, **session):
        return {"type": event_type, "data": {"object": {"id": "cs_1", "metadata": {"transaction_id": "9"}, **session}}}

    def test_paid_session_completes(self):
        event = map_event(
            Provider.STRIPE,
            self._session_event(
                "checkout.session.completed",
                status="complete",
                payment_status="paid",
                payment_intent="pi_1",
                amount_total=4999,
            ),
        )

        assert event.outcome == TransactionStatus.COMPLETED
        assert event.transaction_ref == "9"
        assert event.provider_ref == "cs_1"
        assert event.external_ref == "pi_1"
        assert event.confirmed_amount == Decimal("49.99")

    def test_unpaid_completed_session_is_processing(self):
        event = map_event(
            Provider.STRIPE,
            self._session_event("checkout.session.completed", status="complete", payment_status="unpaid"),
        )

        assert event.outcome == TransactionStatus.PROCESSING

    @pytest.mark.parametrize(
        "event_type", ["checkout.session.async_payment_failed", "checkout.session.expired"]
    )
    def test_failed_sessions(self, event_type):
        event = map_event(Provider.STRIPE, self._session_event(event_type))

        assert event.outcome == TransactionStatus.FAILED

    def test_client_reference_id_fallback(self):
        payload = {
            "type": "checkout.session.expired",
            "data": {"object": {"id": "cs_2", "client_reference_id": "77"}},
        }

        assert map_event(Provider.STRIPE, payload).transaction_ref == "77"

    def test_charge_refunded(self):
        payload = {
            "type": "charge.refunded",
            "data": {"object": {"payment_intent": "pi_1", "refunds": {"data": [{"id": "re_1"}]}}},
        }

        event = map_event(Provider.STRIPE, payload)

        assert event.outcome == TransactionStatus.REFUNDED
        assert event.captured_ref == "pi_1"
        assert event.external_ref == "re_1"


class TestChainTransfer:
    """Tests for map_chain_transfer."""

    def test_transfer(self):
        event = map_event(
            Provider.TRON,
            {"txid": "ab" * 32, "to": "TAddr", "amount": "49.99", "confirmations": 20},
        )

        assert event.outcome == TransactionStatus.COMPLETED
        assert event.external_ref == "ab" * 32
        assert event.deposit_address == "TAddr"
        assert event.confirmed_amount == Decimal("49.99")
        assert event.confirmations == 20

    def test_ethereum_hash_alias(self):
        event = map_event(Provider.ETHEREUM, {"hash": "0xabc", "to": "0x1", "amount": 5})

        assert event.external_ref == "0xabc"
        assert event.confirmations == 0

    @pytest.mark.parametrize(
        "payload",
        [
            {"to": "TAddr", "amount": "1"},
            {"txid": "t", "to": "TAddr", "amount": "not-a-number"},
            {"txid": "t", "amount": "1"},
        ],
    )
    def test_incomplete_transfer_is_ignored(self, payload):
        assert not map_event(Provider.TRON, payload).is_actionable


class TestRegistry:
    """Tests for register_mapper."""

    def test_register_custom_mapper(self, monkeypatch):
        monkeypatch.setattr("payments.webhooks.mappers.EVENT_MAPPERS", dict(EVENT_MAPPERS))
        from payments.webhooks import mappers

        @register_mapper("acme")
        def map_acme(payload):
            return NormalizedEvent(event_type="acme", outcome=TransactionStatus.COMPLETED)

        assert mappers.EVENT_MAPPERS["acme"] is map_acme
        assert "acme" not in EVENT_MAPPERS

    def test_unknown_provider_raises(self):
        with pytest.raises(KeyError):
            map_event("acme-unregistered", {})
