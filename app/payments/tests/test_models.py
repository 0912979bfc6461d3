"""
Tests for payment domain models.

Tests model constraints, transitions, defaults and helpers for
PaymentTransaction, WebhookEvent, CommissionRule, SettlementEntry and
the provider configuration models.
"""

from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django_fsm import TransitionNotAllowed

from payments.models import PaymentTransaction, SettlementEntry, WebhookEvent
from payments.state_machines import (
    Provider,
    SettlementRecipient,
    TransactionStatus,
    WebhookEventStatus,
)
from payments.tests.factories import (
    CommissionRuleFactory,
    HostedCheckoutConfigFactory,
    PaymentTransactionFactory,
    TronTransactionFactory,
    WebhookEventFactory,
)


# =============================================================================
# PaymentTransaction Tests
# =============================================================================


@pytest.mark.django_db
class TestPaymentTransactionTransitions:
    """Tests for the PaymentTransaction state machine."""

    def test_complete_records_reference_and_time(self, paypal_attempt):
        paypal_attempt.complete(external_ref="CAP-M1")
        paypal_attempt.save()

        paypal_attempt.refresh_from_db()
        assert paypal_attempt.status == TransactionStatus.COMPLETED
        assert paypal_attempt.external_ref == "CAP-M1"
        assert paypal_attempt.completed_at is not None
        assert not paypal_attempt.is_open

    def test_processing_can_complete(self, paypal_attempt):
        paypal_attempt.start_processing()
        paypal_attempt.complete()

        assert paypal_attempt.status == TransactionStatus.COMPLETED

    def test_fail_keeps_reason(self, paypal_attempt):
        paypal_attempt.fail(reason="INSTRUMENT_DECLINED")

        assert paypal_attempt.status == TransactionStatus.FAILED
        assert paypal_attempt.failure_reason == "INSTRUMENT_DECLINED"
        assert paypal_attempt.failed_at is not None

    def test_terminal_states_do_not_reopen(self, paypal_attempt):
        paypal_attempt.fail()

        with pytest.raises(TransitionNotAllowed):
            paypal_attempt.complete()

    def test_cancelled_attempt_can_still_complete(self, paypal_attempt):
        """A capture that lands after cancellation is still recorded."""
        paypal_attempt.cancel()
        paypal_attempt.complete(external_ref="CAP-LATE")

        assert paypal_attempt.status == TransactionStatus.COMPLETED
        assert paypal_attempt.external_ref == "CAP-LATE"
        assert paypal_attempt.cancelled_at is not None

    def test_only_completed_payments_refund(self, paypal_attempt):
        with pytest.raises(TransitionNotAllowed):
            paypal_attempt.refund("REF-1")

        paypal_attempt.complete(external_ref="CAP-M2")
        paypal_attempt.refund("REF-1")
        assert paypal_attempt.status == TransactionStatus.REFUNDED
        assert paypal_attempt.refund_ref == "REF-1"


@pytest.mark.django_db
class TestPaymentTransactionConstraints:
    """Tests for PaymentTransaction integrity rules."""

    def test_one_open_attempt_per_order(self, paypal_attempt):
        with pytest.raises(IntegrityError):
            PaymentTransactionFactory(order=paypal_attempt.order)

    def test_new_attempt_allowed_after_failure(self, paypal_attempt):
        paypal_attempt.fail()
        paypal_attempt.save()

        retry = PaymentTransactionFactory(order=paypal_attempt.order)

        assert retry.is_open

    def test_external_ref_unique_per_provider(self, buyer, other_user):
        PaymentTransactionFactory(
            order__buyer=buyer, status=TransactionStatus.COMPLETED, external_ref="CAP-DUP"
        )

        with pytest.raises(IntegrityError):
            PaymentTransactionFactory(
                order__buyer=other_user, status=TransactionStatus.COMPLETED, external_ref="CAP-DUP"
            )

    def test_completed_money_fields_are_frozen(self, paypal_attempt):
        paypal_attempt.complete(external_ref="CAP-M3")
        paypal_attempt.save()
        loaded = PaymentTransaction.objects.get(id=paypal_attempt.id)

        loaded.amount = Decimal("1.00")
        with pytest.raises(ValueError, match="cannot change amount"):
            loaded.save()

    def test_completed_settlement_bookkeeping_can_change(self, paypal_attempt):
        paypal_attempt.complete(external_ref="CAP-M4")
        paypal_attempt.save()
        loaded = PaymentTransaction.objects.get(id=paypal_attempt.id)

        loaded.settlement_error = "waiting"
        loaded.save()

        loaded.refresh_from_db()
        assert loaded.settlement_error == "waiting"

    def test_on_chain_flag(self, buyer, paypal_attempt):
        assert TronTransactionFactory(order__buyer=buyer).is_on_chain
        assert not paypal_attempt.is_on_chain


# =============================================================================
# WebhookEvent Tests
# =============================================================================


@pytest.mark.django_db
class TestWebhookEventModel:
    """Tests for WebhookEvent model."""

    def test_provider_and_event_id_unique(self):
        WebhookEventFactory(provider=Provider.PAYPAL, event_id="WH-UNIQ")

        with pytest.raises(IntegrityError):
            WebhookEventFactory(provider=Provider.PAYPAL, event_id="WH-UNIQ")

    def test_same_event_id_for_other_provider(self):
        WebhookEventFactory(provider=Provider.PAYPAL, event_id="shared")
        WebhookEventFactory(provider=Provider.STRIPE, event_id="shared")

        assert WebhookEvent.objects.filter(event_id="shared").count() == 2

    def test_mark_processing_counts_attempts(self):
        event = WebhookEventFactory()

        event.mark_processing()
        event.mark_processing()

        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 2

    @pytest.mark.parametrize("mark", ["mark_processed", "mark_ignored"])
    def test_finished_states(self, mark):
        event = WebhookEventFactory()

        getattr(event, mark)("done")

        assert event.is_processed
        assert event.processed_at is not None
        assert event.response_message == "done"

    def test_can_retry_until_limit(self, settings):
        settings.PAYMENT_WEBHOOK_MAX_RETRIES = 3
        event = WebhookEventFactory(retry_count=2)
        event.mark_failed("boom")

        assert event.can_retry
        event.retry_count = 3
        assert not event.can_retry

    def test_rejected_is_never_retried(self):
        event = WebhookEventFactory()

        event.mark_rejected("bad signature")

        assert not event.can_retry
        assert not event.is_processed


# =============================================================================
# CommissionRule Tests
# =============================================================================


@pytest.mark.django_db
class TestCommissionRuleModel:
    """Tests for CommissionRule model."""

    def test_range_is_inclusive(self):
        rule = CommissionRuleFactory(min_amount=Decimal("10.00"), max_amount=Decimal("50.00"))

        assert rule.matches(Decimal("10.00"))
        assert rule.matches(Decimal("50.00"))
        assert not rule.matches(Decimal("9.99"))
        assert not rule.matches(Decimal("50.01"))

    def test_open_ended_range(self):
        assert CommissionRuleFactory().matches(Decimal("1000000.00"))

    def test_percentage_over_100_is_invalid(self):
        rule = CommissionRuleFactory.build(rate=Decimal("101"))

        with pytest.raises(ValidationError):
            rule.clean()

    def test_inverted_range_is_invalid(self):
        rule = CommissionRuleFactory.build(min_amount=Decimal("50"), max_amount=Decimal("10"))

        with pytest.raises(ValidationError):
            rule.clean()


# =============================================================================
# SettlementEntry Tests
# =============================================================================


@pytest.mark.django_db
class TestSettlementEntryModel:
    """Tests for SettlementEntry model."""

    def test_one_entry_per_recipient_type_per_order(self, paypal_attempt):
        fields = {
            "order": paypal_attempt.order,
            "transaction": paypal_attempt,
            "recipient_type": SettlementRecipient.PLATFORM,
            "amount": Decimal("100.00"),
            "destination": "platform",
        }
        SettlementEntry.objects.create(**fields)

        with pytest.raises(IntegrityError):
            SettlementEntry.objects.create(**fields)


# =============================================================================
# Provider configuration Tests
# =============================================================================


@pytest.mark.django_db
class TestHostedCheckoutConfigModel:
    """Tests for HostedCheckoutConfig model."""

    def test_sandbox_base_url(self):
        assert HostedCheckoutConfigFactory(sandbox=True).base_url == "https://api-m.sandbox.paypal.com"

    def test_live_base_url(self):
        assert HostedCheckoutConfigFactory(sandbox=False).base_url == "https://api-m.paypal.com"
