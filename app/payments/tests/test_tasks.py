"""
Tests for the periodic payment tasks.

Tests cover:
- retry_pending_settlements picking up waiting settlements
- reconcile_pending_transactions polling providers for open attempts
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from payments.adapters.base import PaymentCheck
from payments.exceptions import ExternalProviderError
from payments.models import PaymentTransaction
from payments.state_machines import SettlementStatus, TransactionStatus
from payments.tasks import reconcile_pending_transactions, retry_pending_settlements
from payments.tests.factories import UserPayoutConfigFactory


def _completed_long_ago(attempt, seconds=3600):
    PaymentTransaction.objects.filter(id=attempt.id).update(
        completed_at=timezone.now() - timedelta(seconds=seconds)
    )


def _untouched_for(attempt, seconds=3600):
    PaymentTransaction.objects.filter(id=attempt.id).update(
        updated_at=timezone.now() - timedelta(seconds=seconds)
    )


@pytest.mark.django_db
class TestRetryPendingSettlements:
    """Tests for retry_pending_settlements."""

    def test_settles_once_payee_adds_payout_config(self, coordinator, creator_attempt, payee):
        coordinator.finalize_payment(creator_attempt.id, TransactionStatus.COMPLETED, "CAP-T1")
        UserPayoutConfigFactory(user=payee)
        _completed_long_ago(creator_attempt)

        stats = retry_pending_settlements()

        assert stats == {"checked": 1, "settled": 1, "waiting": 0}
        creator_attempt.refresh_from_db()
        assert creator_attempt.settlement_status == SettlementStatus.SETTLED

    def test_still_waiting_without_config(self, coordinator, creator_attempt):
        coordinator.finalize_payment(creator_attempt.id, TransactionStatus.COMPLETED, "CAP-T2")
        _completed_long_ago(creator_attempt)

        stats = retry_pending_settlements()

        assert stats == {"checked": 1, "settled": 0, "waiting": 1}
        creator_attempt.refresh_from_db()
        assert creator_attempt.settlement_status == SettlementStatus.AWAITING_PAYEE_CONFIG

    def test_recent_completions_are_left_alone(self, coordinator, creator_attempt, settings):
        settings.PAYMENT_SETTLEMENT_RETRY_MIN_AGE_SECONDS = 300
        coordinator.finalize_payment(creator_attempt.id, TransactionStatus.COMPLETED, "CAP-T3")

        assert retry_pending_settlements()["checked"] == 0

    def test_settled_payments_are_skipped(self, coordinator, paypal_attempt):
        coordinator.finalize_payment(paypal_attempt.id, TransactionStatus.COMPLETED, "CAP-T4")
        _completed_long_ago(paypal_attempt)

        assert retry_pending_settlements()["checked"] == 0


@pytest.mark.django_db
class TestReconcilePendingTransactions:
    """Tests for reconcile_pending_transactions."""

    def test_completes_attempt_confirmed_by_provider(self, fake_registry, clients, paypal_attempt):
        clients["paypal"].check = PaymentCheck(
            status=TransactionStatus.COMPLETED, external_ref="CAP-REC"
        )
        _untouched_for(paypal_attempt)

        stats = reconcile_pending_transactions()

        assert stats == {"checked": 1, "finalized": 1, "errors": 0}
        paypal_attempt.refresh_from_db()
        assert paypal_attempt.status == TransactionStatus.COMPLETED
        assert paypal_attempt.external_ref == "CAP-REC"

    def test_still_pending_attempt_is_not_finalized(self, fake_registry, paypal_attempt):
        _untouched_for(paypal_attempt)

        assert reconcile_pending_transactions() == {"checked": 1, "finalized": 0, "errors": 0}

    def test_provider_error_is_counted(self, fake_registry, clients, paypal_attempt):
        clients["paypal"].error = ExternalProviderError("PayPal timed out")
        _untouched_for(paypal_attempt)

        stats = reconcile_pending_transactions()

        assert stats["errors"] == 1
        paypal_attempt.refresh_from_db()
        assert paypal_attempt.status == TransactionStatus.PENDING

    def test_recently_touched_attempts_wait(self, fake_registry, clients, paypal_attempt, settings):
        settings.PAYMENT_RECONCILE_MIN_AGE_SECONDS = 60

        assert reconcile_pending_transactions()["checked"] == 0
        assert clients["paypal"].checked == []
