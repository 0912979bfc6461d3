"""
Tests for order Celery tasks.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from orders.models import OrderStatus
from orders.tasks import expire_stale_orders
from orders.tests.factories import OrderFactory
from payments.state_machines import TransactionStatus
from payments.tests.factories import PaymentTransactionFactory


@pytest.mark.django_db
class TestExpireStaleOrders:
    """Tests for the expire_stale_orders task."""

    def test_returns_expired_count(self):
        OrderFactory.create_batch(2, expires_at=timezone.now() - timedelta(minutes=1))
        OrderFactory()

        assert expire_stale_orders() == {"expired_count": 2}

    def test_open_payment_attempt_is_cancelled(self, buyer):
        """An expired order takes its unpaid attempt with it."""
        order = OrderFactory(buyer=buyer, expires_at=timezone.now() - timedelta(minutes=1))
        attempt = PaymentTransactionFactory(order=order)

        expire_stale_orders()

        order.refresh_from_db()
        attempt.refresh_from_db()
        assert order.status == OrderStatus.CANCELLED
        assert attempt.status == TransactionStatus.CANCELLED
        assert attempt.cancelled_at is not None
