"""
Payment entry points used by the API and the periodic tasks.

    pay      start (or resume) a payment attempt for a pending order
    verify   ask the provider where an attempt stands and finalize it
    refund   admin refund of a completed payment
    reconcile_open_transactions
             poll attempts nobody verified recently (celery beat)

Provider calls never run inside a database transaction or while holding a
lock; only the ledger's compare-and-set decides who finalizes a payment.

Usage:
    service = PaymentService()
    attempt = service.pay(order_id, user, PaymentMethod.PAYPAL, return_url=...)
    status = service.verify(attempt.id, user)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService
from orders.exceptions import InvalidOrderStateError, OrderAccessDeniedError, OrderNotFoundError
from orders.models import Order, OrderStatus

from payments.adapters.base import StartPaymentRequest
from payments.adapters.registry import default_registry
from payments.exceptions import (
    ConfigMissingError,
    ExternalProviderError,
    InvalidTransactionStateError,
    PaymentAccessDeniedError,
)
from payments.models import PaymentTransaction
from payments.services.ledger import TransactionLedger
from payments.services.settlement import SettlementCoordinator
from payments.state_machines import OPEN_TRANSACTION_STATUSES, TransactionStatus

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

    from payments.adapters.registry import ProviderRegistry


RECONCILE_BATCH_SIZE = 100


@dataclass
class PaymentStatus:
    """What the verify endpoint reports."""

    payment_ref: str
    status: str
    order_id: int
    order_status: str
    settlement_status: str


class PaymentService(BaseService):
    """
    Payment operations for buyers, admins and background jobs.

    Collaborators:
        registry: ProviderRegistry (defaults to the app's registry)
        ledger: TransactionLedger
        coordinator: SettlementCoordinator
    """

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        ledger: TransactionLedger | None = None,
        coordinator: SettlementCoordinator | None = None,
    ):
        self.registry = registry or default_registry()
        self.ledger = ledger or TransactionLedger()
        self.coordinator = coordinator or SettlementCoordinator(ledger=self.ledger)

    # =========================================================================
    # Pay
    # =========================================================================

    def pay(
        self,
        order_id: int,
        user: AbstractBaseUser,
        payment_method: str,
        return_url: str | None = None,
        cancel_url: str | None = None,
    ) -> PaymentTransaction:
        """
        Start paying a pending order.

        Paying again with the method of the attempt that is still open
        returns that attempt. Another method supersedes it.

        Raises:
            OrderNotFoundError / OrderAccessDeniedError: Unknown or foreign order
            InvalidOrderStateError: Order is not pending or has expired
            ValidationError: Unknown method or amount outside the rail's limits
            ConfigMissingError: The rail is not configured
            ExternalProviderError: The provider call failed
            ConflictError: Another pay call for the order is in flight
        """
        logger = self.get_logger()
        order = self._load_payable_order(order_id, user)

        provider = self.registry.provider_for_method(payment_method)
        client = self.registry.client_for_method(payment_method)
        self._check_amount_limits(order, client.amount_limits(), payment_method)

        existing = self.ledger.find_open(order)
        if (
            existing is not None
            and existing.payment_method == payment_method
            and (existing.payment_url or existing.deposit_address)
        ):
            logger.info(
                "Resuming open payment attempt",
                extra={"transaction_id": existing.id, "order_id": order.id},
            )
            return existing

        attempt = self.ledger.open_transaction(order, payment_method, provider)
        if existing is not None:
            existing.refresh_from_db()
            self.release_attempts([existing])
        Order.objects.filter(id=order.id, status=OrderStatus.PENDING).update(
            payment_method=payment_method,
            updated_at=timezone.now(),
        )

        try:
            started = client.start_payment(
                StartPaymentRequest(
                    transaction_id=attempt.id,
                    order_id=order.id,
                    amount=order.amount,
                    currency=order.currency,
                    return_url=return_url,
                    cancel_url=cancel_url,
                )
            )
        except (ExternalProviderError, ConfigMissingError) as e:
            self.ledger.apply(attempt, "fail", e.message)
            logger.warning(
                "Payment could not be started",
                extra={
                    "transaction_id": attempt.id,
                    "order_id": order.id,
                    "provider": provider,
                    "error_code": e.error_code,
                },
            )
            raise

        self.ledger.record_start(attempt, started)
        logger.info(
            "Payment started",
            extra={
                "transaction_id": attempt.id,
                "order_id": order.id,
                "provider": provider,
                "status": attempt.status,
            },
        )
        return attempt

    # =========================================================================
    # Verify
    # =========================================================================

    def verify(self, payment_ref: int | str, user: AbstractBaseUser) -> PaymentStatus:
        """
        Check a payment with its provider and finalize it if it is done.

        Raises:
            PaymentNotFoundError: Unknown reference
            PaymentAccessDeniedError: Caller is neither the buyer nor admin
            ExternalProviderError: The provider could not be reached
        """
        attempt = self.ledger.get(payment_ref)
        if attempt.buyer_id != user.pk and not user.is_staff:
            raise PaymentAccessDeniedError(
                "You do not have access to this payment",
                details={"payment_ref": str(payment_ref)},
            )

        self.check_with_provider(attempt)
        return self.status_of(attempt)

    def check_with_provider(self, attempt: PaymentTransaction) -> None:
        """Poll the provider for an open attempt and hand the answer to the coordinator."""
        if not attempt.is_open:
            return

        client = self.registry.client_for_provider(attempt.provider)
        check = client.verify_payment(self.ledger.handle_for(attempt))
        self.ledger.record_check(attempt, check)

        if check.status == attempt.status:
            return

        result = self.coordinator.finalize_payment(
            attempt.id,
            check.status,
            external_ref=check.external_ref,
            confirmed_amount=check.confirmed_amount,
            reason=check.failure_reason,
        )
        if not result:
            self.get_logger().warning(
                "Payment finalized with pending follow-up",
                extra={
                    "transaction_id": attempt.id,
                    "error_code": result.error_code,
                    "error": result.error,
                },
            )
        attempt.refresh_from_db()

    def release_attempts(self, attempts: list[PaymentTransaction]) -> int:
        """
        Ask providers to stop accepting money for cancelled attempts.

        A failed release is logged and skipped; a capture that still gets
        through is recorded by the coordinator as a blocked settlement.

        Returns:
            Number of attempts released
        """
        released = 0
        for attempt in attempts:
            if attempt.status != TransactionStatus.CANCELLED or not attempt.provider_ref:
                continue
            client = self.registry.client_for_provider(attempt.provider)
            try:
                client.release_payment(self.ledger.handle_for(attempt))
            except (ExternalProviderError, ConfigMissingError) as e:
                self.get_logger().warning(
                    "Could not release cancelled payment attempt",
                    extra={
                        "transaction_id": attempt.id,
                        "provider": attempt.provider,
                        "error_code": e.error_code,
                    },
                )
                continue
            released += 1
        return released

    @staticmethod
    def status_of(attempt: PaymentTransaction) -> PaymentStatus:
        order_status = Order.objects.filter(id=attempt.order_id).values_list("status", flat=True).first()
        return PaymentStatus(
            payment_ref=str(attempt.id),
            status=attempt.status,
            order_id=attempt.order_id,
            order_status=order_status or "",
            settlement_status=attempt.settlement_status,
        )

    # =========================================================================
    # Refund
    # =========================================================================

    def refund(self, payment_ref: int | str, admin: AbstractBaseUser) -> PaymentTransaction:
        """
        Refund a completed payment through its provider.

        Raises:
            PaymentNotFoundError: Unknown reference
            InvalidTransactionStateError: Payment is not completed
            RefundUnsupportedError: The rail cannot refund (on-chain)
            ExternalProviderError: The provider call failed
        """
        attempt = self.ledger.get(payment_ref)
        if attempt.status != TransactionStatus.COMPLETED:
            raise InvalidTransactionStateError(
                f"Cannot refund payment in '{attempt.status}' state",
                details={"payment_ref": str(attempt.id), "current_status": attempt.status},
            )

        client = self.registry.client_for_provider(attempt.provider)
        refunded = client.refund(self.ledger.handle_for(attempt), attempt.external_ref, attempt.amount)

        self.coordinator.apply_refund(attempt, refund_ref=refunded.refund_ref)
        attempt.refresh_from_db()
        self.get_logger().info(
            "Payment refunded by admin",
            extra={
                "transaction_id": attempt.id,
                "order_id": attempt.order_id,
                "admin_id": admin.pk,
                "refund_ref": refunded.refund_ref,
            },
        )
        return attempt

    # =========================================================================
    # Background
    # =========================================================================

    def reconcile_open_transactions(self, min_age_seconds: int | None = None) -> dict[str, int]:
        """
        Poll providers for open attempts older than min_age_seconds.

        Provider errors are logged per attempt and do not stop the sweep.
        """
        if min_age_seconds is None:
            min_age_seconds = settings.PAYMENT_RECONCILE_MIN_AGE_SECONDS
        cutoff = timezone.now() - timedelta(seconds=min_age_seconds)
        logger = self.get_logger()

        attempts = PaymentTransaction.objects.filter(
            status__in=OPEN_TRANSACTION_STATUSES,
            updated_at__lt=cutoff,
        ).order_by("created_at")[:RECONCILE_BATCH_SIZE]

        stats = {"checked": 0, "finalized": 0, "errors": 0}
        for attempt in attempts:
            stats["checked"] += 1
            try:
                self.check_with_provider(attempt)
            except (ExternalProviderError, ConfigMissingError) as e:
                stats["errors"] += 1
                logger.warning(
                    "Reconciliation check failed",
                    extra={"transaction_id": attempt.id, "error_code": e.error_code},
                )
                continue
            if not attempt.is_open:
                stats["finalized"] += 1

        if stats["checked"]:
            logger.info("Reconciled open payment attempts", extra=stats)
        return stats

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _load_payable_order(order_id: int, user: AbstractBaseUser) -> Order:
        order = Order.objects.filter(id=order_id).first()
        if order is None:
            raise OrderNotFoundError(
                f"Order {order_id} not found",
                details={"order_id": str(order_id)},
            )
        if order.buyer_id != user.pk:
            raise OrderAccessDeniedError(
                "Only the buyer can pay for this order",
                details={"order_id": str(order_id)},
            )
        if order.status != OrderStatus.PENDING or order.is_expired:
            raise InvalidOrderStateError(
                "Only pending, unexpired orders can be paid",
                details={
                    "order_id": str(order_id),
                    "current_status": order.status,
                    "expires_at": order.expires_at.isoformat(),
                },
            )
        return order

    @staticmethod
    def _check_amount_limits(order: Order, limits, payment_method: str) -> None:
        if limits is None:
            return
        minimum, maximum = limits
        if order.amount < minimum or order.amount > maximum:
            raise ValidationError(
                f"{payment_method} accepts amounts between {minimum} and {maximum}",
                error_code="AMOUNT_OUT_OF_RANGE",
                details={
                    "amount": str(order.amount),
                    "min_amount": str(minimum),
                    "max_amount": str(maximum),
                },
            )
