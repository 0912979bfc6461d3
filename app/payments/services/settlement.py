"""
Settlement coordinator.

Turns "the provider says this payment is final" into state changes and
settlement records exactly once. Both the webhook pipeline and the
buyer-triggered verify call land in finalize_payment(), often at the same
moment for the same transaction.

Algorithm (finalize_payment):
    1. Load the transaction. Already final -> success, nothing done.
       Exception: a capture reported for a cancelled attempt is recorded.
    2. Compare-and-set the transaction from pending/processing (or
       cancelled, see 1) to the observed status. Losing the race is the
       same no-op as step 1.
    3. Failed -> fail the pending order. Pending/processing -> stop.
    4. Completed -> mark the order paid and settle:
         PlatformOwned    the full amount is a platform receipt
         ThirdPartyOwned  commission split, payee transfer, commission
                          transfer and the CommissionRecord
    5. Order paid -> completed.

Settlement problems after the money was captured (payee without payout
destination, broken commission rule) do not undo anything: the order stays
paid, the transaction's settlement_status says why, and
retry_pending_settlements calls settle() again later.
A capture for an order that can no longer take it (cancelled, expired, or
paid by another attempt) leaves the transaction completed with settlement
BLOCKED for an operator to refund.

Usage:
    coordinator = SettlementCoordinator()
    result = coordinator.finalize_payment(transaction_id, TransactionStatus.COMPLETED, "CAPTURE-1")
    if not result:
        logger.warning(result.error, extra={"error_code": result.error_code})
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import transaction as db_transaction
from django.utils import timezone

from catalog.ownership import PlatformOwned, ThirdPartyOwned
from catalog.services import ResourceLookup
from core.services import BaseService, ServiceResult
from orders.exceptions import InvalidOrderStateError
from orders.models import Order, OrderStatus
from orders.services import OrderService

from payments.exceptions import InvalidCommissionConfigError, PayoutConfigMissingError
from payments.models import CommissionRecord, PaymentTransaction, SettlementEntry
from payments.services.commission import CommissionCalculator, CommissionSplit, NoCommission
from payments.services.ledger import TransactionLedger
from payments.services.payout_config import PayoutConfigService
from payments.state_machines import (
    CommissionStatus,
    SettlementRecipient,
    SettlementStatus,
    TransactionStatus,
)

if TYPE_CHECKING:
    from catalog.ownership import Ownership


SETTLEMENT_PENDING = "SETTLEMENT_PENDING"


@dataclass
class SettlementOutcome:
    """
    Where a transaction and its order ended up after a coordinator call.

    applied is False when this call changed nothing (duplicate delivery,
    lost race, non-final status).
    """

    transaction_id: int
    order_id: int
    transaction_status: str
    order_status: str
    settlement_status: str
    applied: bool = False
    commission_record_id: int | None = None

    @classmethod
    def of(cls, transaction: PaymentTransaction, applied: bool = False, **kwargs: Any) -> SettlementOutcome:
        order_status = (
            Order.objects.filter(id=transaction.order_id).values_list("status", flat=True).first()
        )
        return cls(
            transaction_id=transaction.id,
            order_id=transaction.order_id,
            transaction_status=transaction.status,
            order_status=order_status or "",
            settlement_status=transaction.settlement_status,
            applied=applied,
            **kwargs,
        )


class SettlementCoordinator(BaseService):
    """
    Orchestrates payment finalization and settlement.

    Collaborators are injected so tests can substitute them:
        ledger: TransactionLedger
        calculator: CommissionCalculator
        resources: resource lookup (catalog.services.ResourceLookup)
        payout_configs: payee destination lookup (PayoutConfigService)
    """

    def __init__(
        self,
        ledger: TransactionLedger | None = None,
        calculator: CommissionCalculator | None = None,
        resources: type[ResourceLookup] = ResourceLookup,
        payout_configs: PayoutConfigService | None = None,
    ):
        self.ledger = ledger or TransactionLedger()
        self.calculator = calculator or CommissionCalculator()
        self.resources = resources
        self.payout_configs = payout_configs or PayoutConfigService()

    # =========================================================================
    # Entry Point
    # =========================================================================

    def finalize_payment(
        self,
        transaction_ref: int | str,
        observed_status: str,
        external_ref: str = "",
        confirmed_amount: Decimal | None = None,
        reason: str = "",
    ) -> ServiceResult[SettlementOutcome]:
        """
        Apply a provider-observed status to a transaction exactly once.

        Safe to call concurrently and repeatedly for the same transaction:
        only the caller that wins the status compare-and-set settles.

        Args:
            transaction_ref: Transaction id (public payment reference)
            observed_status: TransactionStatus reported by the provider
            external_ref: Capture id / payment intent / txid, or refund id
                when observed_status is REFUNDED
            confirmed_amount: Amount the provider says arrived, if known
            reason: Provider's failure reason

        Raises:
            PaymentNotFoundError: Unknown transaction
        """
        logger = self.get_logger()
        transaction = self.ledger.get(transaction_ref)
        log_context = {
            "transaction_id": transaction.id,
            "order_id": transaction.order_id,
            "provider": transaction.provider,
            "observed_status": observed_status,
        }

        if observed_status == TransactionStatus.REFUNDED:
            return self.apply_refund(transaction, refund_ref=external_ref)

        if observed_status == TransactionStatus.COMPLETED and transaction.status == TransactionStatus.CANCELLED:
            # The provider holds the money; record it and let settlement
            # decide whether the order can still take it.
            logger.warning(
                "Provider completed a cancelled payment attempt",
                extra={**log_context, "external_ref": external_ref},
            )
            return self._finalize_completed(transaction, external_ref, confirmed_amount, log_context)

        if not transaction.is_open:
            if observed_status == TransactionStatus.COMPLETED and transaction.status == TransactionStatus.FAILED:
                logger.warning(
                    "Provider completed a payment attempt that already failed",
                    extra={**log_context, "external_ref": external_ref},
                )
            else:
                logger.info(
                    "Transaction already final, nothing to do",
                    extra={**log_context, "current_status": transaction.status},
                )
            return ServiceResult.success(SettlementOutcome.of(transaction))

        if observed_status == TransactionStatus.PENDING:
            return ServiceResult.success(SettlementOutcome.of(transaction))

        if observed_status == TransactionStatus.PROCESSING:
            applied = self.ledger.apply(transaction, "start_processing")
            return ServiceResult.success(SettlementOutcome.of(transaction, applied=applied))

        if observed_status == TransactionStatus.FAILED:
            return self._finalize_failed(transaction, reason, log_context)

        if observed_status == TransactionStatus.COMPLETED:
            return self._finalize_completed(transaction, external_ref, confirmed_amount, log_context)

        logger.warning("Unknown observed status ignored", extra=log_context)
        return ServiceResult.success(SettlementOutcome.of(transaction))

    # =========================================================================
    # Final Outcomes
    # =========================================================================

    def _finalize_failed(
        self,
        transaction: PaymentTransaction,
        reason: str,
        log_context: dict[str, Any],
    ) -> ServiceResult[SettlementOutcome]:
        if not self.ledger.apply(transaction, "fail", reason):
            self.get_logger().info("Lost finalize race; no-op", extra=log_context)
            return ServiceResult.success(SettlementOutcome.of(transaction))

        order = Order.objects.get(id=transaction.order_id)
        if order.status == OrderStatus.PENDING:
            try:
                OrderService.transition(order, "fail")
            except InvalidOrderStateError:
                # Order was cancelled or expired meanwhile; it stays that way
                pass

        self.get_logger().info(
            "Payment failed",
            extra={**log_context, "reason": reason},
        )
        return ServiceResult.success(SettlementOutcome.of(transaction, applied=True))

    def _finalize_completed(
        self,
        transaction: PaymentTransaction,
        external_ref: str,
        confirmed_amount: Decimal | None,
        log_context: dict[str, Any],
    ) -> ServiceResult[SettlementOutcome]:
        logger = self.get_logger()

        if confirmed_amount is not None and confirmed_amount != transaction.amount:
            logger.error(
                "Provider confirmed a different amount; payment left open",
                extra={
                    **log_context,
                    "expected_amount": str(transaction.amount),
                    "confirmed_amount": str(confirmed_amount),
                },
            )
            return ServiceResult.failure(
                f"Confirmed amount {confirmed_amount} does not match {transaction.amount}",
                error_code="AMOUNT_MISMATCH",
                data=SettlementOutcome.of(transaction),
            )

        # Linearization point: only one caller gets past this
        if not self.ledger.apply(transaction, "complete", external_ref):
            logger.info("Lost finalize race; no-op", extra=log_context)
            return ServiceResult.success(SettlementOutcome.of(transaction))

        blocked = self._mark_order_paid(Order.objects.get(id=transaction.order_id), transaction, log_context)
        if blocked is not None:
            blocked.data.applied = True
            return blocked

        result = self.settle(transaction)
        if result.data is not None:
            result.data.applied = True
        return result

    def _mark_order_paid(
        self,
        order: Order,
        transaction: PaymentTransaction,
        log_context: dict[str, Any],
    ) -> ServiceResult[SettlementOutcome] | None:
        """
        Move a pending order to PAID for a completed transaction.

        Returns None when the order took the payment. Otherwise the
        transaction's settlement is marked BLOCKED and the failure result
        is returned: the money was captured for an order that was
        cancelled, expired or already paid by another attempt.
        """
        logger = self.get_logger()
        try:
            OrderService.transition(order, "mark_paid")
        except InvalidOrderStateError:
            self.ledger.set_settlement_status(
                transaction,
                SettlementStatus.BLOCKED,
                f"Order was {order.status} when the payment completed",
            )
            logger.error(
                "Payment completed for an order that is no longer payable",
                extra={**log_context, "order_status": order.status, "external_ref": transaction.external_ref},
            )
            return ServiceResult.failure(
                f"Order {order.id} is {order.status}; payment needs manual review",
                error_code="ORDER_NOT_PAYABLE",
                data=SettlementOutcome.of(transaction),
            )

        # A late capture of a superseded attempt paid the order; the newer
        # attempt must not take money too.
        leftovers = self.ledger.cancel_open_for_orders([order.id])
        if leftovers:
            logger.warning(
                "Cancelled newer attempts of an order paid by an earlier one",
                extra={**log_context, "cancelled_ids": [t.id for t in leftovers]},
            )
        return None

    # =========================================================================
    # Settlement
    # =========================================================================

    def settle(self, transaction: PaymentTransaction) -> ServiceResult[SettlementOutcome]:
        """
        Record the settlement of a completed transaction and complete its order.

        Idempotent: settlement entries and the commission record are unique
        per order, and an already completed order is left alone. Called by
        finalize_payment and by the retry task.
        """
        logger = self.get_logger()
        order = Order.objects.select_related("resource").get(id=transaction.order_id)
        log_context = {"transaction_id": transaction.id, "order_id": order.id}

        if transaction.status != TransactionStatus.COMPLETED:
            return ServiceResult.failure(
                f"Transaction {transaction.id} is {transaction.status}",
                error_code="TRANSACTION_NOT_COMPLETED",
                data=SettlementOutcome.of(transaction),
            )
        if order.status == OrderStatus.COMPLETED:
            if transaction.settlement_status != SettlementStatus.SETTLED:
                self.ledger.set_settlement_status(transaction, SettlementStatus.SETTLED)
            return ServiceResult.success(SettlementOutcome.of(transaction))
        if order.status != OrderStatus.PAID:
            # finalize_payment was interrupted between completing the
            # transaction and marking the order paid
            logger.warning(
                "Order of a completed payment is not paid",
                extra={**log_context, "order_status": order.status},
            )
            blocked = self._mark_order_paid(order, transaction, log_context)
            if blocked is not None:
                return blocked

        snapshot = self.resources.snapshot(order.resource)
        commission_record_id = None
        try:
            commission_record_id = self._record_settlement(order, transaction, snapshot.ownership)
        except InvalidCommissionConfigError as e:
            self.ledger.set_settlement_status(transaction, SettlementStatus.BLOCKED, e.message)
            logger.error(
                "Commission misconfigured; settlement blocked",
                extra={**log_context, **e.details},
            )
            return ServiceResult.failure(
                e.message,
                error_code=SETTLEMENT_PENDING,
                data=SettlementOutcome.of(transaction),
            )
        except PayoutConfigMissingError as e:
            self.ledger.set_settlement_status(
                transaction,
                SettlementStatus.AWAITING_PAYEE_CONFIG,
                e.message,
            )
            logger.warning(
                "Payee has no payout destination; settlement waiting",
                extra={**log_context, **e.details},
            )
            return ServiceResult.failure(
                e.message,
                error_code=SETTLEMENT_PENDING,
                data=SettlementOutcome.of(transaction),
            )

        self.ledger.set_settlement_status(transaction, SettlementStatus.SETTLED)
        try:
            OrderService.transition(order, "complete")
        except InvalidOrderStateError:
            # A concurrent settle completed it first
            order.refresh_from_db()
            if order.status != OrderStatus.COMPLETED:
                raise

        logger.info("Order settled", extra={**log_context, "amount": str(transaction.amount)})
        return ServiceResult.success(
            SettlementOutcome.of(transaction, commission_record_id=commission_record_id)
        )

    def _record_settlement(
        self,
        order: Order,
        transaction: PaymentTransaction,
        ownership: Ownership,
    ) -> int | None:
        """Write settlement intents for the order. Returns the commission record id, if any."""
        platform_account = settings.PAYMENT_PLATFORM_ACCOUNT

        match ownership:
            case PlatformOwned():
                self._entry(
                    order,
                    transaction,
                    SettlementRecipient.PLATFORM,
                    transaction.amount,
                    destination=platform_account,
                )
                return None

            case ThirdPartyOwned(payee_id=payee_id, default_rate=default_rate):
                split = self.calculator.compute(transaction.amount, default_rate)
                payout = self.payout_configs.resolve(payee_id, transaction.payment_method)
                if payout is None:
                    raise PayoutConfigMissingError(
                        f"Payee {payee_id} has no active payout destination "
                        f"for {transaction.payment_method}",
                        details={"payee_id": payee_id, "payment_method": transaction.payment_method},
                    )

                with db_transaction.atomic():
                    self._entry(
                        order,
                        transaction,
                        SettlementRecipient.PAYEE,
                        split.payee_amount,
                        destination=payout.account_address,
                        recipient_id=payee_id,
                        payout_method=payout.payment_method,
                    )
                    if isinstance(split, NoCommission):
                        return None
                    self._entry(
                        order,
                        transaction,
                        SettlementRecipient.COMMISSION,
                        split.commission_amount,
                        destination=platform_account,
                    )
                    return self._commission_record(order, transaction, payee_id, split).id

        raise TypeError(f"Unhandled ownership {ownership!r}")

    def _entry(
        self,
        order: Order,
        transaction: PaymentTransaction,
        recipient_type: str,
        amount: Decimal,
        destination: str,
        recipient_id: int | None = None,
        payout_method: str = "",
    ) -> SettlementEntry:
        entry, created = SettlementEntry.objects.get_or_create(
            order=order,
            recipient_type=recipient_type,
            defaults={
                "transaction": transaction,
                "recipient_id": recipient_id,
                "amount": amount,
                "currency": transaction.currency,
                "payout_method": payout_method,
                "destination": destination,
            },
        )
        if created:
            # Transfer execution belongs to the external payout system
            self.get_logger().info(
                "Settlement intent recorded",
                extra={
                    "order_id": order.id,
                    "transaction_id": transaction.id,
                    "recipient_type": recipient_type,
                    "recipient_id": recipient_id,
                    "amount": str(amount),
                    "destination": destination,
                },
            )
        return entry

    @staticmethod
    def _commission_record(
        order: Order,
        transaction: PaymentTransaction,
        payee_id: int,
        split: CommissionSplit,
    ) -> CommissionRecord:
        record, _ = CommissionRecord.objects.get_or_create(
            order=order,
            defaults={
                "transaction": transaction,
                "payee_id": payee_id,
                "rule_id": split.rule_id,
                "rule_type": split.rule_type,
                "rate": split.rate,
                "gross_amount": split.gross_amount,
                "commission_amount": split.commission_amount,
                "payee_amount": split.payee_amount,
                "status": CommissionStatus.PAID,
                "paid_at": timezone.now(),
            },
        )
        return record

    # =========================================================================
    # Refunds
    # =========================================================================

    def apply_refund(
        self,
        transaction: PaymentTransaction,
        refund_ref: str = "",
    ) -> ServiceResult[SettlementOutcome]:
        """
        Record that a completed payment was refunded.

        Moves the transaction and the order to refunded and cancels the
        commission record. Repeated calls are no-ops.
        """
        logger = self.get_logger()
        log_context = {"transaction_id": transaction.id, "order_id": transaction.order_id}

        if transaction.status == TransactionStatus.REFUNDED:
            return ServiceResult.success(SettlementOutcome.of(transaction))
        if transaction.status != TransactionStatus.COMPLETED:
            logger.warning(
                "Refund reported for a payment that never completed",
                extra={**log_context, "current_status": transaction.status},
            )
            return ServiceResult.success(SettlementOutcome.of(transaction))

        if not self.ledger.apply(transaction, "refund", refund_ref):
            return ServiceResult.success(SettlementOutcome.of(transaction))

        order = Order.objects.get(id=transaction.order_id)
        try:
            OrderService.transition(order, "refund")
        except InvalidOrderStateError:
            logger.warning(
                "Order could not be marked refunded",
                extra={**log_context, "order_status": order.status},
            )

        CommissionRecord.objects.filter(order_id=transaction.order_id).exclude(
            status=CommissionStatus.CANCELLED
        ).update(status=CommissionStatus.CANCELLED, updated_at=timezone.now())

        logger.info("Payment refunded", extra={**log_context, "refund_ref": refund_ref})
        return ServiceResult.success(SettlementOutcome.of(transaction, applied=True))


