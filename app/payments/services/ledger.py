"""
Transaction ledger: owns PaymentTransaction state.

Every status change goes through TransactionLedger.apply(), which runs the
django-fsm transition and saves it with an UPDATE guarded by the status the
instance was loaded with. apply() returns False instead of raising when
the transition is not allowed or another caller changed the row first;
the settlement coordinator treats that as "someone else finalized it".

Usage:
    ledger = TransactionLedger()
    transaction = ledger.open_transaction(order, PaymentMethod.PAYPAL, Provider.PAYPAL)
    ledger.record_start(transaction, started)
    if ledger.apply(transaction, "complete", "CAPTURE-1"):
        ...  # this caller won the race
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction as db_transaction
from django.utils import timezone

from django_fsm import ConcurrentTransition, TransitionNotAllowed

from core.exceptions import ConflictError
from core.sequence import get_sequence_generator
from core.services import BaseService

from payments.adapters.base import PaymentHandle
from payments.exceptions import PaymentNotFoundError
from payments.models import PaymentTransaction
from payments.state_machines import OPEN_TRANSACTION_STATUSES, TransactionStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from core.sequence import SequenceIdGenerator
    from orders.models import Order
    from payments.adapters.base import PaymentCheck, PaymentStart


class TransactionLedger(BaseService):
    """Creates payment transactions and records what providers said about them."""

    def __init__(self, id_generator: SequenceIdGenerator | None = None):
        self.id_generator = id_generator or get_sequence_generator()

    # =========================================================================
    # Lookups
    # =========================================================================

    @staticmethod
    def get(ref: int | str) -> PaymentTransaction:
        """
        Load a transaction by its public reference.

        Raises:
            PaymentNotFoundError: No such transaction
        """
        try:
            transaction_id = int(ref)
        except (TypeError, ValueError):
            transaction_id = None

        found = None
        if transaction_id is not None:
            found = PaymentTransaction.objects.select_related("order").filter(id=transaction_id).first()
        if found is None:
            raise PaymentNotFoundError(
                f"Payment {ref} not found",
                details={"payment_ref": str(ref)},
            )
        return found

    @staticmethod
    def find_open(order: Order) -> PaymentTransaction | None:
        return PaymentTransaction.objects.filter(
            order=order,
            status__in=OPEN_TRANSACTION_STATUSES,
        ).first()

    @staticmethod
    def handle_for(transaction: PaymentTransaction) -> PaymentHandle:
        """
        Describe a transaction to its provider client.

        On-chain handles carry the txids already matched to other payments
        into the same address, so one transfer never pays two orders.
        """
        claimed: frozenset[str] = frozenset()
        if transaction.is_on_chain and transaction.deposit_address:
            claimed = frozenset(
                PaymentTransaction.objects.filter(
                    provider=transaction.provider,
                    deposit_address__iexact=transaction.deposit_address,
                )
                .exclude(id=transaction.id)
                .exclude(external_ref="")
                .values_list("external_ref", flat=True)
            )
        return PaymentHandle(
            transaction_id=transaction.id,
            provider_ref=transaction.provider_ref,
            amount=transaction.amount,
            currency=transaction.currency,
            deposit_address=transaction.deposit_address,
            created_at=transaction.created_at,
            claimed_refs=claimed,
        )

    # =========================================================================
    # Commands
    # =========================================================================

    def open_transaction(
        self,
        order: Order,
        payment_method: str,
        provider: str,
    ) -> PaymentTransaction:
        """
        Start a new payment attempt for an order.

        Any attempt still open for the order is cancelled first (the buyer
        switched method). The partial unique constraint on open attempts
        turns a concurrent second pay call into a ConflictError.

        Raises:
            ConflictError: Another attempt was opened concurrently
        """
        now = timezone.now()
        try:
            with db_transaction.atomic():
                superseded = PaymentTransaction.objects.filter(
                    order=order,
                    status__in=OPEN_TRANSACTION_STATUSES,
                ).update(
                    status=TransactionStatus.CANCELLED,
                    cancelled_at=now,
                    updated_at=now,
                )
                created = PaymentTransaction.objects.create(
                    id=self.id_generator.next_id(),
                    order=order,
                    buyer_id=order.buyer_id,
                    payment_method=payment_method,
                    provider=provider,
                    amount=order.amount,
                    currency=order.currency,
                )
        except IntegrityError as e:
            raise ConflictError(
                "A payment for this order is already being started",
                error_code="PAYMENT_IN_PROGRESS",
                details={"order_id": str(order.id)},
            ) from e

        self.get_logger().info(
            "Payment transaction opened",
            extra={
                "transaction_id": created.id,
                "order_id": order.id,
                "provider": provider,
                "payment_method": payment_method,
                "superseded": superseded,
            },
        )
        return created

    def record_start(self, transaction: PaymentTransaction, started: PaymentStart) -> PaymentTransaction:
        """Store what the provider returned when the payment started."""
        transaction.provider_ref = started.provider_ref
        transaction.payment_url = started.payment_url
        transaction.qr_code = started.qr_code
        transaction.deposit_address = started.deposit_address
        transaction.gateway_response = started.raw_response

        if started.status == TransactionStatus.PROCESSING:
            self.apply(transaction, "start_processing")
        else:
            self._save(transaction)
        return transaction

    @staticmethod
    def record_check(transaction: PaymentTransaction, check: PaymentCheck) -> None:
        """Keep the provider's latest payload on an open transaction."""
        if not check.raw_response:
            return
        PaymentTransaction.objects.filter(
            id=transaction.id,
            status__in=OPEN_TRANSACTION_STATUSES,
        ).update(gateway_response=check.raw_response, updated_at=timezone.now())

    def apply(self, transaction: PaymentTransaction, name: str, *args) -> bool:
        """
        Apply a named FSM transition with compare-and-set persistence.

        Returns:
            True if this call moved the transaction, False if the transition
            is not allowed from the current status or another caller won.
            On False the instance is refreshed from the database.
        """
        from_status = transaction.status
        try:
            getattr(transaction, name)(*args)
            with db_transaction.atomic():
                transaction.save()
        except (TransitionNotAllowed, ConcurrentTransition):
            transaction.refresh_from_db()
            return False
        except IntegrityError:
            # external_ref already belongs to another transaction
            self.get_logger().warning(
                "Transition rejected by a uniqueness constraint",
                extra={
                    "transaction_id": transaction.id,
                    "transition": name,
                    "external_ref": transaction.external_ref,
                },
            )
            transaction.refresh_from_db()
            return False

        self.get_logger().info(
            "Transaction transitioned",
            extra={
                "transaction_id": transaction.id,
                "order_id": transaction.order_id,
                "from_status": from_status,
                "to_status": transaction.status,
            },
        )
        return True

    @staticmethod
    def set_settlement_status(
        transaction: PaymentTransaction,
        settlement_status: str,
        error: str = "",
    ) -> None:
        """Record settlement progress (never touches the payment status)."""
        now = timezone.now()
        fields = {
            "settlement_status": settlement_status,
            "settlement_error": error,
            "updated_at": now,
        }
        if not error:
            fields["settled_at"] = now
        PaymentTransaction.objects.filter(id=transaction.id).update(**fields)

        transaction.settlement_status = settlement_status
        transaction.settlement_error = error
        if not error:
            transaction.settled_at = now

    def cancel_open_for_orders(self, order_ids: Iterable[int]) -> list[PaymentTransaction]:
        """
        Cancel open attempts of the given orders.

        Returns:
            The attempts this call cancelled, so the caller can release
            them at their providers
        """
        order_ids = list(order_ids)
        now = timezone.now()
        candidate_ids = list(
            PaymentTransaction.objects.filter(
                order_id__in=order_ids,
                status__in=OPEN_TRANSACTION_STATUSES,
            ).values_list("id", flat=True)
        )
        if not candidate_ids:
            return []

        PaymentTransaction.objects.filter(
            id__in=candidate_ids,
            status__in=OPEN_TRANSACTION_STATUSES,
        ).update(
            status=TransactionStatus.CANCELLED,
            cancelled_at=now,
            updated_at=now,
        )
        cancelled = list(
            PaymentTransaction.objects.filter(
                id__in=candidate_ids,
                status=TransactionStatus.CANCELLED,
                cancelled_at=now,
            )
        )
        if cancelled:
            self.get_logger().info(
                "Cancelled open payment attempts",
                extra={"cancelled_count": len(cancelled), "order_ids": order_ids},
            )
        return cancelled

    def _save(self, transaction: PaymentTransaction) -> bool:
        try:
            with db_transaction.atomic():
                transaction.save()
        except ConcurrentTransition:
            self.get_logger().info(
                "Transaction changed while recording provider data",
                extra={"transaction_id": transaction.id},
            )
            transaction.refresh_from_db()
            return False
        return True
