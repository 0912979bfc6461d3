"""
Webhook event processing.

Turns a stored, authenticated WebhookEvent into a settlement call:

    1. map the payload to a NormalizedEvent (payments.webhooks.mappers)
    2. find the PaymentTransaction it is about
    3. hand the observed status to SettlementCoordinator.finalize_payment,
       or ask the provider first when the event says so

Results:
    ServiceResult.success(WebhookOutcome(handled=True, ...))    processed
    ServiceResult.success(WebhookOutcome(handled=False, ...))   ignored
    ServiceResult.failure(...)                                  event is malformed

Exceptions (provider outages, database errors) propagate to the task,
which marks the event failed for retry_failed_webhooks.

Usage:
    from payments.webhooks.handlers import dispatch_webhook

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.services import ServiceResult

from payments.adapters.registry import default_registry
from payments.exceptions import PaymentNotFoundError
from payments.models import PaymentTransaction
from payments.services import PaymentService, SettlementCoordinator, TransactionLedger
from payments.state_machines import OPEN_TRANSACTION_STATUSES
from payments.webhooks.mappers import EVENT_MAPPERS, map_event

if TYPE_CHECKING:
    from payments.adapters.registry import ProviderRegistry
    from payments.models import WebhookEvent
    from payments.webhooks.mappers import NormalizedEvent


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookOutcome:
    """What processing did with an event."""

    handled: bool
    message: str
    transaction_id: int | None = None


def dispatch_webhook(
    webhook_event: WebhookEvent,
    registry: ProviderRegistry | None = None,
) -> ServiceResult[WebhookOutcome]:
    """
    Process one webhook event.

    Args:
        webhook_event: Stored, authenticated event
        registry: Provider registry (defaults to the app's registry)

    Returns:
        ServiceResult with the WebhookOutcome
    """
    log_context = {
        "webhook_event_id": webhook_event.id,
        "provider": webhook_event.provider,
        "event_type": webhook_event.event_type,
    }
    if webhook_event.provider not in EVENT_MAPPERS:
        logger.warning("No webhook mapper for provider", extra=log_context)
        return ServiceResult.success(WebhookOutcome(False, "No mapper for provider"))

    event = map_event(webhook_event.provider, webhook_event.payload)
    if not event.is_actionable:
        logger.info("Webhook event type not handled", extra=log_context)
        return ServiceResult.success(WebhookOutcome(False, f"Ignored {event.event_type or 'event'}"))

    registry = registry or default_registry()
    ledger = TransactionLedger()

    if event.deposit_address:
        minimum = registry.client_for_provider(webhook_event.provider).min_confirmations()
        if event.confirmations < minimum:
            logger.info(
                "On-chain transfer below confirmation threshold",
                extra={**log_context, "txid": event.external_ref, "confirmations": event.confirmations},
            )
            return ServiceResult.success(
                WebhookOutcome(False, f"{event.confirmations}/{minimum} confirmations")
            )

    transaction = find_transaction(webhook_event.provider, event)
    if transaction is None:
        logger.warning(
            "Webhook does not match any payment",
            extra={
                **log_context,
                "transaction_ref": event.transaction_ref,
                "captured_ref": event.captured_ref,
                "deposit_address": event.deposit_address,
            },
        )
        return ServiceResult.failure(
            "Webhook does not match any payment",
            error_code="PAYMENT_NOT_FOUND",
        )
    log_context["transaction_id"] = transaction.id

    if event.verify_with_provider:
        service = PaymentService(registry=registry, ledger=ledger)
        service.check_with_provider(transaction)
        return ServiceResult.success(
            WebhookOutcome(True, f"Verified with provider: {transaction.status}", transaction.id)
        )

    coordinator = SettlementCoordinator(ledger=ledger)
    result = coordinator.finalize_payment(
        transaction.id,
        event.outcome,
        external_ref=event.external_ref,
        confirmed_amount=event.confirmed_amount,
        reason=event.reason,
    )
    if not result:
        # Settlement follow-ups are retried by their own task
        logger.warning(
            "Webhook finalized with pending follow-up",
            extra={**log_context, "error_code": result.error_code},
        )
        return ServiceResult.success(
            WebhookOutcome(True, f"{event.outcome}: {result.error_code}", transaction.id)
        )

    outcome = result.data
    message = f"{event.outcome}: {'applied' if outcome.applied else 'no change'}"
    logger.info("Webhook processed", extra={**log_context, "applied": outcome.applied})
    return ServiceResult.success(WebhookOutcome(True, message, transaction.id))


def find_transaction(provider: str, event: NormalizedEvent) -> PaymentTransaction | None:
    """
    Locate the transaction an event is about.

    Lookup order: our transaction id, the captured payment's external ref,
    the provider's payment id, then (on-chain) the oldest open attempt
    waiting for exactly this amount at this address.
    """
    if event.transaction_ref:
        try:
            transaction = TransactionLedger.get(event.transaction_ref)
        except PaymentNotFoundError:
            transaction = None
        if transaction is not None and transaction.provider == provider:
            return transaction

    base = PaymentTransaction.objects.filter(provider=provider)

    if event.captured_ref:
        transaction = base.filter(external_ref=event.captured_ref).first()
        if transaction is not None:
            return transaction

    if event.provider_ref:
        transaction = base.filter(provider_ref=event.provider_ref).order_by("-created_at").first()
        if transaction is not None:
            return transaction

    if event.deposit_address and event.external_ref:
        claimed = base.filter(external_ref=event.external_ref).first()
        if claimed is not None:
            return claimed
        return (
            base.filter(
                status__in=OPEN_TRANSACTION_STATUSES,
                deposit_address__iexact=event.deposit_address,
                amount=event.confirmed_amount,
            )
            .order_by("created_at", "id")
            .first()
        )

    return None


__all__ = [
    "WebhookOutcome",
    "dispatch_webhook",
    "find_transaction",
]
