"""
Celery tasks for payment processing.

This module provides async tasks for:
- Processing provider webhook events
- Retrying failed webhook events
- Resetting webhook events stuck in processing
- Polling providers for open payment attempts (reconciliation)
- Retrying settlements waiting on payee or commission configuration

Usage:
    from payments.tasks import process_webhook_event

    # Queue a webhook for async processing
    process_webhook_event.delay(webhook_event_id)

    # Periodic tasks are scheduled via celery-beat (payments migration 0002)
    reconcile_pending_transactions.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from payments.models import PaymentTransaction, WebhookEvent
from payments.state_machines import (
    RETRYABLE_SETTLEMENT_STATUSES,
    TransactionStatus,
    WebhookEventStatus,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30
RETRY_BATCH_SIZE = 100


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(acks_late=True)
def process_webhook_event(webhook_event_id: int) -> dict:
    """
    Process a stored webhook event asynchronously.

    This task:
    1. Loads the WebhookEvent by ID
    2. Checks if already processed (idempotency)
    3. Marks as processing
    4. Dispatches to the webhook handler
    5. Marks as processed, ignored or failed

    Failed events are picked up again by retry_failed_webhooks while
    retry_count is below PAYMENT_WEBHOOK_MAX_RETRIES.

    Args:
        webhook_event_id: ID of the WebhookEvent to process

    Returns:
        Dict with processing result status
    """
    # Import here to avoid circular imports
    from payments.webhooks.handlers import dispatch_webhook

    log_context = {"webhook_event_id": webhook_event_id}

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error("WebhookEvent not found", extra=log_context)
        return {"status": "not_found", "webhook_event_id": webhook_event_id}

    if webhook_event.is_processed or webhook_event.status == WebhookEventStatus.REJECTED:
        logger.info(
            "WebhookEvent already handled, skipping",
            extra={**log_context, "status": webhook_event.status},
        )
        return {"status": "already_processed", "webhook_event_id": webhook_event_id}

    webhook_event.mark_processing()
    webhook_event.save()

    log_context.update(
        provider=webhook_event.provider,
        event_id=webhook_event.event_id,
        event_type=webhook_event.event_type,
        retry_count=webhook_event.retry_count,
    )
    logger.info(f"Dispatching webhook: {webhook_event.event_type}", extra=log_context)

    try:
        result = dispatch_webhook(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.exception(
            "Webhook processing failed with exception",
            extra={**log_context, "error": error_msg},
        )
        return {"status": "failed", "webhook_event_id": webhook_event_id, "error": error_msg}

    if not result.success:
        # Nothing to retry: the event itself does not fit any payment
        message = f"{result.error_code}: {result.error}"
        webhook_event.mark_ignored(message)
        webhook_event.save()
        logger.warning(
            f"Webhook not applicable: {result.error}",
            extra={**log_context, "error_code": result.error_code},
        )
        return {"status": "ignored", "webhook_event_id": webhook_event_id, "error": message}

    outcome = result.data
    if outcome.handled:
        webhook_event.mark_processed(outcome.message)
        status = "processed"
    else:
        webhook_event.mark_ignored(outcome.message)
        status = "ignored"
    webhook_event.save()

    logger.info(
        "Webhook processing finished",
        extra={**log_context, "status": status, "message": outcome.message},
    )
    return {"status": status, "webhook_event_id": webhook_event_id, "message": outcome.message}


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Finds failed webhooks that haven't exceeded max retries and
    re-queues them for processing.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=settings.PAYMENT_WEBHOOK_MAX_RETRIES,
    ).order_by("created_at")[:RETRY_BATCH_SIZE]

    queued_count = 0
    for webhook in failed_webhooks:
        process_webhook_event.delay(webhook.id)
        queued_count += 1
        logger.info(
            "Queued failed webhook for retry",
            extra={
                "webhook_event_id": webhook.id,
                "event_id": webhook.event_id,
                "retry_count": webhook.retry_count,
            },
        )

    if queued_count:
        logger.info(
            f"Queued {queued_count} failed webhooks for retry",
            extra={"queued_count": queued_count},
        )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to reset stuck webhooks.

    Webhooks left in PROCESSING by a crashed worker are reset to FAILED so
    retry_failed_webhooks picks them up.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": webhook.id,
                "event_id": webhook.event_id,
                "stuck_since": webhook.updated_at.isoformat(),
            },
        )

    return {"reset_count": reset_count}


# =============================================================================
# Reconciliation Tasks
# =============================================================================


@shared_task
def reconcile_pending_transactions() -> dict:
    """
    Periodic task to poll providers for open payment attempts.

    Covers lost or late webhooks: attempts untouched for
    PAYMENT_RECONCILE_MIN_AGE_SECONDS are verified with their provider and
    finalized through the settlement coordinator.

    Returns:
        Dict with checked/finalized/errors counts
    """
    from payments.services import PaymentService

    return PaymentService().reconcile_open_transactions()


@shared_task
def retry_pending_settlements() -> dict:
    """
    Periodic task to settle completed payments whose settlement is waiting.

    Picks completed transactions in a retryable settlement status
    (unsettled, awaiting payee config, blocked) that completed at least
    PAYMENT_SETTLEMENT_RETRY_MIN_AGE_SECONDS ago.

    Returns:
        Dict with counts of settled and still waiting transactions
    """
    from payments.services import SettlementCoordinator

    cutoff = timezone.now() - timedelta(seconds=settings.PAYMENT_SETTLEMENT_RETRY_MIN_AGE_SECONDS)
    waiting = PaymentTransaction.objects.filter(
        status=TransactionStatus.COMPLETED,
        settlement_status__in=RETRYABLE_SETTLEMENT_STATUSES,
        completed_at__lt=cutoff,
    ).order_by("completed_at")[:RETRY_BATCH_SIZE]

    coordinator = SettlementCoordinator()
    stats = {"checked": 0, "settled": 0, "waiting": 0}
    for transaction in waiting:
        stats["checked"] += 1
        result = coordinator.settle(transaction)
        if result:
            stats["settled"] += 1
        else:
            stats["waiting"] += 1
            logger.info(
                "Settlement still waiting",
                extra={
                    "transaction_id": transaction.id,
                    "order_id": transaction.order_id,
                    "error_code": result.error_code,
                    "error": result.error,
                },
            )

    if stats["checked"]:
        logger.info("Retried pending settlements", extra=stats)
    return stats
