"""
WebhookEvent model for provider webhook tracking.

Every inbound webhook is stored before anything else happens to it, so it
can always be reprocessed from durable state. The (provider, event_id)
unique constraint detects redeliveries.

Usage:
    from payments.models import WebhookEvent
    from payments.state_machines import WebhookEventStatus

    event, created = WebhookEvent.objects.get_or_create(
        provider="paypal",
        event_id="WH-2WR32451HC0233532-67976317FL4543714",
        defaults={
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "payload": webhook_payload,
        },
    )

    if not created and event.is_processed:
        # Duplicate webhook - already processed
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import BaseModel

from payments.state_machines import Provider, WebhookEventStatus


class WebhookEvent(BaseModel):
    """
    Tracks provider webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives; store or fetch WebhookEvent by (provider, event_id)
        2. Verify the provider signature; on mismatch mark REJECTED, answer 401
        3. Queue process_webhook_event and answer 200
        4. Task sets PROCESSING, maps the event, hands it to settlement
        5. Task sets PROCESSED, IGNORED or FAILED
        6. FAILED events are retried while retry_count < PAYMENT_WEBHOOK_MAX_RETRIES

    Fields:
        provider: paypal, stripe, tron, ethereum
        event_id: Provider event id (or a hash of the payload)
        event_type: Provider event type
        payload/headers/signature/client_ip: The raw request
        status: Processing status
        response_message: Outcome or error description
        retry_count: Number of processing attempts
        processed_at: When processing finished
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    provider = models.CharField(
        max_length=20,
        choices=Provider.choices,
        help_text="Provider that sent the webhook",
    )
    event_id = models.CharField(
        max_length=255,
        help_text="Provider event id - unique per provider for idempotency",
    )
    event_type = models.CharField(
        max_length=100,
        blank=True,
        default="",
        db_index=True,
        help_text="Provider event type (e.g., 'PAYMENT.CAPTURE.COMPLETED')",
    )

    # ==========================================================================
    # Raw Request
    # ==========================================================================

    payload = models.JSONField(
        default=dict,
        help_text="Parsed JSON body",
    )
    raw_body = models.TextField(
        blank=True,
        default="",
        help_text="Body exactly as received, for signature re-verification",
    )
    headers = models.JSONField(
        default=dict,
        blank=True,
        help_text="Request headers",
    )
    signature = models.CharField(
        max_length=1024,
        blank=True,
        default="",
        help_text="Signature header value",
    )
    client_ip = models.GenericIPAddressField(
        null=True,
        blank=True,
        help_text="Address the webhook came from",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )
    response_message = models.TextField(
        blank=True,
        default="",
        help_text="Processing outcome or error",
    )
    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )
    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When processing finished",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "event_id"],
                name="webhook_event_unique_per_provider",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider}:{self.event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status in (WebhookEventStatus.PROCESSED, WebhookEventStatus.IGNORED)

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    @property
    def can_retry(self) -> bool:
        """Failed and below the retry limit."""
        return self.is_failed and self.retry_count < settings.PAYMENT_WEBHOOK_MAX_RETRIES

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self, message: str = "") -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.response_message = message

    def mark_ignored(self, message: str) -> None:
        """
        Mark an event nobody handles (unknown type, not final yet).

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.IGNORED
        self.processed_at = timezone.now()
        self.response_message = message

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.response_message = error_message

    def mark_rejected(self, error_message: str) -> None:
        """
        Mark an event that failed authentication or parsing. Never retried.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.REJECTED
        self.response_message = error_message
