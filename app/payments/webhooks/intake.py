"""
Webhook intake: store, authenticate, queue.

Every delivery is written to WebhookEvent before its signature is checked,
so rejected and duplicate deliveries stay auditable. Processing happens in
the process_webhook_event task, queued once the row is committed.

Outcomes:
    new event, good signature         stored PENDING, queued, 200
    redelivery of a known event       signature checked, not queued, 200
    bad or missing signature          stored REJECTED, 401
    body is not a JSON object         stored REJECTED (keyed by body hash), 400
    unknown provider                  404
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from django.apps import apps
from django.db import transaction

from core.exceptions import NotFoundError, ValidationError

from payments.exceptions import WebhookSignatureError
from payments.models import WebhookEvent
from payments.state_machines import Provider, WebhookEventStatus
from payments.tasks import process_webhook_event
from payments.webhooks.mappers import event_identity
from payments.webhooks.signatures import SignatureVerifier, signature_header_for

if TYPE_CHECKING:
    from collections.abc import Mapping


logger = logging.getLogger(__name__)

# Never persisted with the event
SENSITIVE_HEADERS = frozenset({"authorization", "cookie"})


@dataclass(frozen=True)
class IntakeResult:
    event: WebhookEvent
    duplicate: bool


class WebhookIntake:
    """Receives provider webhooks for the webhook view."""

    def __init__(self, verifier: SignatureVerifier | None = None):
        self.verifier = verifier or SignatureVerifier(apps.get_app_config("payments").config_cache)

    def receive(
        self,
        provider: str,
        raw_body: bytes,
        headers: Mapping[str, str],
        client_ip: str | None = None,
    ) -> IntakeResult:
        """
        Store and authenticate one delivery.

        Raises:
            NotFoundError: Unknown provider
            ValidationError: Body is not a JSON object
            WebhookSignatureError: Signature missing or wrong
        """
        if provider not in Provider.values:
            raise NotFoundError(
                f"Unknown webhook provider '{provider}'",
                error_code="UNKNOWN_WEBHOOK_PROVIDER",
                details={"provider": provider},
            )

        try:
            payload = self._parse(raw_body, provider)
        except ValidationError as e:
            self._store_malformed(provider, raw_body, headers, client_ip, e.message)
            raise
        event_id, event_type = event_identity(provider, payload, raw_body)
        log_context = {"provider": provider, "event_id": event_id, "event_type": event_type}

        request_fields = self._request_fields(provider, event_type, payload, raw_body, headers, client_ip)
        event, created = WebhookEvent.objects.get_or_create(
            provider=provider,
            event_id=event_id,
            defaults=request_fields,
        )

        if not created and event.status != WebhookEventStatus.REJECTED:
            # Redelivery: still refuse it if it is not authentic
            self.verifier.verify(provider, raw_body, headers)
            logger.info(
                "Duplicate webhook acknowledged",
                extra={**log_context, "status": event.status},
            )
            return IntakeResult(event=event, duplicate=True)

        if not created:
            for name, value in request_fields.items():
                setattr(event, name, value)

        try:
            self.verifier.verify(provider, raw_body, headers)
        except WebhookSignatureError as e:
            event.mark_rejected(e.message)
            event.save()
            logger.warning("Webhook signature rejected", extra={**log_context, "client_ip": client_ip})
            raise

        event.status = WebhookEventStatus.PENDING
        event.response_message = ""
        event.save()

        event_pk = event.pk
        transaction.on_commit(lambda: process_webhook_event.delay(event_pk))
        logger.info("Webhook accepted", extra=log_context)
        return IntakeResult(event=event, duplicate=False)

    def _store_malformed(
        self,
        provider: str,
        raw_body: bytes,
        headers: Mapping[str, str],
        client_ip: str | None,
        reason: str,
    ) -> WebhookEvent:
        """Keep an unparseable delivery as REJECTED; redeliveries of the same body reuse the row."""
        event_id, event_type = event_identity(provider, {}, raw_body)
        event, created = WebhookEvent.objects.get_or_create(
            provider=provider,
            event_id=event_id,
            defaults=self._request_fields(provider, event_type, {}, raw_body, headers, client_ip),
        )
        if created:
            event.mark_rejected(reason)
            event.save()
        logger.warning(
            "Webhook body rejected",
            extra={"provider": provider, "event_id": event_id, "client_ip": client_ip, "reason": reason},
        )
        return event

    @staticmethod
    def _request_fields(
        provider: str,
        event_type: str,
        payload: dict[str, Any],
        raw_body: bytes,
        headers: Mapping[str, str],
        client_ip: str | None,
    ) -> dict[str, Any]:
        return {
            "event_type": event_type,
            "payload": payload,
            "raw_body": raw_body.decode("utf-8", errors="replace"),
            "headers": {k: v for k, v in headers.items() if k.lower() not in SENSITIVE_HEADERS},
            "signature": headers.get(signature_header_for(provider), "")[:1024],
            "client_ip": client_ip,
        }

    @staticmethod
    def _parse(raw_body: bytes, provider: str) -> dict[str, Any]:
        try:
            payload = json.loads(raw_body or b"{}")
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError(
                "Webhook body is not valid JSON",
                error_code="INVALID_WEBHOOK_PAYLOAD",
                details={"provider": provider},
            ) from e
        if not isinstance(payload, dict):
            raise ValidationError(
                "Webhook body must be a JSON object",
                error_code="INVALID_WEBHOOK_PAYLOAD",
                details={"provider": provider},
            )
        return payload
