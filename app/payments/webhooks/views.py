"""
Webhook endpoint for payment providers.

One endpoint per provider: POST /api/v1/webhooks/<provider>/. The view only
stores, authenticates and queues the delivery (WebhookIntake); processing
happens in the process_webhook_event task so providers get an answer within
their timeout.

Responses:
    200  accepted (new or duplicate)
    400  body is not a JSON object
    401  signature missing or wrong
    404  unknown provider

Usage:
    # In urls.py
    from payments.webhooks.views import provider_webhook

    urlpatterns = [
        path("webhooks/<str:provider>/", provider_webhook, name="provider-webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.exceptions import BaseApplicationError
from core.helpers import get_client_ip

from payments.webhooks.intake import WebhookIntake


logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def provider_webhook(request: HttpRequest, provider: str) -> JsonResponse:
    """
    Receive and queue a provider webhook.

    Security:
    - PayPal and chain notifiers sign the raw body (X-Webhook-Signature)
    - Stripe signs with Stripe-Signature
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Idempotency:
    - (provider, event_id) is unique on WebhookEvent
    - Redeliveries answer 200 without being queued again
    """
    try:
        result = WebhookIntake().receive(
            provider,
            request.body,
            request.headers,
            client_ip=get_client_ip(request),
        )
    except BaseApplicationError as e:
        return JsonResponse(e.to_dict(), status=e.http_status)

    return JsonResponse(
        {
            "received": True,
            "duplicate": result.duplicate,
            "event_id": result.event.event_id,
        },
        status=200,
    )
