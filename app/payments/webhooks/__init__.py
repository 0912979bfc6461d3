"""
Webhook handling for payment provider events.

Deliveries are stored, authenticated and queued by the view; the
process_webhook_event task maps them to a settlement call.

Usage:
    # In urls.py
    from payments.webhooks.views import provider_webhook

    urlpatterns = [
        path("webhooks/<str:provider>/", provider_webhook, name="provider-webhook"),
    ]
"""

from payments.webhooks.handlers import WebhookOutcome, dispatch_webhook
from payments.webhooks.mappers import NormalizedEvent, map_event, register_mapper

__all__ = [
    "NormalizedEvent",
    "WebhookOutcome",
    "dispatch_webhook",
    "map_event",
    "register_mapper",
]
