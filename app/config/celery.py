"""
Celery configuration for the settlement service.

Celery runs everything that must not block a request:
- Webhook processing (the intake view only persists and queues)
- Periodic maintenance: order expiry, polling reconciliation of
  non-terminal transactions, settlement retries, webhook retries

Redis is the broker and result backend. Periodic schedules live in the
database (django-celery-beat) and are created by a payments data migration.

Usage:
    from payments.tasks import process_webhook_event

    process_webhook_event.delay(webhook_event_id)
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up tasks.py from every installed app
app.autodiscover_tasks()
