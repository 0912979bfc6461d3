"""
Add celery-beat schedules for payment maintenance.

Creates the periodic tasks that keep asynchronous payments moving when
webhooks are late or lost:
- reconcile_pending_transactions (every 2 minutes)
- retry_pending_settlements (every 10 minutes)
- retry_failed_webhooks (every 5 minutes)
- cleanup_stuck_webhooks (every 15 minutes)
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "Reconcile Pending Transactions",
        "task": "payments.tasks.reconcile_pending_transactions",
        "every": 2,
        "description": (
            "Polls providers for open transactions older than "
            "PAYMENT_RECONCILE_MIN_AGE_SECONDS and finalizes the ones that completed."
        ),
    },
    {
        "name": "Retry Pending Settlements",
        "task": "payments.tasks.retry_pending_settlements",
        "every": 10,
        "description": (
            "Re-runs settlement for completed transactions waiting on payee "
            "payout configuration or blocked by commission configuration."
        ),
    },
    {
        "name": "Retry Failed Webhooks",
        "task": "payments.tasks.retry_failed_webhooks",
        "every": 5,
        "description": "Re-queues failed webhook events below the retry limit.",
    },
    {
        "name": "Cleanup Stuck Webhooks",
        "task": "payments.tasks.cleanup_stuck_webhooks",
        "every": 15,
        "description": "Marks webhook events stuck in processing as failed so they are retried.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for payment maintenance."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for spec in SCHEDULES:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=spec["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=spec["name"],
            defaults={
                "task": spec["task"],
                "interval": schedule,
                "enabled": True,
                "description": spec["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[spec["name"] for spec in SCHEDULES],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
