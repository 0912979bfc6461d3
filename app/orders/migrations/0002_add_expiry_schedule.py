"""
Add celery-beat schedule for expiring unpaid orders.

Runs expire_stale_orders every 5 minutes; pending orders past expires_at
are cancelled.
"""

from django.db import migrations


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for expiring stale orders."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Create interval schedule: every 5 minutes
    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=5,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name="Expire Stale Orders",
        defaults={
            "task": "orders.tasks.expire_stale_orders",
            "interval": schedule,
            "enabled": True,
            "description": "Cancels pending orders whose payment window has passed.",
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name="Expire Stale Orders").delete()


class Migration(migrations.Migration):
    dependencies = [
        ("orders", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
