import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import core.sequence


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Resource",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.BigIntegerField(
                        default=core.sequence.generate_sequence_id,
                        editable=False,
                        help_text="Time-ordered 64-bit sequence identifier",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("title", models.CharField(help_text="Display title", max_length=255)),
                (
                    "price",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Current price; open orders keep the price they were created with",
                        max_digits=12,
                    ),
                ),
                (
                    "provider_type",
                    models.CharField(
                        choices=[("platform", "Platform"), ("third_party", "Third party")],
                        default="platform",
                        help_text="Whether the platform or a third-party owner sells this resource",
                        max_length=20,
                    ),
                ),
                (
                    "commission_rate",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Default commission percentage when no commission rule applies",
                        max_digits=5,
                        null=True,
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        default=True,
                        help_text="Inactive resources cannot be ordered",
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        blank=True,
                        help_text="Payee for third-party resources",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="owned_resources",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("price__gte", 0)),
                        name="resource_price_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("provider_type", "platform"),
                            ("owner__isnull", False),
                            _connector="OR",
                        ),
                        name="resource_third_party_has_owner",
                    ),
                ],
            },
        ),
    ]
