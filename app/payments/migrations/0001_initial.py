import decimal

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models

import core.sequence


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ChainConfig",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("min_amount", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.01"), help_text="Smallest order amount accepted through this provider", max_digits=12)),
                ("max_amount", models.DecimalField(decimal_places=2, default=decimal.Decimal("100000.00"), help_text="Largest order amount accepted through this provider", max_digits=12)),
                ("fee_rate", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), help_text="Provider fee percentage, informational", max_digits=5)),
                ("is_active", models.BooleanField(db_index=True, default=True, help_text="Only active configurations are used")),
                ("network", models.CharField(choices=[("tron", "TRON"), ("ethereum", "Ethereum")], max_length=20, unique=True)),
                ("network_name", models.CharField(blank=True, default="", max_length=50)),
                ("api_url", models.URLField(max_length=500)),
                ("api_key", models.CharField(blank=True, default="", max_length=255)),
                ("usdt_contract", models.CharField(max_length=128)),
                ("wallet_addresses", models.JSONField(default=list, help_text="Receiving addresses, rotated round-robin per payment")),
                ("min_confirmations", models.PositiveIntegerField(default=19)),
                ("webhook_secret", models.CharField(blank=True, default="", help_text="Shared secret for the X-Webhook-Signature HMAC", max_length=255)),
            ],
            options={
                "verbose_name": "Chain Config",
                "verbose_name_plural": "Chain Configs",
                "ordering": ["network"],
            },
        ),
        migrations.CreateModel(
            name="HostedCheckoutConfig",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("min_amount", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.01"), help_text="Smallest order amount accepted through this provider", max_digits=12)),
                ("max_amount", models.DecimalField(decimal_places=2, default=decimal.Decimal("100000.00"), help_text="Largest order amount accepted through this provider", max_digits=12)),
                ("fee_rate", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), help_text="Provider fee percentage, informational", max_digits=5)),
                ("is_active", models.BooleanField(db_index=True, default=True, help_text="Only active configurations are used")),
                ("client_id", models.CharField(max_length=255)),
                ("client_secret", models.CharField(max_length=255)),
                ("sandbox", models.BooleanField(default=True, help_text="Use api-m.sandbox.paypal.com instead of api-m.paypal.com")),
                ("webhook_id", models.CharField(blank=True, default="", max_length=255)),
                ("webhook_secret", models.CharField(blank=True, default="", help_text="Shared secret for the X-Webhook-Signature HMAC", max_length=255)),
                ("return_url", models.URLField(help_text="Default page PayPal returns the buyer to after approval", max_length=500)),
                ("cancel_url", models.URLField(help_text="Default page PayPal returns the buyer to after cancelling", max_length=500)),
                ("brand_name", models.CharField(default="Settlement", max_length=127)),
            ],
            options={
                "verbose_name": "Hosted Checkout Config",
                "verbose_name_plural": "Hosted Checkout Configs",
                "ordering": ["-updated_at"],
            },
        ),
        migrations.CreateModel(
            name="CommissionRule",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("name", models.CharField(blank=True, default="", help_text="Label shown in admin", max_length=100)),
                ("rule_type", models.CharField(choices=[("percentage", "Percentage"), ("fixed", "Fixed")], default="percentage", help_text="Percentage of gross, or a fixed amount", max_length=20)),
                ("rate", models.DecimalField(decimal_places=2, help_text="Percentage (0-100) or fixed amount", max_digits=12)),
                ("min_amount", models.DecimalField(decimal_places=2, default=decimal.Decimal("0.00"), help_text="Smallest gross amount this rule applies to", max_digits=12)),
                ("max_amount", models.DecimalField(blank=True, decimal_places=2, help_text="Largest gross amount this rule applies to (empty = no limit)", max_digits=12, null=True)),
                ("is_active", models.BooleanField(db_index=True, default=True, help_text="Inactive rules are never selected")),
            ],
            options={
                "verbose_name": "Commission Rule",
                "verbose_name_plural": "Commission Rules",
                "ordering": ["-created_at", "-id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("rate__gte", 0)), name="commission_rule_rate_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentTransaction",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.BigIntegerField(default=core.sequence.generate_sequence_id, editable=False, help_text="Time-ordered 64-bit sequence identifier", primary_key=True, serialize=False)),
                ("payment_method", models.CharField(choices=[("paypal", "PayPal"), ("card", "Card"), ("usdt_tron", "USDT (Tron)"), ("usdt_eth", "USDT (Ethereum)")], help_text="Method the buyer chose", max_length=20)),
                ("provider", models.CharField(choices=[("paypal", "PayPal"), ("stripe", "Stripe"), ("tron", "Tron"), ("ethereum", "Ethereum")], help_text="Payment rail handling this attempt", max_length=20)),
                ("provider_ref", models.CharField(blank=True, db_index=True, default="", help_text="Provider reference returned when the payment started", max_length=255)),
                ("external_ref", models.CharField(blank=True, db_index=True, default="", help_text="Provider reference of the captured payment or on-chain txid", max_length=255)),
                ("deposit_address", models.CharField(blank=True, db_index=True, default="", help_text="Receiving wallet address for on-chain payments", max_length=128)),
                ("amount", models.DecimalField(decimal_places=2, help_text="Amount to collect (the order amount)", max_digits=12)),
                ("currency", models.CharField(default="USD", help_text="ISO 4217 currency code", max_length=3)),
                ("status", django_fsm.FSMField(choices=[("pending", "Pending"), ("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed"), ("cancelled", "Cancelled"), ("refunded", "Refunded")], db_index=True, default="pending", help_text="Current state of the transaction (managed by FSM)", max_length=50)),
                ("settlement_status", models.CharField(choices=[("unsettled", "Unsettled"), ("settled", "Settled"), ("awaiting_payee_config", "Awaiting Payee Config"), ("blocked", "Blocked")], db_index=True, default="unsettled", help_text="Settlement progress once the payment completed", max_length=30)),
                ("settlement_error", models.TextField(blank=True, default="", help_text="Why settlement is waiting, if it is")),
                ("payment_url", models.URLField(blank=True, default="", help_text="Hosted checkout page the buyer is redirected to", max_length=2048)),
                ("qr_code", models.TextField(blank=True, default="", help_text="data: URI of the on-chain payment QR code")),
                ("gateway_response", models.JSONField(blank=True, default=dict, help_text="Last raw payload received from the provider")),
                ("failure_reason", models.TextField(blank=True, default="", help_text="Provider reason when the payment failed")),
                ("refund_ref", models.CharField(blank=True, default="", help_text="Provider refund reference", max_length=255)),
                ("completed_at", models.DateTimeField(blank=True, help_text="When the provider confirmed the payment", null=True)),
                ("failed_at", models.DateTimeField(blank=True, help_text="When the payment failed", null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, help_text="When the attempt was abandoned", null=True)),
                ("refunded_at", models.DateTimeField(blank=True, help_text="When the payment was refunded", null=True)),
                ("settled_at", models.DateTimeField(blank=True, help_text="When settlement records were written", null=True)),
                ("buyer", models.ForeignKey(help_text="User paying for the order", on_delete=django.db.models.deletion.PROTECT, related_name="payment_transactions", to=settings.AUTH_USER_MODEL)),
                ("order", models.ForeignKey(help_text="Order being paid", on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="orders.order")),
            ],
            options={
                "verbose_name": "Payment Transaction",
                "verbose_name_plural": "Payment Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["order", "status"], name="payment_tx_order_status_idx"),
                    models.Index(fields=["status", "created_at"], name="payment_tx_status_created_idx"),
                    models.Index(fields=["status", "settlement_status"], name="payment_tx_settlement_idx"),
                    models.Index(fields=["provider", "deposit_address", "status"], name="payment_tx_deposit_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("status__in", ["pending", "processing"])), fields=("order",), name="payment_tx_one_open_per_order"),
                    models.UniqueConstraint(condition=models.Q(("external_ref", ""), _negated=True), fields=("provider", "external_ref"), name="payment_tx_unique_external_ref"),
                    models.CheckConstraint(condition=models.Q(("amount__gte", 0)), name="payment_tx_amount_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CommissionRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("rule_type", models.CharField(choices=[("percentage", "Percentage"), ("fixed", "Fixed")], help_text="Type of the applied terms", max_length=20)),
                ("rate", models.DecimalField(decimal_places=2, help_text="Rate of the applied terms", max_digits=12)),
                ("gross_amount", models.DecimalField(decimal_places=2, help_text="Amount the buyer paid", max_digits=12)),
                ("commission_amount", models.DecimalField(decimal_places=2, help_text="Platform share", max_digits=12)),
                ("payee_amount", models.DecimalField(decimal_places=2, help_text="Payee share (gross - commission)", max_digits=12)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("paid", "Paid"), ("cancelled", "Cancelled")], db_index=True, default="pending", help_text="pending until payout intents are recorded", max_length=20)),
                ("paid_at", models.DateTimeField(blank=True, help_text="When payout intents were recorded", null=True)),
                ("order", models.OneToOneField(help_text="Settled order", on_delete=django.db.models.deletion.PROTECT, related_name="commission_record", to="orders.order")),
                ("payee", models.ForeignKey(blank=True, help_text="Resource owner receiving the payee amount", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="commission_records", to=settings.AUTH_USER_MODEL)),
                ("rule", models.ForeignKey(blank=True, help_text="Rule applied (empty when the resource default rate applied)", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="records", to="payments.commissionrule")),
                ("transaction", models.ForeignKey(help_text="Completed transaction that paid the order", on_delete=django.db.models.deletion.PROTECT, related_name="commission_records", to="payments.paymenttransaction")),
            ],
            options={
                "verbose_name": "Commission Record",
                "verbose_name_plural": "Commission Records",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("commission_amount__gte", 0), ("payee_amount__gte", 0)), name="commission_record_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SettlementEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("recipient_type", models.CharField(choices=[("platform", "Platform Receipt"), ("payee", "Payee Transfer"), ("commission", "Platform Commission")], help_text="Who the amount is owed to", max_length=20)),
                ("amount", models.DecimalField(decimal_places=2, help_text="Amount owed", max_digits=12)),
                ("currency", models.CharField(default="USD", help_text="ISO 4217 currency code", max_length=3)),
                ("payout_method", models.CharField(blank=True, choices=[("paypal", "PayPal"), ("card", "Card"), ("usdt_tron", "USDT (Tron)"), ("usdt_eth", "USDT (Ethereum)")], default="", help_text="Payout method of the destination", max_length=20)),
                ("destination", models.CharField(help_text="Account or wallet address receiving the amount", max_length=255)),
                ("dispatched_at", models.DateTimeField(blank=True, help_text="When the external payout system executed the transfer", null=True)),
                ("order", models.ForeignKey(help_text="Settled order", on_delete=django.db.models.deletion.PROTECT, related_name="settlement_entries", to="orders.order")),
                ("recipient", models.ForeignKey(blank=True, help_text="Payee user (empty for platform entries)", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="settlement_entries", to=settings.AUTH_USER_MODEL)),
                ("transaction", models.ForeignKey(help_text="Completed transaction that paid the order", on_delete=django.db.models.deletion.PROTECT, related_name="settlement_entries", to="payments.paymenttransaction")),
            ],
            options={
                "verbose_name": "Settlement Entry",
                "verbose_name_plural": "Settlement Entries",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("order", "recipient_type"), name="settlement_entry_unique_per_order"),
                    models.CheckConstraint(condition=models.Q(("amount__gte", 0)), name="settlement_entry_amount_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="UserPayoutConfig",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("payment_method", models.CharField(choices=[("paypal", "PayPal"), ("card", "Card"), ("usdt_tron", "USDT (Tron)"), ("usdt_eth", "USDT (Ethereum)")], help_text="Method the payout is sent with", max_length=20)),
                ("account_address", models.CharField(help_text="PayPal e-mail or wallet address", max_length=255)),
                ("account_name", models.CharField(blank=True, default="", help_text="Display name of the destination", max_length=255)),
                ("is_active", models.BooleanField(db_index=True, default=True, help_text="Inactive configs are ignored by settlement")),
                ("user", models.ForeignKey(help_text="Payee owning this destination", on_delete=django.db.models.deletion.CASCADE, related_name="payout_configs", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Payout Config",
                "verbose_name_plural": "Payout Configs",
                "ordering": ["-updated_at", "-id"],
                "indexes": [
                    models.Index(fields=["user", "payment_method", "is_active", "updated_at"], name="payout_config_lookup_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("provider", models.CharField(choices=[("paypal", "PayPal"), ("stripe", "Stripe"), ("tron", "Tron"), ("ethereum", "Ethereum")], help_text="Provider that sent the webhook", max_length=20)),
                ("event_id", models.CharField(help_text="Provider event id - unique per provider for idempotency", max_length=255)),
                ("event_type", models.CharField(blank=True, db_index=True, default="", help_text="Provider event type (e.g., 'PAYMENT.CAPTURE.COMPLETED')", max_length=100)),
                ("payload", models.JSONField(default=dict, help_text="Parsed JSON body")),
                ("raw_body", models.TextField(blank=True, default="", help_text="Body exactly as received, for signature re-verification")),
                ("headers", models.JSONField(blank=True, default=dict, help_text="Request headers")),
                ("signature", models.CharField(blank=True, default="", help_text="Signature header value", max_length=1024)),
                ("client_ip", models.GenericIPAddressField(blank=True, help_text="Address the webhook came from", null=True)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processing", "Processing"), ("processed", "Processed"), ("failed", "Failed"), ("ignored", "Ignored"), ("rejected", "Rejected")], db_index=True, default="pending", help_text="Current processing status", max_length=20)),
                ("response_message", models.TextField(blank=True, default="", help_text="Processing outcome or error")),
                ("retry_count", models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts")),
                ("processed_at", models.DateTimeField(blank=True, help_text="When processing finished", null=True)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
                    models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("provider", "event_id"), name="webhook_event_unique_per_provider"),
                ],
            },
        ),
    ]
