# Generated manually. Keep in sync with ledger/models.py.

import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
        ("projects", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="TokenTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("transaction_id", models.CharField(max_length=64, unique=True)),
                ("transaction_type", models.CharField(choices=[("issue", "Issue"), ("transfer", "Transfer"), ("spend", "Spend"), ("reward", "Reward"), ("penalty", "Penalty"), ("refund", "Refund")], max_length=20)),
                ("direction", models.CharField(choices=[("credit", "Credit"), ("debit", "Debit")], max_length=10)),
                ("amount", models.PositiveIntegerField()),
                ("token_type", models.CharField(choices=[("civic", "Civic"), ("project", "Project"), ("reward", "Reward"), ("penalty", "Penalty")], default="civic", max_length=20)),
                ("category", models.CharField(choices=[("participation", "Participation"), ("contribution", "Contribution"), ("milestone", "Milestone"), ("bonus", "Bonus"), ("correction", "Correction"), ("conversion", "Conversion")], default="participation", max_length=20)),
                ("description", models.CharField(blank=True, max_length=500)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("completed", "Completed"), ("failed", "Failed"), ("cancelled", "Cancelled")], default="completed", max_length=20)),
                ("failure_reason", models.CharField(blank=True, max_length=255)),
                ("metadata", models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("approved_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="approved_token_transactions", to=settings.AUTH_USER_MODEL)),
                ("city", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="token_transactions", to="accounts.city")),
                ("from_user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="outgoing_token_transactions", to=settings.AUTH_USER_MODEL)),
                ("issued_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="issued_token_transactions", to=settings.AUTH_USER_MODEL)),
                ("related_project", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="token_transactions", to="projects.project")),
                ("to_user", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="incoming_token_transactions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Token Transaction",
                "verbose_name_plural": "Token Transactions",
                "ordering": ("-created_at", "-id"),
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="ck_token_transaction_amount_positive"),
                ],
                "indexes": [
                    models.Index(fields=["issued_by", "transaction_type", "created_at"], name="idx_tokentx_issuer_day"),
                    models.Index(fields=["to_user", "status"], name="idx_tokentx_to_user"),
                    models.Index(fields=["from_user", "status"], name="idx_tokentx_from_user"),
                ],
            },
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("operation", models.CharField(max_length=60)),
                ("key", models.CharField(max_length=128)),
                ("fingerprint", models.CharField(max_length=64)),
                ("resource_label", models.CharField(blank=True, max_length=120)),
                ("resource_pk", models.CharField(blank=True, max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("actor", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="idempotency_keys", to=settings.AUTH_USER_MODEL)),
                ("token_transaction", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="idempotency_keys", to="ledger.tokentransaction")),
            ],
            options={
                "verbose_name": "Idempotency Key",
                "verbose_name_plural": "Idempotency Keys",
                "constraints": [
                    models.UniqueConstraint(fields=("actor", "operation", "key"), name="uq_idempotency_actor_operation_key"),
                ],
            },
        ),
    ]
