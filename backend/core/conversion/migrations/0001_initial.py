# Generated manually. Keep in sync with conversion/models.py.

import django.core.serializers.json
import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
        ("projects", "0001_initial"),
        ("ledger", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="TokenToFiatConversion",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("request_id", models.CharField(max_length=64, unique=True)),
                ("token_amount", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ("conversion_rate", models.DecimalField(decimal_places=4, default=Decimal("1"), max_digits=12)),
                ("fiat_amount", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=16)),
                ("fiat_currency", models.CharField(choices=[("USD", "USD"), ("EUR", "EUR"), ("GBP", "GBP"), ("INR", "INR"), ("CAD", "CAD"), ("AUD", "AUD"), ("ARS", "ARS")], default="USD", max_length=3)),
                ("bank_details", models.JSONField(blank=True, default=dict)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("approved_by_government", "Approved by government"), ("paid", "Paid"), ("rejected", "Rejected"), ("cancelled", "Cancelled")], default="pending", max_length=30)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("internal_notes", models.CharField(blank=True, max_length=500)),
                ("payment_details", models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.CharField(blank=True, max_length=500)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("tokens_reserved", models.BooleanField(default=False)),
                ("city", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="%(app_label)s_%(class)s_set", to="accounts.city")),
                ("government_user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="approved_conversions", to=settings.AUTH_USER_MODEL)),
                ("project", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="conversions", to="projects.project")),
                ("project_owner", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="conversion_requests", to=settings.AUTH_USER_MODEL)),
                ("rejected_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="rejected_conversions", to=settings.AUTH_USER_MODEL)),
                ("token_transaction", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="conversion", to="ledger.tokentransaction")),
            ],
            options={
                "verbose_name": "Token to Fiat Conversion",
                "verbose_name_plural": "Token to Fiat Conversions",
                "ordering": ("-created_at", "-id"),
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("token_amount__gte", 1)), name="ck_conversion_token_amount_positive"),
                    models.CheckConstraint(condition=models.Q(models.Q(("status", "paid"), _negated=True), ("token_transaction__isnull", False), _connector="OR"), name="ck_conversion_paid_has_transaction"),
                ],
            },
        ),
    ]
