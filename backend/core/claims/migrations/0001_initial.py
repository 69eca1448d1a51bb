# Generated manually. Keep in sync with claims/models.py.

import django.core.serializers.json
import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models

import claims.models


STATUS_CHOICES = [
    ("pending", "Pending"),
    ("under_review", "Under review"),
    ("approved", "Approved"),
    ("rejected", "Rejected"),
]


def review_fields():
    return [
        ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        ("status", models.CharField(choices=STATUS_CHOICES, default="pending", max_length=20)),
        ("reviewed_at", models.DateTimeField(blank=True, null=True)),
        ("review_notes", models.CharField(blank=True, max_length=1000)),
        ("rejection_reason", models.CharField(blank=True, max_length=500)),
        ("proof_documents", models.JSONField(blank=True, default=list, encoder=django.core.serializers.json.DjangoJSONEncoder)),
        ("metadata", models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
        ("city", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="%(app_label)s_%(class)s_set", to="accounts.city")),
        ("reviewed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="reviewed_%(class)s_set", to=settings.AUTH_USER_MODEL)),
        ("token_transaction", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="%(class)s", to="ledger.tokentransaction")),
    ]


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
            name="TokenClaim",
            fields=review_fields() + [
                ("payment_type", models.CharField(choices=[("property_tax", "Property tax"), ("utility_bill", "Utility bill"), ("municipal_fee", "Municipal fee"), ("other", "Other")], max_length=20)),
                ("payment_amount", models.DecimalField(decimal_places=2, max_digits=14, validators=[django.core.validators.MinValueValidator(0)])),
                ("payment_currency", models.CharField(default="ARS", max_length=3)),
                ("payment_date", models.DateField()),
                ("payment_reference", models.CharField(blank=True, max_length=120)),
                ("token_rate", models.DecimalField(decimal_places=2, default=claims.models.default_token_rate, max_digits=10)),
                ("calculated_tokens", models.PositiveIntegerField(default=0, editable=False)),
                ("citizen", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="token_claims", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Token Claim",
                "verbose_name_plural": "Token Claims",
                "ordering": ("-created_at", "-id"),
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="TokenRequest",
            fields=review_fields() + [
                ("token_amount", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ("request_reason", models.CharField(blank=True, max_length=1000)),
                ("issue_amount", models.PositiveIntegerField(blank=True, null=True)),
                ("citizen", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="token_requests", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Token Request",
                "verbose_name_plural": "Token Requests",
                "ordering": ("-created_at", "-id"),
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("token_amount__gte", 1)), name="ck_token_request_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="FundRequest",
            fields=review_fields() + [
                ("token_amount", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ("requested_fiat_amount", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("fiat_currency", models.CharField(choices=[("USD", "USD"), ("EUR", "EUR"), ("GBP", "GBP"), ("INR", "INR"), ("CAD", "CAD"), ("AUD", "AUD"), ("ARS", "ARS")], default="ARS", max_length=3)),
                ("bank_details", models.JSONField(blank=True, default=dict)),
                ("bank_transfer_proof", models.JSONField(blank=True, default=list, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ("project", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="fund_requests", to="projects.project")),
                ("project_owner", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="fund_requests", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Fund Request",
                "verbose_name_plural": "Fund Requests",
                "ordering": ("-created_at", "-id"),
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("token_amount__gte", 1)), name="ck_fund_request_amount_positive"),
                ],
            },
        ),
    ]
