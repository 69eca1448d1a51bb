# Generated manually. Keep in sync with audit/models.py.

import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AuditEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("scope", models.CharField(choices=[("CITY", "City"), ("PLATFORM", "Platform")], default="CITY", max_length=20)),
                ("actor_username", models.CharField(blank=True, max_length=150)),
                ("actor_type", models.CharField(blank=True, max_length=20)),
                ("action", models.CharField(choices=[("CREATE", "Create"), ("UPDATE", "Update"), ("TRANSITION", "Transition"), ("TOKEN_MOVEMENT", "Token movement"), ("SYSTEM", "System")], default="SYSTEM", max_length=20)),
                ("event_type", models.CharField(blank=True, max_length=120)),
                ("resource_label", models.CharField(max_length=200)),
                ("resource_pk", models.CharField(blank=True, max_length=64)),
                ("occurred_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("request_id", models.CharField(blank=True, max_length=64)),
                ("request_method", models.CharField(blank=True, max_length=12)),
                ("request_path", models.CharField(blank=True, max_length=255)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.TextField(blank=True)),
                ("chain_id", models.CharField(db_index=True, max_length=80)),
                ("prev_hash", models.CharField(blank=True, default="", max_length=64)),
                ("entry_hash", models.CharField(max_length=64, unique=True)),
                ("data_before", models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True)),
                ("data_after", models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True)),
                ("metadata", models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ("actor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="audit_entries", to=settings.AUTH_USER_MODEL)),
                ("city", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="audit_entries", to="accounts.city")),
            ],
            options={
                "verbose_name": "Audit Entry",
                "verbose_name_plural": "Audit Entries",
                "ordering": ("-occurred_at", "-id"),
            },
        ),
        migrations.AddConstraint(
            model_name="auditentry",
            constraint=models.CheckConstraint(
                condition=models.Q(("scope", "CITY"), ("city__isnull", False))
                | models.Q(("scope", "PLATFORM"), ("city__isnull", True)),
                name="ck_audit_scope_city",
            ),
        ),
        migrations.AddConstraint(
            model_name="auditentry",
            constraint=models.UniqueConstraint(fields=("chain_id", "prev_hash"), name="uq_audit_prev_hash_per_chain"),
        ),
        migrations.AddIndex(
            model_name="auditentry",
            index=models.Index(fields=["chain_id", "occurred_at"], name="idx_audit_chain_occurred"),
        ),
        migrations.AddIndex(
            model_name="auditentry",
            index=models.Index(fields=["resource_label", "resource_pk"], name="idx_audit_resource"),
        ),
    ]
