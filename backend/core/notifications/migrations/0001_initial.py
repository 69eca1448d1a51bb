# Generated manually. Keep in sync with notifications/models.py.

import django.core.serializers.json
import django.db.models.deletion
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
            name="NotificationIntent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("event_type", models.CharField(max_length=80)),
                ("subject", models.CharField(max_length=200)),
                ("body", models.TextField()),
                ("payload", models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ("status", models.CharField(choices=[("queued", "Queued"), ("sent", "Sent"), ("failed", "Failed"), ("skipped", "Skipped")], default="queued", max_length=20)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_error", models.TextField(blank=True)),
                ("next_retry_at", models.DateTimeField(blank=True, null=True)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("city", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="%(app_label)s_%(class)s_set", to="accounts.city")),
                ("recipient", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="notification_intents", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Notification Intent",
                "verbose_name_plural": "Notification Intents",
                "ordering": ("-created_at", "-id"),
                "abstract": False,
            },
        ),
        migrations.AddIndex(
            model_name="notificationintent",
            index=models.Index(fields=["status", "next_retry_at"], name="idx_notification_retry"),
        ),
    ]
