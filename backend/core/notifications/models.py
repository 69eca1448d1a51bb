from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from tenancy.models import BaseCityModel


class NotificationIntent(BaseCityModel):
    """Outbox row for a user-facing notification emitted after a ledger mutation.

    Rows are written in the same transaction as the mutation and delivered after
    commit; a failed delivery is recorded here and retried by
    `manage.py deliver_notifications`, never surfaced to the caller.
    """

    STATUS_QUEUED = "queued"
    STATUS_SENT = "sent"
    STATUS_FAILED = "failed"
    STATUS_SKIPPED = "skipped"
    STATUS_CHOICES = [
        (STATUS_QUEUED, "Queued"),
        (STATUS_SENT, "Sent"),
        (STATUS_FAILED, "Failed"),
        (STATUS_SKIPPED, "Skipped"),
    ]

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="notification_intents",
    )
    event_type = models.CharField(max_length=80)
    subject = models.CharField(max_length=200)
    body = models.TextField()
    payload = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_QUEUED)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    next_retry_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("-created_at", "-id")
        indexes = [
            models.Index(fields=("status", "next_retry_at"), name="idx_notification_retry"),
        ]
        verbose_name = "Notification Intent"
        verbose_name_plural = "Notification Intents"

    def __str__(self):
        return f"{self.event_type} -> {self.recipient_id} ({self.status})"
