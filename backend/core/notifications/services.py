from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from notifications.email_service import EmailService
from notifications.models import NotificationIntent

logger = logging.getLogger(__name__)

EVENT_TOKENS_ISSUED = "tokens.issued"
EVENT_TOKENS_TRANSFERRED = "tokens.transferred"
EVENT_PROJECT_SUPPORTED = "project.supported"
EVENT_PROJECT_APPROVED = "project.approved"
EVENT_ALLOCATION_UPDATED = "project.allocation_updated"
EVENT_CONVERSION_REQUESTED = "conversion.requested"
EVENT_CONVERSION_APPROVED = "conversion.approved"
EVENT_CONVERSION_REJECTED = "conversion.rejected"
EVENT_CONVERSION_CANCELLED = "conversion.cancelled"
EVENT_CONVERSION_PAID = "conversion.paid"
EVENT_REQUEST_REVIEWED = "request.reviewed"


def _compute_next_retry(attempts: int) -> datetime:
    # Exponential backoff capped at 1 hour.
    attempts = max(int(attempts), 1)
    delay_seconds = min(60 * (2 ** (attempts - 1)), 60 * 60)
    return timezone.now() + timedelta(seconds=delay_seconds)


def emit_notification(
    *,
    recipient,
    event_type: str,
    subject: str,
    body: str,
    payload: dict | None = None,
    city=None,
) -> NotificationIntent:
    """Store a notification intent and deliver it once the surrounding transaction commits.

    A rolled-back mutation drops the intent with it; a delivery failure after commit is
    recorded on the intent and never reaches the caller.
    """

    intent = NotificationIntent.all_objects.create(
        city=city or recipient.city,
        recipient=recipient,
        event_type=event_type,
        subject=subject[:200],
        body=body,
        payload=payload or {},
    )
    if getattr(settings, "NOTIFICATIONS_ENABLED", True):
        transaction.on_commit(lambda: deliver_notification(intent.id))
    return intent


def deliver_notification(intent_id: int, *, email_service: EmailService | None = None) -> str:
    intent = (
        NotificationIntent.all_objects.select_related("recipient", "city")
        .filter(id=intent_id)
        .first()
    )
    if intent is None or intent.status in (NotificationIntent.STATUS_SENT, NotificationIntent.STATUS_SKIPPED):
        return getattr(intent, "status", "missing")

    recipient_email = (intent.recipient.email or "").strip()
    if not recipient_email:
        NotificationIntent.all_objects.filter(id=intent.id).update(
            status=NotificationIntent.STATUS_SKIPPED,
            last_error="recipient has no email address",
            updated_at=timezone.now(),
        )
        logger.info(
            "notification.skipped intent_id=%s event_type=%s reason=no_email",
            intent.id,
            intent.event_type,
        )
        return NotificationIntent.STATUS_SKIPPED

    attempts = intent.attempts + 1
    service = email_service or EmailService()
    try:
        service.send_email(
            city=intent.city,
            to_list=[recipient_email],
            subject=intent.subject,
            text=intent.body,
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception(
            "notification.failed intent_id=%s event_type=%s attempts=%s",
            intent.id,
            intent.event_type,
            attempts,
        )
        NotificationIntent.all_objects.filter(id=intent.id).update(
            status=NotificationIntent.STATUS_FAILED,
            attempts=attempts,
            last_error=str(exc)[:2000],
            next_retry_at=_compute_next_retry(attempts),
            updated_at=timezone.now(),
        )
        return NotificationIntent.STATUS_FAILED

    NotificationIntent.all_objects.filter(id=intent.id).update(
        status=NotificationIntent.STATUS_SENT,
        attempts=attempts,
        last_error="",
        next_retry_at=None,
        sent_at=timezone.now(),
        updated_at=timezone.now(),
    )
    logger.info(
        "notification.sent intent_id=%s event_type=%s recipient_id=%s",
        intent.id,
        intent.event_type,
        intent.recipient_id,
    )
    return NotificationIntent.STATUS_SENT


@dataclass(frozen=True)
class DeliveryRunResult:
    scanned: int
    sent: int
    failed: int
    skipped: int


def deliver_pending_notifications(*, limit: int = 100) -> DeliveryRunResult:
    max_attempts = int(getattr(settings, "NOTIFICATION_MAX_ATTEMPTS", 5))
    now = timezone.now()
    due_ids = list(
        NotificationIntent.all_objects.filter(
            status__in=(NotificationIntent.STATUS_QUEUED, NotificationIntent.STATUS_FAILED),
            attempts__lt=max_attempts,
        )
        .filter(Q(next_retry_at__isnull=True) | Q(next_retry_at__lte=now))
        .order_by("created_at", "id")
        .values_list("id", flat=True)[:limit]
    )

    counts = {
        NotificationIntent.STATUS_SENT: 0,
        NotificationIntent.STATUS_FAILED: 0,
        NotificationIntent.STATUS_SKIPPED: 0,
    }
    service = EmailService()
    for intent_id in due_ids:
        outcome = deliver_notification(intent_id, email_service=service)
        if outcome in counts:
            counts[outcome] += 1

    return DeliveryRunResult(
        scanned=len(due_ids),
        sent=counts[NotificationIntent.STATUS_SENT],
        failed=counts[NotificationIntent.STATUS_FAILED],
        skipped=counts[NotificationIntent.STATUS_SKIPPED],
    )
