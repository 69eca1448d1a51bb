from datetime import timedelta
from io import StringIO
from unittest import mock

from django.core import mail
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from ledger.tests.factories import make_city, make_user
from notifications.email_service import EmailService, EmailServiceError
from notifications.models import NotificationIntent
from notifications.services import (
    EVENT_TOKENS_ISSUED,
    deliver_notification,
    deliver_pending_notifications,
    emit_notification,
)


class NotificationDeliveryTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.citizen = make_user(self.city, "citizen-a")

    def _intent(self, recipient=None, **overrides):
        params = {
            "city": self.city,
            "recipient": recipient or self.citizen,
            "event_type": EVENT_TOKENS_ISSUED,
            "subject": "Tokens issued",
            "body": "You received 10 tokens.",
        }
        params.update(overrides)
        return NotificationIntent.all_objects.create(**params)

    def test_sent_intent_records_delivery(self):
        intent = self._intent()
        self.assertEqual(deliver_notification(intent.id), NotificationIntent.STATUS_SENT)

        intent.refresh_from_db()
        self.assertEqual(intent.status, NotificationIntent.STATUS_SENT)
        self.assertEqual(intent.attempts, 1)
        self.assertIsNotNone(intent.sent_at)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["citizen-a@example.com"])

        # Already sent intents are not mailed twice.
        self.assertEqual(deliver_notification(intent.id), NotificationIntent.STATUS_SENT)
        self.assertEqual(len(mail.outbox), 1)

    def test_failure_is_recorded_with_backoff(self):
        intent = self._intent()
        with mock.patch(
            "notifications.services.EmailService.send_email",
            side_effect=RuntimeError("smtp down"),
        ):
            with self.assertLogs("notifications.services", "ERROR"):
                outcome = deliver_notification(intent.id)

        self.assertEqual(outcome, NotificationIntent.STATUS_FAILED)
        intent.refresh_from_db()
        self.assertEqual(intent.attempts, 1)
        self.assertIn("smtp down", intent.last_error)
        self.assertGreater(intent.next_retry_at, timezone.now())

    def test_recipient_without_email_is_skipped(self):
        silent = make_user(self.city, "no-mail", email="")
        intent = self._intent(recipient=silent)
        self.assertEqual(deliver_notification(intent.id), NotificationIntent.STATUS_SKIPPED)
        intent.refresh_from_db()
        self.assertEqual(intent.status, NotificationIntent.STATUS_SKIPPED)
        self.assertEqual(len(mail.outbox), 0)

    def test_emit_delivers_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            intent = emit_notification(
                recipient=self.citizen,
                event_type=EVENT_TOKENS_ISSUED,
                subject="Tokens issued",
                body="You received 10 tokens.",
                payload={"amount": 10},
            )
        self.assertEqual(len(callbacks), 1)
        intent.refresh_from_db()
        self.assertEqual(intent.status, NotificationIntent.STATUS_SENT)
        self.assertEqual(intent.city_id, self.city.id)

    @override_settings(NOTIFICATIONS_ENABLED=False)
    def test_emit_only_queues_when_delivery_disabled(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            intent = emit_notification(
                recipient=self.citizen,
                event_type=EVENT_TOKENS_ISSUED,
                subject="Tokens issued",
                body="You received 10 tokens.",
            )
        self.assertEqual(callbacks, [])
        intent.refresh_from_db()
        self.assertEqual(intent.status, NotificationIntent.STATUS_QUEUED)

    @override_settings(NOTIFICATION_MAX_ATTEMPTS=2)
    def test_pending_run_skips_exhausted_and_future_retries(self):
        self._intent()
        self._intent(status=NotificationIntent.STATUS_FAILED, attempts=2)
        self._intent(
            status=NotificationIntent.STATUS_FAILED,
            attempts=1,
            next_retry_at=timezone.now() + timedelta(minutes=5),
        )
        due_failure = self._intent(status=NotificationIntent.STATUS_FAILED, attempts=1)

        result = deliver_pending_notifications()

        self.assertEqual((result.scanned, result.sent, result.failed, result.skipped), (2, 2, 0, 0))
        due_failure.refresh_from_db()
        self.assertEqual(due_failure.attempts, 2)

    def test_command_reports_counts(self):
        self._intent()
        self._intent(recipient=make_user(self.city, "no-mail", email=""))
        out = StringIO()
        call_command("deliver_notifications", stdout=out)
        self.assertIn("scanned=2 sent=1 failed=0 skipped=1", out.getvalue())


@override_settings(DEFAULT_FROM_EMAIL="no-reply@localhost", DEFAULT_FROM_NAME="Civic Tokens")
class EmailServiceTests(TestCase):
    def test_sender_names_city_and_replies_to_contact(self):
        city = make_city("rosario")
        city.contact_email = "tokens@rosario.example"
        city.save()

        EmailService().send_email(city=city, to_list=["a@example.com"], subject="Hi", text="Body")

        message = mail.outbox[0]
        self.assertEqual(message.from_email, "Civic Tokens Rosario <no-reply@localhost>")
        self.assertEqual(message.reply_to, ["tokens@rosario.example"])

    def test_empty_recipient_list_is_rejected(self):
        with self.assertRaises(EmailServiceError):
            EmailService().send_email(city=None, to_list=[], subject="Hi", text="Body")
