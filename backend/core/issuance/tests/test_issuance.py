from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from accounts.models import GovernmentProfile
from audit.models import AuditEntry
from issuance.services import issue_tokens, issued_today, remaining_daily_issuance, transfer_tokens
from ledger.exceptions import (
    InsufficientBalance,
    InvalidRecipient,
    LedgerUnauthorized,
    LedgerValidationError,
    LimitExceeded,
)
from ledger.models import TokenTransaction
from ledger.services import ledger_balance
from ledger.tests.factories import make_city, make_government, make_user
from notifications.models import NotificationIntent


class IssueTokensTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a", daily_limit=1000)
        self.citizen = make_user(self.city, "citizen-a")

    def test_issuance_credits_citizen_and_records_issuer(self):
        entry = issue_tokens(actor=self.government, recipient_id=self.citizen.id, amount=25)
        self.citizen.refresh_from_db()
        self.assertEqual(self.citizen.token_balance, 25)
        self.assertEqual(ledger_balance(self.citizen), 25)
        self.assertEqual(entry.transaction_type, TokenTransaction.TYPE_ISSUE)
        self.assertIsNone(entry.from_user_id)
        self.assertEqual(entry.issued_by_id, self.government.id)
        self.assertTrue(
            AuditEntry.all_objects.filter(event_type="tokens.issued", resource_pk=entry.transaction_id).exists()
        )
        self.assertTrue(
            NotificationIntent.all_objects.filter(recipient=self.citizen, event_type="tokens.issued").exists()
        )

    def test_daily_limit_rejects_overflow_and_accepts_remainder(self):
        issue_tokens(actor=self.government, recipient_id=self.citizen.id, amount=950)

        with self.assertRaises(LimitExceeded) as ctx:
            issue_tokens(actor=self.government, recipient_id=self.citizen.id, amount=100)
        self.assertEqual(ctx.exception.code, "LIMIT_EXCEEDED")
        self.assertEqual(ctx.exception.extra["remaining"], 50)
        self.assertEqual(ctx.exception.extra["issued_today"], 950)

        issue_tokens(actor=self.government, recipient_id=self.citizen.id, amount=50)
        self.citizen.refresh_from_db()
        self.assertEqual(self.citizen.token_balance, 1000)
        self.assertEqual(issued_today(self.government), 1000)
        self.assertEqual(remaining_daily_issuance(self.government), 0)

    def test_yesterdays_issuance_does_not_count(self):
        issue_tokens(actor=self.government, recipient_id=self.citizen.id, amount=900)
        tomorrow = timezone.now() + timedelta(days=1)
        self.assertEqual(issued_today(self.government, now=tomorrow), 0)
        self.assertEqual(remaining_daily_issuance(self.government, now=tomorrow), 1000)

    def test_recipient_must_be_active_citizen_of_same_city(self):
        project_user = make_user(self.city, "project-a", user_type="social_project")
        stranger = make_user(make_city("cordoba"), "stranger")
        inactive = make_user(self.city, "inactive", is_active=False)
        for recipient_id in (project_user.id, stranger.id, inactive.id, 999999):
            with self.subTest(recipient_id=recipient_id):
                with self.assertRaises(InvalidRecipient):
                    issue_tokens(actor=self.government, recipient_id=recipient_id, amount=5)
        self.assertEqual(TokenTransaction.all_objects.count(), 0)

    def test_pending_citizen_cannot_receive_tokens(self):
        pending = make_user(self.city, "citizen-pending", is_approved=False)
        with self.assertRaises(InvalidRecipient) as ctx:
            issue_tokens(actor=self.government, recipient_id=pending.id, amount=10)
        self.assertEqual(ctx.exception.code, "INVALID_RECIPIENT")
        pending.refresh_from_db()
        self.assertEqual(pending.token_balance, 0)
        self.assertEqual(issued_today(self.government), 0)

    def test_only_approved_governments_issue(self):
        pending = make_government(self.city, "gov-pending", status=GovernmentProfile.STATUS_PENDING)
        with self.assertRaises(LedgerUnauthorized):
            issue_tokens(actor=pending, recipient_id=self.citizen.id, amount=5)
        with self.assertRaises(LedgerUnauthorized):
            issue_tokens(actor=self.citizen, recipient_id=self.citizen.id, amount=5)

    def test_rejects_non_integer_amount(self):
        with self.assertRaises(LedgerValidationError):
            issue_tokens(actor=self.government, recipient_id=self.citizen.id, amount=2.5)

    def test_idempotency_key_replays_first_result(self):
        first = issue_tokens(
            actor=self.government, recipient_id=self.citizen.id, amount=10, idempotency_key="issue-1"
        )
        again = issue_tokens(
            actor=self.government, recipient_id=self.citizen.id, amount=10, idempotency_key="issue-1"
        )
        self.assertEqual(first.pk, again.pk)
        self.citizen.refresh_from_db()
        self.assertEqual(self.citizen.token_balance, 10)
        self.assertEqual(TokenTransaction.all_objects.count(), 1)


class TransferTokensTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.alice = make_user(self.city, "alice")
        self.bob = make_user(self.city, "bob")
        issue_tokens(actor=self.government, recipient_id=self.alice.id, amount=20)

    def test_transfer_moves_tokens(self):
        entry = transfer_tokens(
            actor=self.government, from_user_id=self.alice.id, to_user_id=str(self.bob.id), amount=8
        )
        self.alice.refresh_from_db()
        self.bob.refresh_from_db()
        self.assertEqual((self.alice.token_balance, self.bob.token_balance), (12, 8))
        self.assertEqual(entry.transaction_type, TokenTransaction.TYPE_TRANSFER)
        self.assertEqual(entry.approved_by_id, self.government.id)

    def test_transfer_rejects_overdraft(self):
        with self.assertRaises(InsufficientBalance) as ctx:
            transfer_tokens(actor=self.government, from_user_id=self.alice.id, to_user_id=self.bob.id, amount=21)
        self.assertEqual(ctx.exception.extra["available"], 20)

    def test_transfer_to_pending_citizen_is_rejected(self):
        pending = make_user(self.city, "citizen-pending", is_approved=False)
        with self.assertRaises(InvalidRecipient):
            transfer_tokens(actor=self.government, from_user_id=self.alice.id, to_user_id=pending.id, amount=5)
        self.alice.refresh_from_db()
        self.assertEqual(self.alice.token_balance, 20)

    def test_transfer_to_self_is_rejected(self):
        with self.assertRaises(InvalidRecipient):
            transfer_tokens(actor=self.government, from_user_id=self.alice.id, to_user_id=self.alice.id, amount=1)


class IssuanceAPITests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a", daily_limit=1000)
        self.citizen = make_user(self.city, "citizen-a")

    def _issue(self, amount, key="issue-key-1"):
        return self.client.post(
            "/api/tokens/issue/",
            data={"recipient_id": self.citizen.id, "amount": amount},
            content_type="application/json",
            HTTP_X_CITY_ID="rosario",
            HTTP_IDEMPOTENCY_KEY=key,
        )

    def test_issue_requires_idempotency_key(self):
        self.client.force_login(self.government)
        response = self.client.post(
            "/api/tokens/issue/",
            data={"recipient_id": self.citizen.id, "amount": 5},
            content_type="application/json",
            HTTP_X_CITY_ID="rosario",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "IDEMPOTENCY_KEY_REQUIRED")

    def test_issue_and_limit_error_payload(self):
        self.client.force_login(self.government)
        created = self._issue(950)
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["amount"], 950)

        rejected = self._issue(100, key="issue-key-2")
        self.assertEqual(rejected.status_code, 409)
        self.assertEqual(rejected.json()["code"], "LIMIT_EXCEEDED")
        self.assertEqual(rejected.json()["remaining"], 50)

        summary = self.client.get("/api/tokens/issue/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(summary.json()["remaining_today"], 50)

    def test_reused_key_with_other_amount_conflicts(self):
        self.client.force_login(self.government)
        self.assertEqual(self._issue(5).status_code, 201)
        response = self._issue(6)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "IDEMPOTENCY_KEY_REUSED")

    def test_citizen_cannot_issue(self):
        self.client.force_login(self.citizen)
        self.assertEqual(self._issue(5).status_code, 403)
