from decimal import Decimal

from django.test import TestCase, override_settings

from claims.services import review_fund_request, submit_fund_request
from conversion.bank_details import validate_bank_details
from conversion.models import TokenToFiatConversion
from conversion.services import (
    approve_conversion,
    can_transition,
    cancel_conversion,
    mark_conversion_paid,
    reject_conversion,
    request_conversion,
)
from ledger.exceptions import (
    InsufficientBalance,
    InsufficientTokensAtPayout,
    InvalidTransition,
    LedgerUnauthorized,
    LedgerValidationError,
)
from ledger.models import TokenTransaction
from ledger.services import ledger_balance
from ledger.tests.factories import fund, make_city, make_government, make_project, make_user

PAYOUT_DETAILS = {
    "account_holder_name": "Huerta Norte",
    "bank_name": "Banco Municipal",
    "account_number": "000123456789",
    "country": "AR",
}


class ConversionLifecycleTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.owner = make_user(self.city, "project-owner", user_type="social_project")
        self.project = make_project(self.city, self.owner, funding_goal=100, citizen_limit=10)
        fund(self.owner, 20, government=self.government)

    def _request(self, amount=20, **kwargs):
        params = {
            "actor": self.owner,
            "project_id": self.project.id,
            "token_amount": amount,
            "bank_details": PAYOUT_DETAILS,
            "conversion_rate": "2.5",
        }
        params.update(kwargs)
        return request_conversion(**params)

    def test_request_computes_fiat_amount(self):
        conversion = self._request(20)
        self.assertTrue(conversion.request_id.startswith("CONV-"))
        self.assertEqual(conversion.status, TokenToFiatConversion.STATUS_PENDING)
        self.assertEqual(conversion.fiat_amount, Decimal("50.00"))
        self.assertFalse(conversion.tokens_reserved)

    def test_payout_debits_owner_once(self):
        conversion = self._request(20)
        approve_conversion(actor=self.government, request_id=conversion.request_id)
        paid = mark_conversion_paid(
            actor=self.government, request_id=conversion.request_id, transaction_id="WIRE-001"
        )
        self.assertEqual(paid.status, TokenToFiatConversion.STATUS_PAID)
        entry = paid.token_transaction
        self.assertEqual((entry.from_user_id, entry.to_user_id), (self.owner.id, self.owner.id))
        self.assertEqual(entry.category, TokenTransaction.CATEGORY_CONVERSION)
        self.assertEqual(paid.payment_details["transaction_id"], "WIRE-001")
        self.owner.refresh_from_db()
        self.assertEqual(self.owner.token_balance, 0)
        self.assertEqual(ledger_balance(self.owner), 0)

    def test_balance_drop_blocks_payout_and_keeps_status(self):
        conversion = self._request(20)
        approve_conversion(actor=self.government, request_id=conversion.request_id)

        fund_request = submit_fund_request(
            actor=self.owner,
            project_id=self.project.id,
            token_amount=10,
            requested_fiat_amount="100",
            bank_details=PAYOUT_DETAILS,
        )
        review_fund_request(actor=self.government, fund_request_id=fund_request.id, decision="approve")
        self.owner.refresh_from_db()
        self.assertEqual(self.owner.token_balance, 10)

        with self.assertRaises(InsufficientTokensAtPayout) as ctx:
            mark_conversion_paid(actor=self.government, request_id=conversion.request_id, transaction_id="WIRE-002")
        self.assertEqual(ctx.exception.code, "INSUFFICIENT_TOKENS_AT_PAYOUT")
        self.assertEqual(ctx.exception.extra["available"], 10)

        conversion.refresh_from_db()
        self.assertEqual(conversion.status, TokenToFiatConversion.STATUS_APPROVED)
        self.assertIsNone(conversion.token_transaction_id)
        self.owner.refresh_from_db()
        self.assertEqual(self.owner.token_balance, 10)

    def test_status_only_moves_forward(self):
        self.assertFalse(can_transition(TokenToFiatConversion.STATUS_PAID, TokenToFiatConversion.STATUS_APPROVED))
        self.assertFalse(can_transition(TokenToFiatConversion.STATUS_PENDING, TokenToFiatConversion.STATUS_PAID))

        conversion = self._request(5)
        with self.assertRaises(InvalidTransition):
            mark_conversion_paid(actor=self.government, request_id=conversion.request_id, transaction_id="WIRE-003")
        with self.assertRaises(InvalidTransition):
            cancel_conversion(actor=self.owner, request_id=conversion.request_id)

        approve_conversion(actor=self.government, request_id=conversion.request_id)
        mark_conversion_paid(actor=self.government, request_id=conversion.request_id, transaction_id="WIRE-003")
        for action in (
            lambda: approve_conversion(actor=self.government, request_id=conversion.request_id),
            lambda: reject_conversion(actor=self.government, request_id=conversion.request_id, reason="late"),
            lambda: cancel_conversion(actor=self.government, request_id=conversion.request_id),
        ):
            with self.assertRaises(InvalidTransition):
                action()

    def test_reject_requires_reason_and_cancel_requires_owner_or_government(self):
        conversion = self._request(5)
        with self.assertRaises(LedgerValidationError):
            reject_conversion(actor=self.government, request_id=conversion.request_id, reason=" ")

        approve_conversion(actor=self.government, request_id=conversion.request_id)
        stranger = make_user(self.city, "other-owner", user_type="social_project")
        with self.assertRaises(LedgerUnauthorized):
            cancel_conversion(actor=stranger, request_id=conversion.request_id)
        cancelled = cancel_conversion(actor=self.owner, request_id=conversion.request_id)
        self.assertEqual(cancelled.status, TokenToFiatConversion.STATUS_CANCELLED)

    def test_request_validation(self):
        with self.assertRaises(InsufficientBalance):
            self._request(21)
        with self.assertRaises(LedgerValidationError):
            self._request(5, fiat_currency="BTC")
        with self.assertRaises(LedgerValidationError):
            self._request(5, bank_details={"bank_name": "Banco Municipal"})
        with self.assertRaises(LedgerValidationError):
            self._request(5, conversion_rate="0")
        self.assertFalse(TokenToFiatConversion.all_objects.exists())

    def test_mark_paid_is_idempotent(self):
        conversion = self._request(8)
        approve_conversion(actor=self.government, request_id=conversion.request_id)
        first = mark_conversion_paid(
            actor=self.government, request_id=conversion.request_id, transaction_id="WIRE-9", idempotency_key="pay-1"
        )
        again = mark_conversion_paid(
            actor=self.government, request_id=conversion.request_id, transaction_id="WIRE-9", idempotency_key="pay-1"
        )
        self.assertEqual(first.pk, again.pk)
        self.assertEqual(
            TokenTransaction.all_objects.filter(category=TokenTransaction.CATEGORY_CONVERSION).count(),
            1,
        )

    def test_bank_details_keep_known_keys_only(self):
        cleaned = validate_bank_details(dict(PAYOUT_DETAILS, pin="1234", iban=" DE89370400440532013000 "))
        self.assertNotIn("pin", cleaned)
        self.assertEqual(cleaned["iban"], "DE89370400440532013000")


@override_settings(CONVERSION_ESCROW_ENABLED=True)
class ConversionEscrowTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.owner = make_user(self.city, "project-owner", user_type="social_project")
        self.project = make_project(self.city, self.owner, funding_goal=100, citizen_limit=10)
        fund(self.owner, 20, government=self.government)
        self.conversion = request_conversion(
            actor=self.owner,
            project_id=self.project.id,
            token_amount=15,
            bank_details=PAYOUT_DETAILS,
        )

    def test_reserved_tokens_cannot_be_spent_elsewhere(self):
        self.owner.refresh_from_db()
        self.assertTrue(self.conversion.tokens_reserved)
        self.assertEqual((self.owner.reserved_tokens, self.owner.available_tokens), (15, 5))
        with self.assertRaises(InsufficientBalance):
            submit_fund_request(
                actor=self.owner,
                project_id=self.project.id,
                token_amount=10,
                requested_fiat_amount="100",
                bank_details=PAYOUT_DETAILS,
            )

    def test_payout_consumes_reservation(self):
        approve_conversion(actor=self.government, request_id=self.conversion.request_id)
        mark_conversion_paid(actor=self.government, request_id=self.conversion.request_id, transaction_id="WIRE-1")
        self.owner.refresh_from_db()
        self.assertEqual((self.owner.token_balance, self.owner.reserved_tokens), (5, 0))

    def test_reject_releases_reservation(self):
        reject_conversion(actor=self.government, request_id=self.conversion.request_id, reason="Wrong account")
        self.owner.refresh_from_db()
        self.assertEqual((self.owner.token_balance, self.owner.reserved_tokens), (20, 0))


class ConversionAPITests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.owner = make_user(self.city, "project-owner", user_type="social_project")
        self.project = make_project(self.city, self.owner, funding_goal=100, citizen_limit=10)
        fund(self.owner, 20, government=self.government)

    def test_full_flow_masks_bank_details(self):
        self.client.force_login(self.owner)
        created = self.client.post(
            "/api/conversions/",
            data={"project_id": self.project.id, "token_amount": 20, "bank_details": PAYOUT_DETAILS},
            content_type="application/json",
            HTTP_X_CITY_ID="rosario",
        )
        self.assertEqual(created.status_code, 201)
        request_id = created.json()["request_id"]
        self.assertNotIn("000123456789", str(created.json()["bank_details"]))

        self.client.force_login(self.government)
        approved = self.client.post(
            f"/api/conversions/{request_id}/approve/",
            data={},
            content_type="application/json",
            HTTP_X_CITY_ID="rosario",
        )
        self.assertEqual(approved.json()["status"], "approved_by_government")

        missing_key = self.client.post(
            f"/api/conversions/{request_id}/mark-paid/",
            data={"transaction_id": "WIRE-1"},
            content_type="application/json",
            HTTP_X_CITY_ID="rosario",
        )
        self.assertEqual(missing_key.json()["code"], "IDEMPOTENCY_KEY_REQUIRED")

        paid = self.client.post(
            f"/api/conversions/{request_id}/mark-paid/",
            data={"transaction_id": "WIRE-1"},
            content_type="application/json",
            HTTP_X_CITY_ID="rosario",
            HTTP_IDEMPOTENCY_KEY="pay-1",
        )
        self.assertEqual(paid.status_code, 200)
        self.assertEqual(paid.json()["status"], "paid")
