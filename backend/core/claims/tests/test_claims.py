from datetime import timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.utils import timezone

from claims.models import FundRequest, TokenClaim, TokenRequest, calculate_claim_tokens
from claims.services import (
    review_fund_request,
    review_token_claim,
    review_token_request,
    start_review,
    submit_fund_request,
    submit_token_claim,
    submit_token_request,
)
from ledger.exceptions import (
    AlreadyReviewed,
    InsufficientBalance,
    LedgerNotFound,
    LedgerUnauthorized,
    LedgerValidationError,
    LimitExceeded,
)
from ledger.models import TokenTransaction
from ledger.services import ledger_balance
from ledger.tests.factories import fund, make_city, make_government, make_project, make_user

RECEIPT = {"filename": "receipt.pdf", "mimetype": "application/pdf", "size": 2048}
BANK_DETAILS = {"bank_name": "Banco Municipal", "account_number": "000123456789"}


class TokenClaimTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a", daily_limit=50)
        self.citizen = make_user(self.city, "citizen-a")

    def _claim(self, amount="1250.00", **kwargs):
        params = {
            "actor": self.citizen,
            "payment_type": TokenClaim.PAYMENT_PROPERTY_TAX,
            "payment_amount": amount,
            "payment_date": timezone.localdate() - timedelta(days=3),
            "proof_documents": [RECEIPT],
        }
        params.update(kwargs)
        return submit_token_claim(**params)

    def test_tokens_are_derived_from_payment(self):
        claim = self._claim("1250.00")
        self.assertEqual(claim.calculated_tokens, 12)
        self.assertEqual(calculate_claim_tokens(Decimal("99.99"), Decimal("100")), 0)
        self.assertEqual(claim.status, TokenClaim.STATUS_PENDING)

    def test_approval_links_exactly_one_ledger_entry(self):
        claim = self._claim()
        reviewed = review_token_claim(actor=self.government, claim_id=claim.id, decision="approve", notes="ok")

        self.assertEqual(reviewed.status, TokenClaim.STATUS_APPROVED)
        entry = reviewed.token_transaction
        self.assertEqual(entry.amount, 12)
        self.assertEqual(entry.transaction_type, TokenTransaction.TYPE_ISSUE)
        self.assertEqual(entry.issued_by_id, self.government.id)
        self.assertEqual(entry.to_user_id, self.citizen.id)
        self.assertEqual(TokenTransaction.all_objects.count(), 1)
        self.citizen.refresh_from_db()
        self.assertEqual(self.citizen.token_balance, 12)
        self.assertEqual(ledger_balance(self.citizen), 12)

    def test_decided_claim_cannot_be_reviewed_again(self):
        claim = self._claim()
        review_token_claim(actor=self.government, claim_id=claim.id, decision="approve")
        with self.assertRaises(AlreadyReviewed) as ctx:
            review_token_claim(actor=self.government, claim_id=claim.id, decision="approve")
        self.assertEqual(ctx.exception.code, "ALREADY_REVIEWED")
        with self.assertRaises(AlreadyReviewed):
            review_token_claim(actor=self.government, claim_id=claim.id, decision="reject", reason="late")
        self.assertEqual(TokenTransaction.all_objects.count(), 1)

    def test_daily_cap_leaves_claim_undecided(self):
        claim = self._claim("6000.00")
        with self.assertRaises(LimitExceeded):
            review_token_claim(actor=self.government, claim_id=claim.id, decision="approve")
        claim.refresh_from_db()
        self.assertEqual(claim.status, TokenClaim.STATUS_PENDING)
        self.assertIsNone(claim.token_transaction_id)
        self.assertFalse(TokenTransaction.all_objects.exists())

    def test_rejection_requires_reason(self):
        claim = self._claim()
        with self.assertRaises(LedgerValidationError):
            review_token_claim(actor=self.government, claim_id=claim.id, decision="reject")
        rejected = review_token_claim(
            actor=self.government, claim_id=claim.id, decision="reject", reason="Receipt unreadable"
        )
        self.assertEqual(rejected.status, TokenClaim.STATUS_REJECTED)
        self.assertEqual(rejected.rejection_reason, "Receipt unreadable")
        self.assertIsNone(rejected.token_transaction_id)

    def test_start_review_then_decide(self):
        claim = self._claim()
        under_review = start_review(actor=self.government, request_obj=claim)
        self.assertEqual(under_review.status, TokenClaim.STATUS_UNDER_REVIEW)
        reviewed = review_token_claim(actor=self.government, claim_id=claim.id, decision="approve")
        self.assertEqual(reviewed.status, TokenClaim.STATUS_APPROVED)
        with self.assertRaises(AlreadyReviewed):
            start_review(actor=self.government, request_obj=reviewed)

    def test_submission_validation(self):
        with self.assertRaises(LedgerValidationError):
            self._claim(proof_documents=[])
        with self.assertRaises(LedgerValidationError):
            self._claim(proof_documents=[{"filename": "a.exe", "mimetype": "application/x-msdownload", "size": 10}])
        with self.assertRaises(LedgerValidationError):
            self._claim(payment_date=timezone.localdate() + timedelta(days=2))
        with self.assertRaises(LedgerValidationError):
            self._claim("50.00")
        with self.assertRaises(LedgerValidationError):
            self._claim(payment_type="lottery")
        with self.assertRaises(LedgerUnauthorized):
            self._claim(actor=self.government)
        self.assertFalse(TokenClaim.all_objects.exists())

    def test_pending_citizen_cannot_submit(self):
        pending = make_user(self.city, "citizen-pending", is_approved=False)
        with self.assertRaises(LedgerUnauthorized):
            self._claim(actor=pending)
        with self.assertRaises(LedgerUnauthorized):
            submit_token_request(actor=pending, token_amount=5, proof_documents=[RECEIPT])
        self.assertFalse(TokenClaim.all_objects.exists())
        self.assertFalse(TokenRequest.all_objects.exists())

    @override_settings(DOCUMENT_MAX_BYTES=1024)
    def test_document_size_limit(self):
        with self.assertRaises(LedgerValidationError) as ctx:
            self._claim()
        self.assertEqual(ctx.exception.extra["max_bytes"], 1024)

    def test_other_city_cannot_review(self):
        claim = self._claim()
        other_government = make_government(make_city("cordoba"), "gov-b")
        with self.assertRaises(LedgerNotFound):
            review_token_claim(actor=other_government, claim_id=claim.id, decision="approve")


class TokenRequestTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.citizen = make_user(self.city, "citizen-a")

    def test_government_may_issue_less_than_requested(self):
        token_request = submit_token_request(
            actor=self.citizen, token_amount=5, request_reason="Volunteering", proof_documents=[RECEIPT]
        )
        reviewed = review_token_request(
            actor=self.government, token_request_id=token_request.id, decision="approve", issue_amount=3
        )
        self.assertEqual(reviewed.issue_amount, 3)
        self.assertEqual(reviewed.token_transaction.amount, 3)
        self.citizen.refresh_from_db()
        self.assertEqual(self.citizen.token_balance, 3)
        self.assertEqual(TokenRequest.all_objects.get(pk=token_request.pk).status, TokenRequest.STATUS_APPROVED)

    def test_requires_documents(self):
        with self.assertRaises(LedgerValidationError):
            submit_token_request(actor=self.citizen, token_amount=5)


class FundRequestTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.owner = make_user(self.city, "project-owner", user_type="social_project")
        self.project = make_project(self.city, self.owner, funding_goal=100, citizen_limit=10)
        fund(self.owner, 20, government=self.government)

    def _submit(self, amount=15, **kwargs):
        params = {
            "actor": self.owner,
            "project_id": self.project.id,
            "token_amount": amount,
            "requested_fiat_amount": "1500",
            "bank_details": BANK_DETAILS,
        }
        params.update(kwargs)
        return submit_fund_request(**params)

    def test_approval_debits_owner_once(self):
        fund_request = self._submit(15)
        reviewed = review_fund_request(actor=self.government, fund_request_id=fund_request.id, decision="approve")
        entry = reviewed.token_transaction
        self.assertEqual((entry.from_user_id, entry.to_user_id), (self.owner.id, self.owner.id))
        self.assertEqual(entry.direction, TokenTransaction.DIRECTION_DEBIT)
        self.assertEqual(entry.category, TokenTransaction.CATEGORY_CONVERSION)
        self.owner.refresh_from_db()
        self.assertEqual(self.owner.token_balance, 5)
        self.assertEqual(ledger_balance(self.owner), 5)

    def test_approval_rechecks_balance(self):
        first = self._submit(15)
        second = self._submit(15)
        review_fund_request(actor=self.government, fund_request_id=first.id, decision="approve")
        with self.assertRaises(InsufficientBalance):
            review_fund_request(actor=self.government, fund_request_id=second.id, decision="approve")
        second.refresh_from_db()
        self.assertEqual(second.status, FundRequest.STATUS_PENDING)

    def test_submission_checks_owner_balance_and_bank_details(self):
        with self.assertRaises(InsufficientBalance):
            self._submit(21)
        with self.assertRaises(LedgerValidationError):
            self._submit(bank_details={"bank_name": "Banco Municipal"})
        stranger = make_user(self.city, "other-owner", user_type="social_project")
        with self.assertRaises(LedgerNotFound):
            self._submit(actor=stranger)


class ClaimsAPITests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.citizen = make_user(self.city, "citizen-a")

    def test_citizen_submits_and_government_approves(self):
        self.client.force_login(self.citizen)
        created = self.client.post(
            "/api/claims/token-claims/",
            data={
                "payment_type": "utility_bill",
                "payment_amount": "350.00",
                "payment_date": str(timezone.localdate()),
                "proof_documents": [RECEIPT],
            },
            content_type="application/json",
            HTTP_X_CITY_ID="rosario",
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["calculated_tokens"], 3)
        claim_id = created.json()["id"]

        self.client.force_login(self.government)
        reviewed = self.client.post(
            f"/api/claims/token-claims/{claim_id}/review/",
            data={"decision": "approve"},
            content_type="application/json",
            HTTP_X_CITY_ID="rosario",
        )
        self.assertEqual(reviewed.status_code, 200)
        self.assertEqual(reviewed.json()["status"], "approved")

        again = self.client.post(
            f"/api/claims/token-claims/{claim_id}/review/",
            data={"decision": "approve"},
            content_type="application/json",
            HTTP_X_CITY_ID="rosario",
        )
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["code"], "ALREADY_REVIEWED")

    def test_citizen_lists_only_own_claims(self):
        other = make_user(self.city, "citizen-b")
        for actor in (self.citizen, other):
            submit_token_claim(
                actor=actor,
                payment_type=TokenClaim.PAYMENT_MUNICIPAL_FEE,
                payment_amount="200",
                payment_date=timezone.localdate(),
                proof_documents=[RECEIPT],
            )
        self.client.force_login(self.citizen)
        response = self.client.get("/api/claims/token-claims/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(len(response.json()), 1)

        self.client.force_login(self.government)
        response = self.client.get("/api/claims/token-claims/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(len(response.json()), 2)
