from django.test import TestCase

from ledger.models import TokenTransaction
from ledger.services import post_token_transaction
from ledger.tests.factories import fund, make_city, make_government, make_user


class WalletAPITests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.alice = make_user(self.city, "alice")
        self.bob = make_user(self.city, "bob")
        fund(self.alice, 20, government=self.government)
        fund(self.bob, 7, government=self.government)
        post_token_transaction(
            city=self.city,
            transaction_type=TokenTransaction.TYPE_TRANSFER,
            direction=TokenTransaction.DIRECTION_DEBIT,
            amount=5,
            from_user=self.alice,
            to_user=self.bob,
        )

    def test_wallet_shows_cached_and_ledger_balance(self):
        self.client.force_login(self.alice)
        response = self.client.get("/api/tokens/wallet/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["token_balance"], 15)
        self.assertEqual(payload["ledger_balance"], 15)
        self.assertEqual(payload["available_tokens"], 15)
        self.assertEqual(len(payload["recent_transactions"]), 2)

    def test_citizen_sees_only_own_transactions(self):
        self.client.force_login(self.bob)
        response = self.client.get("/api/tokens/transactions/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 2)

        transfers = self.client.get(
            "/api/tokens/transactions/",
            {"type": "transfer"},
            HTTP_X_CITY_ID="rosario",
        )
        self.assertEqual([row["amount"] for row in transfers.json()], [5])

    def test_government_sees_whole_city(self):
        self.client.force_login(self.government)
        response = self.client.get("/api/tokens/transactions/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(len(response.json()), 3)

        filtered = self.client.get(
            "/api/tokens/transactions/",
            {"user_id": self.alice.id},
            HTTP_X_CITY_ID="rosario",
        )
        self.assertEqual(len(filtered.json()), 2)

    def test_transactions_are_read_only(self):
        self.client.force_login(self.alice)
        response = self.client.post(
            "/api/tokens/transactions/",
            data={"amount": 1000},
            content_type="application/json",
            HTTP_X_CITY_ID="rosario",
        )
        self.assertIn(response.status_code, (403, 405))

    def test_reconciliation_report_for_government(self):
        self.client.force_login(self.government)
        response = self.client.get("/api/tokens/reconciliation/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["is_consistent"])

        self.client.force_login(self.alice)
        denied = self.client.get("/api/tokens/reconciliation/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(denied.status_code, 403)
