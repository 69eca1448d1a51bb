from django.test import TestCase

from ledger.tests.factories import fund, make_city, make_government, make_user


class AuthenticatedUserAPITests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a", daily_limit=500)
        self.citizen = make_user(self.city, "citizen-a", full_name="Ana Citizen")
        fund(self.citizen, 12, government=self.government)

    def test_me_returns_profile_and_balances(self):
        self.client.force_login(self.citizen)
        response = self.client.get("/api/auth/me/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["username"], "citizen-a")
        self.assertEqual(payload["user_type"], "citizen")
        self.assertEqual(payload["city"]["code"], "rosario")
        self.assertEqual(payload["token_balance"], 12)
        self.assertEqual(payload["available_tokens"], 12)
        self.assertIsNone(payload["government_profile"])

    def test_me_includes_government_profile(self):
        self.client.force_login(self.government)
        response = self.client.get("/api/auth/me/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(response.status_code, 200)
        profile = response.json()["government_profile"]
        self.assertEqual(profile["status"], "approved")
        self.assertEqual(profile["daily_issuance_limit"], 500)

    def test_capabilities_follow_user_type(self):
        self.client.force_login(self.government)
        response = self.client.get("/api/auth/capabilities/", HTTP_X_CITY_ID="rosario")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["city"], "rosario")
        self.assertTrue(payload["capabilities"]["issuance"]["create"])
        self.assertFalse(payload["capabilities"]["project_support"]["create"])


class GovernmentApprovalTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")

    def test_government_needs_approved_profile(self):
        government = make_government(self.city, "gov-pending", status="pending")
        self.assertFalse(government.is_approved_government)

    def test_government_needs_approved_flag(self):
        government = make_government(self.city, "gov-flag")
        government.is_approved = False
        self.assertFalse(government.is_approved_government)

    def test_approved_government(self):
        government = make_government(self.city, "gov-ok")
        self.assertTrue(government.is_approved_government)
        self.assertFalse(make_user(self.city, "citizen").is_approved_government)
