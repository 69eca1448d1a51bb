import copy
from dataclasses import replace
from unittest import mock

from django.test import TestCase, override_settings

from audit.models import AuditEntry
from ledger.exceptions import (
    AllocationNotConfigured,
    InsufficientBalance,
    LedgerNotFound,
    LedgerUnauthorized,
    PerCitizenLimitExceeded,
    ProjectLimitExceeded,
    ProjectNotActive,
)
from ledger.models import TokenTransaction
from ledger.services import ledger_balance, post_token_transaction
from ledger.tests.factories import fund, make_city, make_government, make_project, make_user
from projects.models import Project, ProjectSupport
from projects.services import support_service
from projects.services.support_service import support_project


class SupportProjectTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.owner = make_user(self.city, "project-owner", user_type="social_project")
        self.citizen = make_user(self.city, "citizen-a")
        fund(self.citizen, 10, government=self.government)

    def test_per_citizen_cap_blocks_second_spend(self):
        project = make_project(self.city, self.owner, funding_goal=100, citizen_limit=5, project_limit=100)

        result = support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=5)
        self.assertEqual(result.support.tokens_spent, 5)
        self.assertEqual(result.project.tokens_funded, 5)

        with self.assertRaises(PerCitizenLimitExceeded) as ctx:
            support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=1)
        self.assertEqual(ctx.exception.code, "PER_CITIZEN_LIMIT_EXCEEDED")
        self.assertEqual(ctx.exception.extra["remaining"], 0)

        self.citizen.refresh_from_db()
        self.assertEqual(self.citizen.token_balance, 5)
        self.assertEqual(ledger_balance(self.citizen), 5)
        self.assertEqual(ProjectSupport.all_objects.get(project=project).tokens_spent, 5)

    def test_project_cap_reports_remaining_tokens(self):
        project = make_project(self.city, self.owner, funding_goal=100, tokens_funded=98, citizen_limit=10)

        with self.assertRaises(ProjectLimitExceeded) as ctx:
            support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=5)
        self.assertIn("only needs 2 more tokens", str(ctx.exception))
        self.assertEqual(ctx.exception.extra["remaining"], 2)

        result = support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=2)
        self.assertEqual(result.project.tokens_funded, 100)
        self.assertTrue(result.project.is_fully_funded)
        self.assertEqual(result.project.funding_percentage, 100)
        self.assertEqual(result.project.status, Project.STATUS_ACTIVE)

    def test_support_credits_owner_and_links_project(self):
        project = make_project(self.city, self.owner, funding_goal=100, citizen_limit=10)
        result = support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=4)

        entry = result.transaction
        self.assertEqual(entry.transaction_type, TokenTransaction.TYPE_SPEND)
        self.assertEqual(entry.category, TokenTransaction.CATEGORY_CONTRIBUTION)
        self.assertEqual(entry.related_project_id, project.id)
        self.assertEqual((entry.from_user_id, entry.to_user_id), (self.citizen.id, self.owner.id))
        self.owner.refresh_from_db()
        self.assertEqual(self.owner.token_balance, 4)
        self.assertTrue(
            AuditEntry.all_objects.filter(event_type="project.supported", resource_pk=entry.transaction_id).exists()
        )

    def test_balance_is_checked_before_project_state(self):
        project = make_project(
            self.city, self.owner, funding_goal=100, citizen_limit=5, status=Project.STATUS_INACTIVE
        )
        with self.assertRaises(InsufficientBalance):
            support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=11)
        with self.assertRaises(ProjectNotActive):
            support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=1)

    def test_citizen_cap_is_checked_before_project_cap(self):
        project = make_project(self.city, self.owner, funding_goal=100, tokens_funded=98, citizen_limit=5)
        with self.assertRaises(PerCitizenLimitExceeded):
            support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=6)

    def test_missing_allocation_blocks_support_under_configured_policy(self):
        project = make_project(self.city, self.owner, funding_goal=100)
        with self.assertRaises(AllocationNotConfigured):
            support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=1)

    def test_allocation_project_cap_never_exceeds_goal(self):
        project = make_project(self.city, self.owner, funding_goal=10, tokens_funded=8, citizen_limit=10, project_limit=500)
        with self.assertRaises(ProjectLimitExceeded) as ctx:
            support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=3)
        self.assertEqual(ctx.exception.extra["project_cap"], 10)

    def test_project_in_other_city_is_not_found(self):
        other_city = make_city("cordoba")
        other_owner = make_user(other_city, "other-owner", user_type="social_project")
        project = make_project(other_city, other_owner, funding_goal=100, citizen_limit=5)
        with self.assertRaises(LedgerNotFound):
            support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=1)

    def test_only_citizens_support(self):
        project = make_project(self.city, self.owner, funding_goal=100, citizen_limit=5)
        with self.assertRaises(LedgerUnauthorized):
            support_project(actor=self.owner, project_id=project.id, tokens_to_spend=1)

    def test_pending_citizen_cannot_support(self):
        project = make_project(self.city, self.owner, funding_goal=100, citizen_limit=5)
        pending = make_user(self.city, "citizen-pending", is_approved=False)
        fund(pending, 10, government=self.government)
        with self.assertRaises(LedgerUnauthorized):
            support_project(actor=pending, project_id=project.id, tokens_to_spend=5)
        pending.refresh_from_db()
        self.assertEqual(pending.token_balance, 10)
        self.assertFalse(ProjectSupport.all_objects.exists())

    def test_idempotent_retry_spends_once(self):
        project = make_project(self.city, self.owner, funding_goal=100, citizen_limit=5)
        first = support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=3, idempotency_key="k-1")
        second = support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=3, idempotency_key="k-1")
        self.assertFalse(first.replayed)
        self.assertTrue(second.replayed)
        self.assertEqual(first.transaction.pk, second.transaction.pk)
        self.citizen.refresh_from_db()
        self.assertEqual(self.citizen.token_balance, 7)

    @override_settings(TOKEN_ALLOCATION_POLICY="flat", FLAT_CITIZEN_PROJECT_CAP=5)
    def test_flat_policy_ignores_allocation(self):
        project = make_project(self.city, self.owner, funding_goal=100, citizen_limit=50)
        with self.assertRaises(PerCitizenLimitExceeded) as ctx:
            support_project(actor=self.citizen, project_id=project.id, tokens_to_spend=6)
        self.assertEqual(ctx.exception.extra["citizen_cap"], 5)

    @override_settings(TOKEN_ALLOCATION_POLICY="configured_or_flat", FLAT_CITIZEN_PROJECT_CAP=3)
    def test_configured_or_flat_falls_back_without_allocation(self):
        unconfigured = make_project(self.city, self.owner, funding_goal=100, title="No allocation")
        result = support_project(actor=self.citizen, project_id=unconfigured.id, tokens_to_spend=3)
        self.assertEqual(result.transaction.metadata["cap_source"], "flat")

        configured = make_project(self.city, self.owner, funding_goal=100, citizen_limit=6, title="Configured")
        result = support_project(actor=self.citizen, project_id=configured.id, tokens_to_spend=6)
        self.assertEqual(result.transaction.metadata["cap_source"], "allocation")


class SupportRaceTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.owner = make_user(self.city, "project-owner", user_type="social_project")
        self.citizen = make_user(self.city, "citizen-a")
        fund(self.citizen, 10, government=self.government)
        self.project = make_project(self.city, self.owner, funding_goal=100, tokens_funded=98, citizen_limit=10)

    def test_stale_snapshot_is_revalidated_and_cannot_overfund(self):
        real_loader = support_service._load_support_snapshot
        calls = []

        def stale_then_fresh(**kwargs):
            snapshot = real_loader(**kwargs)
            calls.append(snapshot)
            if len(calls) == 1:
                # A competing supporter committed after this read.
                stale_project = copy.copy(snapshot.project)
                stale_project.tokens_funded = 95
                return replace(snapshot, project=stale_project)
            return snapshot

        with mock.patch(
            "projects.services.support_service._load_support_snapshot",
            side_effect=stale_then_fresh,
        ):
            with self.assertRaises(ProjectLimitExceeded) as ctx:
                support_project(actor=self.citizen, project_id=self.project.id, tokens_to_spend=5)

        self.assertEqual(len(calls), 2)
        self.assertEqual(ctx.exception.extra["remaining"], 2)
        self.project.refresh_from_db()
        self.assertEqual(self.project.tokens_funded, 98)
        self.citizen.refresh_from_db()
        self.assertEqual(self.citizen.token_balance, 10)
        self.assertFalse(TokenTransaction.all_objects.filter(transaction_type=TokenTransaction.TYPE_SPEND).exists())
        self.assertFalse(ProjectSupport.all_objects.exists())

    def test_stale_balance_cannot_overdraw(self):
        Project.all_objects.filter(pk=self.project.pk).update(tokens_funded=0)
        real_loader = support_service._load_support_snapshot
        calls = []

        def stale_balance(**kwargs):
            snapshot = real_loader(**kwargs)
            calls.append(snapshot)
            if len(calls) == 1:
                return replace(snapshot, citizen_balance=10)
            return snapshot

        # The citizen already spent 5 elsewhere; the first read still shows 10.
        post_token_transaction(
            city=self.city,
            transaction_type=TokenTransaction.TYPE_TRANSFER,
            direction=TokenTransaction.DIRECTION_DEBIT,
            amount=5,
            from_user=self.citizen,
            to_user=self.owner,
        )
        with mock.patch(
            "projects.services.support_service._load_support_snapshot",
            side_effect=stale_balance,
        ):
            with self.assertRaises(InsufficientBalance):
                support_project(actor=self.citizen, project_id=self.project.id, tokens_to_spend=8)

        self.assertEqual(len(calls), 2)
        self.project.refresh_from_db()
        self.assertEqual(self.project.tokens_funded, 0)
        self.citizen.refresh_from_db()
        self.assertEqual(self.citizen.token_balance, 5)
        self.assertFalse(ProjectSupport.all_objects.exists())

    def test_concurrent_first_supports_respect_citizen_cap(self):
        library = make_project(self.city, self.owner, funding_goal=100, citizen_limit=5, title="Library")
        real_loader = support_service._load_support_snapshot
        calls = []

        def read_before_first_commit(**kwargs):
            snapshot = real_loader(**kwargs)
            calls.append(snapshot)
            if len(calls) == 1:
                return replace(snapshot, support_id=None, already_spent=0)
            return snapshot

        support_project(actor=self.citizen, project_id=library.id, tokens_to_spend=3)
        with mock.patch(
            "projects.services.support_service._load_support_snapshot",
            side_effect=read_before_first_commit,
        ):
            with self.assertRaises(PerCitizenLimitExceeded) as ctx:
                support_project(actor=self.citizen, project_id=library.id, tokens_to_spend=3)

        self.assertEqual(len(calls), 2)
        self.assertEqual(ctx.exception.extra["remaining"], 2)
        library.refresh_from_db()
        self.assertEqual(library.tokens_funded, 3)
        self.assertEqual(ProjectSupport.all_objects.get(project=library).tokens_spent, 3)
        self.citizen.refresh_from_db()
        self.assertEqual(self.citizen.token_balance, 7)
