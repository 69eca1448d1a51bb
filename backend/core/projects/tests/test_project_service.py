from django.test import TestCase

from ledger.exceptions import InvalidTransition, LedgerUnauthorized, LedgerValidationError
from ledger.tests.factories import fund, make_city, make_government, make_project, make_user
from notifications.models import NotificationIntent
from projects.models import AllocationLimit, Project, SocialProjectRegistration
from projects.services.project_service import (
    approve_project,
    can_transition_project,
    create_project,
    default_citizen_limit,
    project_funding_stats,
    review_registration,
    submit_registration,
    transition_project_status,
)
from projects.services.support_service import support_project


class ProjectLifecycleTests(TestCase):
    def setUp(self):
        self.city = make_city("rosario")
        self.government = make_government(self.city, "gov-a")
        self.owner = make_user(self.city, "project-owner", user_type="social_project")

    def _approved_registration(self):
        registration = submit_registration(actor=self.owner, organization_name="Huerta Norte")
        return review_registration(actor=self.government, registration_id=registration.id, decision="approve")

    def test_registration_review_is_final(self):
        registration = self._approved_registration()
        self.assertEqual(registration.status, SocialProjectRegistration.STATUS_APPROVED)
        self.assertEqual(registration.reviewed_by_id, self.government.id)
        with self.assertRaises(InvalidTransition) as ctx:
            review_registration(actor=self.government, registration_id=registration.id, decision="reject")
        self.assertEqual(ctx.exception.code, "ALREADY_REVIEWED")

    def test_only_project_accounts_register(self):
        citizen = make_user(self.city, "citizen-a")
        with self.assertRaises(LedgerUnauthorized):
            submit_registration(actor=citizen, organization_name="Nope")

    def test_project_creation_requires_approved_registration(self):
        submit_registration(actor=self.owner, organization_name="Pending org")
        with self.assertRaises(InvalidTransition) as ctx:
            create_project(actor=self.owner, title="Playground")
        self.assertEqual(ctx.exception.code, "REGISTRATION_NOT_APPROVED")

    def test_approval_activates_project_and_creates_allocation(self):
        self._approved_registration()
        project = create_project(actor=self.owner, title="Playground", funding_goal=50)
        self.assertEqual(project.status, Project.STATUS_PENDING_APPROVAL)

        approved = approve_project(actor=self.government, project_id=project.id, funding_goal=200)
        self.assertEqual(approved.status, Project.STATUS_ACTIVE)
        self.assertEqual(approved.funding_goal, 200)
        self.assertTrue(approved.allocation_set)

        limit = AllocationLimit.all_objects.get(project=project, status=AllocationLimit.STATUS_ACTIVE)
        self.assertEqual((limit.citizen_token_limit, limit.project_token_limit), (20, 200))
        self.assertTrue(
            NotificationIntent.all_objects.filter(recipient=self.owner, event_type="project.approved").exists()
        )

        with self.assertRaises(InvalidTransition):
            approve_project(actor=self.government, project_id=project.id, funding_goal=200)

    def test_approval_rejects_goal_above_project_maximum(self):
        self._approved_registration()
        project = create_project(actor=self.owner, title="Stadium")
        with self.assertRaises(LedgerValidationError):
            approve_project(actor=self.government, project_id=project.id, funding_goal=1500)
        with self.assertRaises(LedgerValidationError):
            approve_project(actor=self.government, project_id=project.id, funding_goal=50, citizen_token_limit=60)
        project.refresh_from_db()
        self.assertEqual(project.status, Project.STATUS_PENDING_APPROVAL)

    def test_default_citizen_limit(self):
        self.assertEqual(default_citizen_limit(5), 1)
        self.assertEqual(default_citizen_limit(200), 20)
        self.assertEqual(default_citizen_limit(1000), 100)

    def test_status_transitions(self):
        self.assertTrue(can_transition_project(Project.STATUS_ACTIVE, Project.STATUS_INACTIVE))
        self.assertFalse(can_transition_project(Project.STATUS_COMPLETED, Project.STATUS_ACTIVE))

        pending = make_project(self.city, self.owner, status=Project.STATUS_PENDING_APPROVAL)
        with self.assertRaises(InvalidTransition):
            transition_project_status(actor=self.government, project_id=pending.id, status=Project.STATUS_ACTIVE)

        active = make_project(self.city, self.owner, citizen_limit=5, title="Library")
        paused = transition_project_status(
            actor=self.government, project_id=active.id, status=Project.STATUS_INACTIVE, reason="Audit"
        )
        self.assertEqual((paused.status, paused.status_reason), (Project.STATUS_INACTIVE, "Audit"))
        completed = transition_project_status(
            actor=self.government, project_id=active.id, status=Project.STATUS_COMPLETED
        )
        with self.assertRaises(InvalidTransition):
            transition_project_status(actor=self.government, project_id=completed.id, status=Project.STATUS_ACTIVE)


class FundingStatsTests(TestCase):
    def test_stats_reflect_supports_and_caps(self):
        city = make_city("rosario")
        government = make_government(city, "gov-a")
        owner = make_user(city, "project-owner", user_type="social_project")
        project = make_project(city, owner, funding_goal=40, citizen_limit=10)
        for name in ("alice", "bob"):
            citizen = make_user(city, name)
            fund(citizen, 10, government=government)
            support_project(actor=citizen, project_id=project.id, tokens_to_spend=10)

        project.refresh_from_db()
        stats = project_funding_stats(project)
        self.assertEqual(stats["tokens_funded"], 20)
        self.assertEqual(stats["funding_percentage"], 50)
        self.assertEqual(stats["tokens_needed"], 20)
        self.assertEqual(stats["supporters"], 2)
        self.assertEqual((stats["citizen_cap"], stats["project_cap"], stats["cap_source"]), (10, 40, "allocation"))
        self.assertFalse(stats["is_fully_funded"])
