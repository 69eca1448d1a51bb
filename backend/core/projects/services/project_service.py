from __future__ import annotations

import logging

from django.db.models import Count
from django.utils import timezone

from audit.models import AuditEntry
from audit.services import append_audit_entry
from ledger.exceptions import InvalidTransition, LedgerNotFound, LedgerValidationError
from ledger.guards import require_approved_government, require_user_type
from ledger.services import lock_rows, run_ledger_operation, validate_token_amount
from notifications.services import EVENT_PROJECT_APPROVED, emit_notification
from projects.models import (
    CITIZEN_TOKEN_LIMIT_MAX,
    PROJECT_TOKEN_LIMIT_MAX,
    Project,
    ProjectSupport,
    SocialProjectRegistration,
)
from projects.services.allocation_service import activate_allocation, get_allocation_limits, resolve_spend_caps

logger = logging.getLogger(__name__)

DEFAULT_CITIZEN_SHARE_PERCENT = 10

_PROJECT_TRANSITIONS = {
    Project.STATUS_PENDING_APPROVAL: frozenset({Project.STATUS_ACTIVE, Project.STATUS_REJECTED}),
    Project.STATUS_ACTIVE: frozenset({Project.STATUS_INACTIVE, Project.STATUS_COMPLETED}),
    Project.STATUS_INACTIVE: frozenset({Project.STATUS_ACTIVE, Project.STATUS_COMPLETED}),
    Project.STATUS_COMPLETED: frozenset(),
    Project.STATUS_REJECTED: frozenset(),
}

_REGISTRATION_DECISIONS = {
    "approve": SocialProjectRegistration.STATUS_APPROVED,
    "reject": SocialProjectRegistration.STATUS_REJECTED,
}


def can_transition_project(current: str, target: str) -> bool:
    return target in _PROJECT_TRANSITIONS.get(current, frozenset())


def default_citizen_limit(funding_goal: int) -> int:
    """Ten percent of the goal, at least one token and never above the citizen maximum."""

    return min(max(1, int(funding_goal) * DEFAULT_CITIZEN_SHARE_PERCENT // 100), CITIZEN_TOKEN_LIMIT_MAX)


def _project_snapshot(project: Project) -> dict:
    return {
        "title": project.title,
        "status": project.status,
        "funding_goal": project.funding_goal,
        "tokens_funded": project.tokens_funded,
        "allocation_set": project.allocation_set,
        "status_reason": project.status_reason,
    }


def _load_project_for_update(project_id, *, actor) -> Project:
    project = (
        lock_rows(Project.all_objects.for_actor(actor).filter(pk=project_id))
        .select_related("registration", "registration__owner", "city")
        .first()
    )
    if project is None:
        raise LedgerNotFound("Project not found.", code="PROJECT_NOT_FOUND", project_id=project_id)
    return project


def submit_registration(
    *,
    actor,
    organization_name: str,
    description: str = "",
    contact_email: str = "",
    request=None,
) -> SocialProjectRegistration:
    require_user_type(actor, "social_project")
    organization_name = (organization_name or "").strip()
    if not organization_name:
        raise LedgerValidationError("organization_name is required.", field="organization_name")

    registration = SocialProjectRegistration(
        city=actor.city,
        owner=actor,
        organization_name=organization_name[:200],
        description=description or "",
        contact_email=contact_email or actor.email or "",
    )
    registration.save()
    append_audit_entry(
        city=actor.city,
        actor=actor,
        action=AuditEntry.ACTION_CREATE,
        event_type="registration.submitted",
        resource_label="projects.SocialProjectRegistration",
        resource_pk=str(registration.pk),
        request=request,
        data_after={"organization_name": registration.organization_name, "status": registration.status},
    )
    return registration


def review_registration(*, actor, registration_id, decision: str, request=None) -> SocialProjectRegistration:
    require_approved_government(actor)
    target = _REGISTRATION_DECISIONS.get((decision or "").strip().lower())
    if target is None:
        raise LedgerValidationError("decision must be 'approve' or 'reject'.", field="decision")

    def attempt() -> SocialProjectRegistration:
        registration = lock_rows(
            SocialProjectRegistration.all_objects.for_actor(actor).filter(pk=registration_id)
        ).first()
        if registration is None:
            raise LedgerNotFound("Registration not found.", registration_id=registration_id)
        if registration.status != SocialProjectRegistration.STATUS_PENDING:
            raise InvalidTransition(
                f"Registration already {registration.status}.",
                code="ALREADY_REVIEWED",
            )
        registration.status = target
        registration.reviewed_by = actor
        registration.reviewed_at = timezone.now()
        registration.save(update_fields=["status", "reviewed_by", "reviewed_at", "updated_at"])
        append_audit_entry(
            city=registration.city,
            actor=actor,
            action=AuditEntry.ACTION_TRANSITION,
            event_type="registration.reviewed",
            resource_label="projects.SocialProjectRegistration",
            resource_pk=str(registration.pk),
            request=request,
            data_before={"status": SocialProjectRegistration.STATUS_PENDING},
            data_after={"status": registration.status},
        )
        return registration

    return run_ledger_operation("registration.review", attempt)


def create_project(
    *,
    actor,
    title: str,
    description: str = "",
    project_type: str = "",
    funding_goal=None,
    request=None,
) -> Project:
    require_user_type(actor, "social_project")
    title = (title or "").strip()
    if not title:
        raise LedgerValidationError("title is required.", field="title")
    goal = 0
    if funding_goal not in (None, "", 0):
        goal = validate_token_amount(funding_goal, field_name="funding_goal")

    registration = (
        SocialProjectRegistration.all_objects.for_actor(actor).filter(
            owner=actor,
            status=SocialProjectRegistration.STATUS_APPROVED,
        )
        .order_by("id")
        .first()
    )
    if registration is None:
        raise InvalidTransition(
            "An approved project registration is required before creating projects.",
            code="REGISTRATION_NOT_APPROVED",
        )

    project = Project(
        city=registration.city,
        registration=registration,
        title=title[:200],
        description=description or "",
        project_type=(project_type or "")[:80],
        funding_goal=goal,
    )
    project.save()
    append_audit_entry(
        city=project.city,
        actor=actor,
        action=AuditEntry.ACTION_CREATE,
        event_type="project.created",
        resource_label="projects.Project",
        resource_pk=str(project.pk),
        request=request,
        data_after=_project_snapshot(project),
    )
    return project


def approve_project(
    *,
    actor,
    project_id,
    funding_goal,
    citizen_token_limit=None,
    request=None,
) -> Project:
    """Activate a pending project, fix its goal and create its allocation.

    The allocation mirrors the goal as the project limit, so goals above the project
    limit maximum are rejected instead of being silently capped.
    """

    require_approved_government(actor)
    goal = validate_token_amount(funding_goal, field_name="funding_goal")
    if goal > PROJECT_TOKEN_LIMIT_MAX:
        raise LedgerValidationError(
            f"funding_goal cannot exceed {PROJECT_TOKEN_LIMIT_MAX} tokens.",
            field="funding_goal",
        )
    citizen_limit = default_citizen_limit(goal)
    if citizen_token_limit not in (None, ""):
        citizen_limit = validate_token_amount(citizen_token_limit, field_name="citizen_token_limit")
        if citizen_limit > min(CITIZEN_TOKEN_LIMIT_MAX, goal):
            raise LedgerValidationError(
                "Citizen token limit cannot exceed the funding goal or the citizen maximum.",
                field="citizen_token_limit",
            )

    def attempt() -> Project:
        project = _load_project_for_update(project_id, actor=actor)
        if project.registration.status != SocialProjectRegistration.STATUS_APPROVED:
            raise InvalidTransition(
                "The project registration has not been approved.",
                code="REGISTRATION_NOT_APPROVED",
            )
        if not can_transition_project(project.status, Project.STATUS_ACTIVE):
            raise InvalidTransition(
                f"Cannot approve a project in status {project.status}.",
                current_status=project.status,
            )

        before = _project_snapshot(project)
        project.status = Project.STATUS_ACTIVE
        project.funding_goal = goal
        project.approved_by = actor
        project.approved_at = timezone.now()
        project.status_reason = ""
        project.save(
            update_fields=["status", "funding_goal", "approved_by", "approved_at", "status_reason", "updated_at"]
        )
        limit, _ = activate_allocation(
            project=project,
            actor=actor,
            citizen_token_limit=citizen_limit,
            project_token_limit=goal,
            notes="Created on project approval.",
        )

        append_audit_entry(
            city=project.city,
            actor=actor,
            action=AuditEntry.ACTION_TRANSITION,
            event_type="project.approved",
            resource_label="projects.Project",
            resource_pk=str(project.pk),
            request=request,
            data_before=before,
            data_after=_project_snapshot(project),
            metadata={"allocation_limit_id": limit.id},
        )
        emit_notification(
            recipient=project.owner,
            event_type=EVENT_PROJECT_APPROVED,
            subject=f"{project.title} was approved",
            body=(
                f"{project.title} is now active with a goal of {goal} tokens. "
                f"Each citizen may contribute up to {citizen_limit} tokens."
            ),
            payload={"project_id": project.id},
            city=project.city,
        )
        return project

    project = run_ledger_operation("project.approve", attempt)
    logger.info(
        "project.approved project_id=%s funding_goal=%s citizen_limit=%s actor_id=%s",
        project.id,
        goal,
        citizen_limit,
        actor.id,
    )
    return project


def transition_project_status(*, actor, project_id, status: str, reason: str = "", request=None) -> Project:
    require_approved_government(actor)
    if status not in _PROJECT_TRANSITIONS:
        raise LedgerValidationError(f"Unknown project status: {status}.", field="status")

    def attempt() -> Project:
        project = _load_project_for_update(project_id, actor=actor)
        if status == Project.STATUS_ACTIVE and project.status == Project.STATUS_PENDING_APPROVAL:
            raise InvalidTransition("Use project approval to activate a pending project.")
        if not can_transition_project(project.status, status):
            raise InvalidTransition(
                f"Cannot move a project from {project.status} to {status}.",
                current_status=project.status,
                requested_status=status,
            )
        before = _project_snapshot(project)
        project.status = status
        project.status_reason = (reason or "")[:500]
        project.save(update_fields=["status", "status_reason", "updated_at"])
        append_audit_entry(
            city=project.city,
            actor=actor,
            action=AuditEntry.ACTION_TRANSITION,
            event_type="project.status_changed",
            resource_label="projects.Project",
            resource_pk=str(project.pk),
            request=request,
            data_before=before,
            data_after=_project_snapshot(project),
        )
        return project

    return run_ledger_operation("project.transition", attempt)


def project_funding_stats(project: Project) -> dict:
    supporters = ProjectSupport.all_objects.filter(project=project, tokens_spent__gt=0).aggregate(
        total=Count("id")
    )["total"]
    allocation = get_allocation_limits(project.id)
    caps = resolve_spend_caps(project, allocation)
    return {
        "project_id": project.id,
        "status": project.status,
        "funding_goal": project.funding_goal,
        "tokens_funded": project.tokens_funded,
        "funding_percentage": project.funding_percentage,
        "tokens_needed": project.tokens_needed,
        "is_fully_funded": project.is_fully_funded,
        "supporters": supporters or 0,
        "citizen_cap": getattr(caps, "citizen_cap", None),
        "project_cap": getattr(caps, "project_cap", None),
        "cap_source": getattr(caps, "source", None),
    }
