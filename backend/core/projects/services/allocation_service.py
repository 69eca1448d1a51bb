from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone

from audit.models import AuditEntry
from audit.services import append_audit_entry
from ledger.exceptions import InvalidTransition, LedgerNotFound, LedgerValidationError
from ledger.guards import require_approved_government
from ledger.services import lock_rows, run_ledger_operation, validate_token_amount
from notifications.services import EVENT_ALLOCATION_UPDATED, emit_notification
from projects.models import (
    CITIZEN_TOKEN_LIMIT_MAX,
    PROJECT_TOKEN_LIMIT_MAX,
    AllocationLimit,
    Project,
    SocialProjectRegistration,
)

logger = logging.getLogger(__name__)

POLICY_CONFIGURED = "configured"
POLICY_FLAT = "flat"
POLICY_CONFIGURED_OR_FLAT = "configured_or_flat"
ALLOCATION_POLICIES = (POLICY_CONFIGURED, POLICY_FLAT, POLICY_CONFIGURED_OR_FLAT)

CAP_SOURCE_ALLOCATION = "allocation"
CAP_SOURCE_FLAT = "flat"


@dataclass(frozen=True)
class SpendCaps:
    citizen_cap: int
    project_cap: int
    source: str
    allocation_id: int | None = None


def allocation_policy() -> str:
    policy = str(getattr(settings, "TOKEN_ALLOCATION_POLICY", POLICY_CONFIGURED)).strip().lower()
    if policy not in ALLOCATION_POLICIES:
        raise ImproperlyConfigured(
            f"TOKEN_ALLOCATION_POLICY must be one of {', '.join(ALLOCATION_POLICIES)}; got {policy!r}."
        )
    return policy


def flat_citizen_cap() -> int:
    return max(int(getattr(settings, "FLAT_CITIZEN_PROJECT_CAP", 5)), 1)


def resolve_spend_caps(project: Project, allocation: AllocationLimit | None, *, policy: str | None = None):
    """Return the caps that govern spending on `project`, or None when none apply.

    None means the policy requires an active allocation and the project has none.
    """

    policy = policy or allocation_policy()
    if policy != POLICY_FLAT and allocation is not None:
        project_cap = int(allocation.project_token_limit)
        if project.funding_goal > 0:
            project_cap = min(project_cap, int(project.funding_goal))
        return SpendCaps(
            citizen_cap=int(allocation.citizen_token_limit),
            project_cap=project_cap,
            source=CAP_SOURCE_ALLOCATION,
            allocation_id=allocation.id,
        )
    if policy == POLICY_CONFIGURED:
        return None
    return SpendCaps(
        citizen_cap=flat_citizen_cap(),
        project_cap=int(project.funding_goal),
        source=CAP_SOURCE_FLAT,
    )


def _validate_limits(citizen_token_limit, project_token_limit) -> tuple[int, int]:
    citizen_limit = validate_token_amount(citizen_token_limit, field_name="citizen_token_limit")
    project_limit = validate_token_amount(project_token_limit, field_name="project_token_limit")
    if citizen_limit > CITIZEN_TOKEN_LIMIT_MAX:
        raise LedgerValidationError(
            f"citizen_token_limit must be between 1 and {CITIZEN_TOKEN_LIMIT_MAX}.",
            field="citizen_token_limit",
        )
    if project_limit > PROJECT_TOKEN_LIMIT_MAX:
        raise LedgerValidationError(
            f"project_token_limit must be between 1 and {PROJECT_TOKEN_LIMIT_MAX}.",
            field="project_token_limit",
        )
    if citizen_limit > project_limit:
        raise LedgerValidationError(
            "Citizen token limit cannot exceed the project token limit (funding goal).",
            field="citizen_token_limit",
        )
    return citizen_limit, project_limit


def _allocation_snapshot(limit: AllocationLimit) -> dict:
    return {
        "project_id": limit.project_id,
        "citizen_token_limit": limit.citizen_token_limit,
        "project_token_limit": limit.project_token_limit,
        "status": limit.status,
        "notes": limit.notes,
    }


def _load_project_for_update(project_id, *, actor) -> Project:
    project = (
        lock_rows(Project.all_objects.filter(pk=project_id))
        .select_related("registration", "registration__owner", "city")
        .first()
    )
    if project is None or project.city_id != actor.city_id:
        raise LedgerNotFound("Project not found.", code="PROJECT_NOT_FOUND", project_id=project_id)
    return project


def get_allocation_limits(project_id) -> AllocationLimit | None:
    return (
        AllocationLimit.all_objects.filter(project_id=project_id, status=AllocationLimit.STATUS_ACTIVE)
        .order_by("-updated_at", "-id")
        .first()
    )


def activate_allocation(
    *,
    project: Project,
    actor,
    citizen_token_limit: int,
    project_token_limit: int,
    notes: str = "",
) -> tuple[AllocationLimit, dict | None]:
    """Create or update the single active allocation of `project` (caller holds the lock)."""

    current = lock_rows(
        AllocationLimit.all_objects.filter(project=project, status=AllocationLimit.STATUS_ACTIVE)
    ).first()
    before = _allocation_snapshot(current) if current is not None else None

    if current is None:
        current = AllocationLimit(
            city=project.city,
            project=project,
            citizen_token_limit=citizen_token_limit,
            project_token_limit=project_token_limit,
            status=AllocationLimit.STATUS_ACTIVE,
            set_by=actor,
            notes=(notes or "")[:500],
        )
    else:
        current.citizen_token_limit = citizen_token_limit
        current.project_token_limit = project_token_limit
        current.set_by = actor
        if notes:
            current.notes = notes[:500]
    current.save()

    if not project.allocation_set:
        Project.all_objects.filter(pk=project.pk).update(allocation_set=True, updated_at=timezone.now())
        project.allocation_set = True
    return current, before


def set_allocation_limits(
    *,
    actor,
    project_id,
    citizen_token_limit,
    project_token_limit,
    notes: str = "",
    request=None,
) -> AllocationLimit:
    require_approved_government(actor)
    citizen_limit, project_limit = _validate_limits(citizen_token_limit, project_token_limit)

    def attempt() -> AllocationLimit:
        project = _load_project_for_update(project_id, actor=actor)
        if project.registration.status != SocialProjectRegistration.STATUS_APPROVED:
            raise InvalidTransition(
                "Allocation limits can only be set for approved project registrations.",
                code="REGISTRATION_NOT_APPROVED",
            )

        limit, before = activate_allocation(
            project=project,
            actor=actor,
            citizen_token_limit=citizen_limit,
            project_token_limit=project_limit,
            notes=notes,
        )
        append_audit_entry(
            city=project.city,
            actor=actor,
            action=AuditEntry.ACTION_CREATE if before is None else AuditEntry.ACTION_UPDATE,
            event_type="allocation.set",
            resource_label="projects.AllocationLimit",
            resource_pk=str(limit.pk),
            request=request,
            data_before=before,
            data_after=_allocation_snapshot(limit),
        )
        emit_notification(
            recipient=project.owner,
            event_type=EVENT_ALLOCATION_UPDATED,
            subject=f"Allocation limits updated for {project.title}",
            body=(
                f"Citizens may now spend up to {limit.citizen_token_limit} tokens each on "
                f"{project.title}; the project accepts up to {limit.project_token_limit} tokens."
            ),
            payload={"project_id": project.id, "allocation_limit_id": limit.id},
            city=project.city,
        )
        return limit

    limit = run_ledger_operation("allocation.set", attempt)
    logger.info(
        "allocation.set project_id=%s citizen_limit=%s project_limit=%s actor_id=%s",
        limit.project_id,
        limit.citizen_token_limit,
        limit.project_token_limit,
        actor.id,
    )
    return limit


def update_allocation_limits(
    *,
    actor,
    limit_id,
    citizen_token_limit=None,
    project_token_limit=None,
    status: str | None = None,
    notes: str | None = None,
    request=None,
) -> AllocationLimit:
    """Change an existing allocation record.

    Lowering a limit below what is already funded is allowed; it only blocks further
    spending. Re-activating a record deactivates the project's other active record.
    """

    require_approved_government(actor)
    if status is not None and status not in dict(AllocationLimit.STATUS_CHOICES):
        raise LedgerValidationError(f"Unknown allocation status: {status}.", field="status")

    def attempt() -> AllocationLimit:
        limit = (
            lock_rows(AllocationLimit.all_objects.filter(pk=limit_id))
            .select_related("project", "project__registration", "city")
            .first()
        )
        if limit is None or limit.city_id != actor.city_id:
            raise LedgerNotFound("Allocation limit not found.", limit_id=limit_id)
        before = _allocation_snapshot(limit)

        citizen_limit, project_limit = _validate_limits(
            limit.citizen_token_limit if citizen_token_limit is None else citizen_token_limit,
            limit.project_token_limit if project_token_limit is None else project_token_limit,
        )
        limit.citizen_token_limit = citizen_limit
        limit.project_token_limit = project_limit
        if notes is not None:
            limit.notes = notes[:500]
        limit.set_by = actor

        if status == AllocationLimit.STATUS_ACTIVE and limit.status != AllocationLimit.STATUS_ACTIVE:
            AllocationLimit.all_objects.filter(
                project_id=limit.project_id,
                status=AllocationLimit.STATUS_ACTIVE,
            ).exclude(pk=limit.pk).update(status=AllocationLimit.STATUS_INACTIVE, updated_at=timezone.now())
        if status is not None:
            limit.status = status
        limit.save()

        has_active = AllocationLimit.all_objects.filter(
            project_id=limit.project_id,
            status=AllocationLimit.STATUS_ACTIVE,
        ).exists()
        Project.all_objects.filter(pk=limit.project_id).update(
            allocation_set=has_active,
            updated_at=timezone.now(),
        )

        append_audit_entry(
            city=limit.city,
            actor=actor,
            action=AuditEntry.ACTION_UPDATE,
            event_type="allocation.updated",
            resource_label="projects.AllocationLimit",
            resource_pk=str(limit.pk),
            request=request,
            data_before=before,
            data_after=_allocation_snapshot(limit),
        )
        return limit

    limit = run_ledger_operation("allocation.update", attempt)
    logger.info(
        "allocation.updated limit_id=%s project_id=%s status=%s actor_id=%s",
        limit.id,
        limit.project_id,
        limit.status,
        actor.id,
    )
    return limit
