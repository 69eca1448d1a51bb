"""Citizen spending on social projects.

Validation runs against a locked snapshot in a fixed precedence: balance, project
state and allocation, per-citizen cap, per-project cap. The mutation that follows
re-checks every bound with conditional updates, so a snapshot that went stale
between read and write aborts the attempt instead of over-spending.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db.models import F
from django.utils import timezone

from accounts.models import User
from ledger import idempotency
from ledger.exceptions import (
    AllocationNotConfigured,
    InsufficientBalance,
    LedgerNotFound,
    PerCitizenLimitExceeded,
    ProjectLimitExceeded,
    ProjectNotActive,
    StaleLedgerState,
)
from ledger.guards import require_approved_citizen
from ledger.models import TokenTransaction
from ledger.services import (
    audit_token_transaction,
    lock_rows,
    post_token_transaction,
    run_ledger_operation,
    validate_token_amount,
)
from notifications.services import EVENT_PROJECT_SUPPORTED, emit_notification
from projects.models import AllocationLimit, Project, ProjectSupport
from projects.services.allocation_service import SpendCaps, allocation_policy, resolve_spend_caps

logger = logging.getLogger(__name__)

OPERATION = "project.support"


@dataclass(frozen=True)
class _SupportSnapshot:
    citizen_balance: int
    citizen_reserved: int
    project: Project | None
    allocation: AllocationLimit | None
    support_id: int | None
    already_spent: int

    @property
    def available(self) -> int:
        return max(self.citizen_balance - self.citizen_reserved, 0)


@dataclass(frozen=True)
class SupportResult:
    transaction: TokenTransaction
    project: Project
    support: ProjectSupport
    replayed: bool = False


def _load_support_snapshot(*, citizen_id: int, project_id, city_id: int) -> _SupportSnapshot:
    citizen = lock_rows(User.objects.filter(pk=citizen_id)).values("token_balance", "reserved_tokens").get()
    project = (
        lock_rows(Project.all_objects.filter(pk=project_id, city_id=city_id))
        .select_related("registration", "registration__owner", "city")
        .first()
    )
    allocation = None
    support = None
    if project is not None:
        allocation = lock_rows(
            AllocationLimit.all_objects.filter(project=project, status=AllocationLimit.STATUS_ACTIVE)
        ).first()
        support = lock_rows(
            ProjectSupport.all_objects.filter(project=project, citizen_id=citizen_id)
        ).first()
    return _SupportSnapshot(
        citizen_balance=citizen["token_balance"],
        citizen_reserved=citizen["reserved_tokens"],
        project=project,
        allocation=allocation,
        support_id=getattr(support, "id", None),
        already_spent=getattr(support, "tokens_spent", 0),
    )


def _validate_support(snapshot: _SupportSnapshot, *, amount: int, policy: str, project_id) -> SpendCaps:
    if snapshot.available < amount:
        raise InsufficientBalance(
            f"Insufficient balance: {snapshot.available} tokens available, {amount} requested.",
            available=snapshot.available,
            requested=amount,
        )

    project = snapshot.project
    if project is None:
        raise LedgerNotFound("Project not found.", code="PROJECT_NOT_FOUND", project_id=project_id)
    if project.status != Project.STATUS_ACTIVE:
        raise ProjectNotActive(
            f"Project is not accepting support (status: {project.status}).",
            project_status=project.status,
        )
    caps = resolve_spend_caps(project, snapshot.allocation, policy=policy)
    if caps is None:
        raise AllocationNotConfigured(
            "Allocation limits have not been set for this project yet.",
            project_id=project.id,
        )

    if snapshot.already_spent + amount > caps.citizen_cap:
        remaining = max(caps.citizen_cap - snapshot.already_spent, 0)
        raise PerCitizenLimitExceeded(
            f"You can spend at most {caps.citizen_cap} tokens on this project; "
            f"{remaining} remaining for you.",
            citizen_cap=caps.citizen_cap,
            already_spent=snapshot.already_spent,
            remaining=remaining,
        )

    if project.tokens_funded + amount > caps.project_cap:
        remaining = max(caps.project_cap - project.tokens_funded, 0)
        raise ProjectLimitExceeded(
            f"This project only needs {remaining} more tokens.",
            project_cap=caps.project_cap,
            tokens_funded=project.tokens_funded,
            remaining=remaining,
        )
    return caps


def _apply_support(*, citizen, snapshot: _SupportSnapshot, caps: SpendCaps, amount: int):
    project = snapshot.project
    now = timezone.now()

    updated = Project.all_objects.filter(
        pk=project.pk,
        status=Project.STATUS_ACTIVE,
        tokens_funded__lte=caps.project_cap - amount,
    ).update(tokens_funded=F("tokens_funded") + amount, updated_at=now)
    if updated != 1:
        raise StaleLedgerState(f"project {project.pk} funding moved")

    if snapshot.support_id is None:
        # A concurrent first support hits the unique constraint and is retried.
        support = ProjectSupport(city=project.city, project=project, citizen=citizen, tokens_spent=amount)
        support.save(force_insert=True)
    else:
        updated = ProjectSupport.all_objects.filter(
            pk=snapshot.support_id,
            tokens_spent__lte=caps.citizen_cap - amount,
        ).update(tokens_spent=F("tokens_spent") + amount, updated_at=now)
        if updated != 1:
            raise StaleLedgerState(f"support {snapshot.support_id} moved")
        support = ProjectSupport.all_objects.get(pk=snapshot.support_id)

    entry = post_token_transaction(
        city=project.city,
        transaction_type=TokenTransaction.TYPE_SPEND,
        direction=TokenTransaction.DIRECTION_DEBIT,
        amount=amount,
        from_user=citizen,
        to_user=project.owner,
        category=TokenTransaction.CATEGORY_CONTRIBUTION,
        description=f"Support for {project.title}",
        related_project=project,
        metadata={
            "citizen_cap": caps.citizen_cap,
            "project_cap": caps.project_cap,
            "cap_source": caps.source,
        },
    )
    project.refresh_from_db(fields=["tokens_funded", "updated_at"])
    return entry, project, support


def _replay(record) -> SupportResult:
    entry = record.token_transaction
    project = Project.all_objects.select_related("registration").get(pk=entry.related_project_id)
    support = ProjectSupport.all_objects.get(project=project, citizen_id=entry.from_user_id)
    return SupportResult(transaction=entry, project=project, support=support, replayed=True)


def support_project(
    *,
    actor,
    project_id,
    tokens_to_spend,
    request=None,
    idempotency_key: str | None = None,
) -> SupportResult:
    amount = validate_token_amount(tokens_to_spend, field_name="tokens_to_spend")
    require_approved_citizen(actor)
    policy = allocation_policy()
    key = idempotency.normalize_key(idempotency_key)
    params = {"project_id": str(project_id), "amount": amount}

    def attempt() -> SupportResult:
        replay = idempotency.find_replay(actor=actor, operation=OPERATION, key=key, payload=params)
        if replay is not None:
            return _replay(replay)

        snapshot = _load_support_snapshot(citizen_id=actor.id, project_id=project_id, city_id=actor.city_id)
        caps = _validate_support(snapshot, amount=amount, policy=policy, project_id=project_id)
        entry, project, support = _apply_support(citizen=actor, snapshot=snapshot, caps=caps, amount=amount)

        idempotency.remember(
            actor=actor,
            operation=OPERATION,
            key=key,
            payload=params,
            token_transaction=entry,
        )
        audit_token_transaction(
            entry,
            actor=actor,
            event_type="project.supported",
            request=request,
            metadata={"project_id": project.id, "tokens_funded": project.tokens_funded},
        )
        emit_notification(
            recipient=project.owner,
            event_type=EVENT_PROJECT_SUPPORTED,
            subject=f"{project.title} received {amount} tokens",
            body=(
                f"A citizen supported {project.title} with {amount} tokens. "
                f"Funding is now {project.tokens_funded}/{project.funding_goal} "
                f"({project.funding_percentage}%)."
            ),
            payload={"project_id": project.id, "transaction_id": entry.transaction_id},
            city=project.city,
        )
        return SupportResult(transaction=entry, project=project, support=support)

    result = run_ledger_operation(OPERATION, attempt)
    if not result.replayed:
        logger.info(
            "project.support.completed project_id=%s citizen_id=%s amount=%s tokens_funded=%s transaction_id=%s",
            result.project.id,
            actor.id,
            amount,
            result.project.tokens_funded,
            result.transaction.transaction_id,
        )
    return result
