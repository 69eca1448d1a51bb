from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from django.utils import timezone

from accounts.models import User
from audit.models import AuditEntry
from audit.services import append_audit_entry
from claims.documents import validate_documents
from claims.models import (
    FundRequest,
    ReviewableRequest,
    TokenClaim,
    TokenRequest,
    calculate_claim_tokens,
    default_token_rate,
)
from conversion.bank_details import FUND_REQUEST_REQUIRED_FIELDS, validate_bank_details, validate_currency
from issuance.services import apply_issuance, notify_issuance
from ledger.exceptions import (
    AlreadyReviewed,
    InsufficientBalance,
    InvalidTransition,
    LedgerNotFound,
    LedgerValidationError,
)
from ledger.guards import require_approved_citizen, require_approved_government, require_user_type
from ledger.models import TokenTransaction
from ledger.services import (
    audit_token_transaction,
    lock_rows,
    post_token_transaction,
    run_ledger_operation,
    validate_token_amount,
)
from notifications.services import EVENT_REQUEST_REVIEWED, emit_notification
from projects.models import Project

logger = logging.getLogger(__name__)

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"
DECISIONS = (DECISION_APPROVE, DECISION_REJECT)


def _request_metadata(request) -> dict:
    if request is None:
        return {}
    return {
        "ip_address": (request.META.get("REMOTE_ADDR") or "").strip(),
        "user_agent": (request.META.get("HTTP_USER_AGENT") or "")[:255],
    }


def _positive_decimal(value, *, field_name: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise LedgerValidationError(f"{field_name} must be a number.", field=field_name) from None
    if not amount.is_finite() or amount <= 0:
        raise LedgerValidationError(f"{field_name} must be greater than zero.", field=field_name)
    return amount.quantize(Decimal("0.01"))


def _audit_submission(obj: ReviewableRequest, *, actor, event_type: str, request=None, data: dict) -> None:
    append_audit_entry(
        city=obj.city,
        actor=actor,
        action=AuditEntry.ACTION_CREATE,
        event_type=event_type,
        resource_label=obj._meta.label,
        resource_pk=str(obj.pk),
        request=request,
        data_after=data,
    )


def submit_token_claim(
    *,
    actor,
    payment_type: str,
    payment_amount,
    payment_date,
    payment_currency: str = "ARS",
    payment_reference: str = "",
    proof_documents=None,
    request=None,
) -> TokenClaim:
    """Register a municipal payment for which the citizen claims tokens.

    The token count is always derived from the payment and the configured rate.
    """

    require_approved_citizen(actor)
    if payment_type not in dict(TokenClaim.PAYMENT_TYPE_CHOICES):
        raise LedgerValidationError(f"Unknown payment_type: {payment_type}.", field="payment_type")
    amount = _positive_decimal(payment_amount, field_name="payment_amount")
    if payment_date is None:
        raise LedgerValidationError("payment_date is required.", field="payment_date")
    if payment_date > timezone.localdate():
        raise LedgerValidationError("payment_date cannot be in the future.", field="payment_date")
    documents = validate_documents(proof_documents, required=True)

    rate = default_token_rate()
    if calculate_claim_tokens(amount, rate) < 1:
        raise LedgerValidationError(
            f"Payments below {rate} {payment_currency} do not earn tokens.",
            field="payment_amount",
        )

    claim = TokenClaim(
        city=actor.city,
        citizen=actor,
        payment_type=payment_type,
        payment_amount=amount,
        payment_currency=(payment_currency or "ARS").upper()[:3],
        payment_date=payment_date,
        payment_reference=(payment_reference or "")[:120],
        token_rate=rate,
        proof_documents=documents,
        metadata=_request_metadata(request),
    )
    claim.save()
    _audit_submission(
        claim,
        actor=actor,
        event_type="token_claim.submitted",
        request=request,
        data={"payment_amount": claim.payment_amount, "calculated_tokens": claim.calculated_tokens},
    )
    logger.info(
        "token_claim.submitted claim_id=%s citizen_id=%s calculated_tokens=%s",
        claim.id,
        actor.id,
        claim.calculated_tokens,
    )
    return claim


def submit_token_request(
    *,
    actor,
    token_amount,
    request_reason: str = "",
    proof_documents=None,
    request=None,
) -> TokenRequest:
    require_approved_citizen(actor)
    amount = validate_token_amount(token_amount, field_name="token_amount")
    documents = validate_documents(proof_documents, required=True)

    token_request = TokenRequest(
        city=actor.city,
        citizen=actor,
        token_amount=amount,
        request_reason=(request_reason or "")[:1000],
        proof_documents=documents,
        metadata=_request_metadata(request),
    )
    token_request.save()
    _audit_submission(
        token_request,
        actor=actor,
        event_type="token_request.submitted",
        request=request,
        data={"token_amount": amount},
    )
    return token_request


def submit_fund_request(
    *,
    actor,
    project_id,
    token_amount,
    requested_fiat_amount,
    bank_details,
    fiat_currency: str = "ARS",
    bank_transfer_proof=None,
    request=None,
) -> FundRequest:
    require_user_type(actor, User.TYPE_SOCIAL_PROJECT)
    amount = validate_token_amount(token_amount, field_name="token_amount")
    fiat_amount = _positive_decimal(requested_fiat_amount, field_name="requested_fiat_amount")
    currency = validate_currency(fiat_currency)
    details = validate_bank_details(bank_details, required=FUND_REQUEST_REQUIRED_FIELDS)
    proof = validate_documents(bank_transfer_proof, field_name="bank_transfer_proof")

    project = (
        Project.all_objects.for_actor(actor)
        .select_related("registration")
        .filter(pk=project_id, registration__owner=actor)
        .first()
    )
    if project is None:
        raise LedgerNotFound("Project not found.", code="PROJECT_NOT_FOUND", project_id=project_id)
    if actor.available_tokens < amount:
        raise InsufficientBalance(
            f"Insufficient balance: {actor.available_tokens} tokens available, {amount} requested.",
            available=actor.available_tokens,
            requested=amount,
        )

    fund_request = FundRequest(
        city=actor.city,
        project_owner=actor,
        project=project,
        token_amount=amount,
        requested_fiat_amount=fiat_amount,
        fiat_currency=currency,
        bank_details=details,
        bank_transfer_proof=proof,
        metadata=_request_metadata(request),
    )
    fund_request.save()
    _audit_submission(
        fund_request,
        actor=actor,
        event_type="fund_request.submitted",
        request=request,
        data={"project_id": project.id, "token_amount": amount, "fiat_currency": currency},
    )
    return fund_request


def _lock_open_request(model, request_id, *, actor) -> ReviewableRequest:
    obj = lock_rows(model.all_objects.for_actor(actor).filter(pk=request_id)).first()
    if obj is None:
        raise LedgerNotFound(f"{model._meta.verbose_name} not found.", request_id=request_id)
    if not obj.is_open:
        raise AlreadyReviewed(
            f"{model._meta.verbose_name} was already {obj.status}.",
            current_status=obj.status,
        )
    return obj


def start_review(*, actor, request_obj: ReviewableRequest, request=None) -> ReviewableRequest:
    require_approved_government(actor)
    model = type(request_obj)

    def attempt() -> ReviewableRequest:
        obj = _lock_open_request(model, request_obj.pk, actor=actor)
        if obj.status != ReviewableRequest.STATUS_PENDING:
            raise InvalidTransition(f"{model._meta.verbose_name} is already under review.")
        obj.status = ReviewableRequest.STATUS_UNDER_REVIEW
        obj.reviewed_by = actor
        obj.save(update_fields=["status", "reviewed_by", "updated_at"])
        append_audit_entry(
            city=obj.city,
            actor=actor,
            action=AuditEntry.ACTION_TRANSITION,
            event_type=f"{model._meta.model_name}.review_started",
            resource_label=model._meta.label,
            resource_pk=str(obj.pk),
            request=request,
            data_before={"status": ReviewableRequest.STATUS_PENDING},
            data_after={"status": obj.status},
        )
        return obj

    return run_ledger_operation(f"{model._meta.model_name}.start_review", attempt)


def _review(
    *,
    actor,
    model,
    request_id,
    decision: str,
    submitter_field: str,
    approve,
    notes: str = "",
    reason: str = "",
    request=None,
) -> ReviewableRequest:
    """Decide a request once; on approval `approve(obj)` writes its single ledger entry.

    Everything happens in one transaction, so a failed ledger mutation (e.g. the
    daily cap) leaves the request undecided.
    """

    require_approved_government(actor)
    decision = (decision or "").strip().lower()
    if decision not in DECISIONS:
        raise LedgerValidationError("decision must be 'approve' or 'reject'.", field="decision")
    reason = (reason or "").strip()
    if decision == DECISION_REJECT and not reason:
        raise LedgerValidationError("A rejection reason is required.", field="reason")

    def attempt() -> ReviewableRequest:
        obj = _lock_open_request(model, request_id, actor=actor)
        before = {"status": obj.status}
        if decision == DECISION_APPROVE:
            entry = approve(obj)
            obj.token_transaction = entry
            obj.status = ReviewableRequest.STATUS_APPROVED
            audit_token_transaction(
                entry,
                actor=actor,
                event_type=f"{model._meta.model_name}.approved",
                request=request,
                metadata={"request_id": obj.pk},
            )
        else:
            obj.status = ReviewableRequest.STATUS_REJECTED
            obj.rejection_reason = reason[:500]
        obj.reviewed_by = actor
        obj.reviewed_at = timezone.now()
        obj.review_notes = (notes or "")[:1000]
        obj.save()

        append_audit_entry(
            city=obj.city,
            actor=actor,
            action=AuditEntry.ACTION_TRANSITION,
            event_type=f"{model._meta.model_name}.reviewed",
            resource_label=model._meta.label,
            resource_pk=str(obj.pk),
            request=request,
            data_before=before,
            data_after={
                "status": obj.status,
                "token_transaction": getattr(obj.token_transaction, "transaction_id", None),
                "rejection_reason": obj.rejection_reason,
            },
        )
        verbose_name = model._meta.verbose_name
        emit_notification(
            recipient=getattr(obj, submitter_field),
            event_type=EVENT_REQUEST_REVIEWED,
            subject=f"Your {verbose_name.lower()} was {obj.status}",
            body=(
                f"Your {verbose_name.lower()} #{obj.pk} was {obj.status}."
                + (f" Reason: {obj.rejection_reason}" if obj.rejection_reason else "")
            ),
            payload={"model": model._meta.label, "id": obj.pk, "status": obj.status},
            city=obj.city,
        )
        return obj

    obj = run_ledger_operation(f"{model._meta.model_name}.review", attempt)
    logger.info(
        "request.reviewed model=%s request_id=%s status=%s reviewer_id=%s",
        model._meta.label,
        obj.pk,
        obj.status,
        actor.id,
    )
    return obj


def review_token_claim(*, actor, claim_id, decision: str, notes: str = "", reason: str = "", request=None) -> TokenClaim:
    def approve(claim: TokenClaim) -> TokenTransaction:
        entry = apply_issuance(
            actor=actor,
            recipient_id=claim.citizen_id,
            amount=validate_token_amount(claim.calculated_tokens, field_name="calculated_tokens"),
            category=TokenTransaction.CATEGORY_CONTRIBUTION,
            description=f"Token claim #{claim.pk} ({claim.get_payment_type_display()})",
            metadata={"token_claim_id": claim.pk},
        )
        notify_issuance(entry)
        return entry

    return _review(
        actor=actor,
        model=TokenClaim,
        request_id=claim_id,
        decision=decision,
        submitter_field="citizen",
        approve=approve,
        notes=notes,
        reason=reason,
        request=request,
    )


def review_token_request(
    *,
    actor,
    token_request_id,
    decision: str,
    issue_amount=None,
    notes: str = "",
    reason: str = "",
    request=None,
) -> TokenRequest:
    if issue_amount not in (None, ""):
        issue_amount = validate_token_amount(issue_amount, field_name="issue_amount")
    else:
        issue_amount = None

    def approve(token_request: TokenRequest) -> TokenTransaction:
        amount = issue_amount or token_request.token_amount
        token_request.issue_amount = amount
        entry = apply_issuance(
            actor=actor,
            recipient_id=token_request.citizen_id,
            amount=amount,
            description=f"Token request #{token_request.pk}",
            metadata={"token_request_id": token_request.pk},
        )
        notify_issuance(entry)
        return entry

    return _review(
        actor=actor,
        model=TokenRequest,
        request_id=token_request_id,
        decision=decision,
        submitter_field="citizen",
        approve=approve,
        notes=notes,
        reason=reason,
        request=request,
    )


def review_fund_request(
    *,
    actor,
    fund_request_id,
    decision: str,
    notes: str = "",
    reason: str = "",
    request=None,
) -> FundRequest:
    def approve(fund_request: FundRequest) -> TokenTransaction:
        owner = lock_rows(User.objects.filter(pk=fund_request.project_owner_id)).get()
        if owner.available_tokens < fund_request.token_amount:
            raise InsufficientBalance(
                f"Project owner holds {owner.available_tokens} available tokens; "
                f"{fund_request.token_amount} required.",
                available=owner.available_tokens,
                requested=fund_request.token_amount,
            )
        return post_token_transaction(
            city=fund_request.city,
            transaction_type=TokenTransaction.TYPE_TRANSFER,
            direction=TokenTransaction.DIRECTION_DEBIT,
            amount=fund_request.token_amount,
            from_user=owner,
            to_user=owner,
            category=TokenTransaction.CATEGORY_CONVERSION,
            description=f"Fund request #{fund_request.pk}",
            related_project=fund_request.project,
            approved_by=actor,
            metadata={
                "fund_request_id": fund_request.pk,
                "fiat_amount": str(fund_request.requested_fiat_amount),
                "fiat_currency": fund_request.fiat_currency,
            },
        )

    return _review(
        actor=actor,
        model=FundRequest,
        request_id=fund_request_id,
        decision=decision,
        submitter_field="project_owner",
        approve=approve,
        notes=notes,
        reason=reason,
        request=request,
    )
