"""Token-to-fiat conversion lifecycle.

Statuses move only along `_ALLOWED_TRANSITIONS`. With CONVERSION_ESCROW_ENABLED the
requested tokens are reserved at request time and released on reject/cancel;
otherwise the balance is re-checked when the payout is recorded.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from uuid import uuid4

from django.conf import settings
from django.utils import timezone

from accounts.models import User
from audit.models import AuditEntry
from audit.services import append_audit_entry
from conversion.bank_details import validate_bank_details, validate_currency
from conversion.models import TokenToFiatConversion
from ledger import idempotency
from ledger.exceptions import (
    InsufficientBalance,
    InsufficientTokensAtPayout,
    InvalidTransition,
    LedgerNotFound,
    LedgerUnauthorized,
    LedgerValidationError,
)
from ledger.guards import require_approved_government, require_authenticated, require_user_type
from ledger.models import TokenTransaction
from ledger.services import (
    audit_token_transaction,
    lock_rows,
    post_token_transaction,
    release_tokens,
    reserve_tokens,
    run_ledger_operation,
    validate_token_amount,
)
from notifications import services as notifications
from projects.models import Project
from tenancy.logging import mask_bank_details

logger = logging.getLogger(__name__)

MARK_PAID_OPERATION = "conversion.mark_paid"

_ALLOWED_TRANSITIONS = {
    TokenToFiatConversion.STATUS_PENDING: frozenset(
        {TokenToFiatConversion.STATUS_APPROVED, TokenToFiatConversion.STATUS_REJECTED}
    ),
    TokenToFiatConversion.STATUS_APPROVED: frozenset(
        {
            TokenToFiatConversion.STATUS_PAID,
            TokenToFiatConversion.STATUS_REJECTED,
            TokenToFiatConversion.STATUS_CANCELLED,
        }
    ),
    TokenToFiatConversion.STATUS_PAID: frozenset(),
    TokenToFiatConversion.STATUS_REJECTED: frozenset(),
    TokenToFiatConversion.STATUS_CANCELLED: frozenset(),
}


def escrow_enabled() -> bool:
    return bool(getattr(settings, "CONVERSION_ESCROW_ENABLED", False))


def can_transition(current: str, target: str) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(current, frozenset())


def _require_transition(conversion: TokenToFiatConversion, target: str) -> None:
    if not can_transition(conversion.status, target):
        raise InvalidTransition(
            f"Cannot move conversion {conversion.request_id} from {conversion.status} to {target}.",
            current_status=conversion.status,
            requested_status=target,
        )


def new_request_id() -> str:
    return f"CONV-{uuid4().hex.upper()}"


def _conversion_snapshot(conversion: TokenToFiatConversion) -> dict:
    return {
        "request_id": conversion.request_id,
        "status": conversion.status,
        "token_amount": conversion.token_amount,
        "fiat_amount": conversion.fiat_amount,
        "fiat_currency": conversion.fiat_currency,
        "tokens_reserved": conversion.tokens_reserved,
        "bank_details": mask_bank_details(conversion.bank_details),
    }


def _lock_conversion(request_id, *, actor) -> TokenToFiatConversion:
    conversion = (
        lock_rows(TokenToFiatConversion.all_objects.for_actor(actor).filter(request_id=request_id))
        .select_related("project", "project_owner", "city")
        .first()
    )
    if conversion is None:
        raise LedgerNotFound("Conversion request not found.", request_id=request_id)
    return conversion


def _audit_transition(conversion, *, actor, before: dict, event_type: str, request=None) -> None:
    append_audit_entry(
        city=conversion.city,
        actor=actor,
        action=AuditEntry.ACTION_TRANSITION,
        event_type=event_type,
        resource_label="conversion.TokenToFiatConversion",
        resource_pk=conversion.request_id,
        request=request,
        data_before=before,
        data_after=_conversion_snapshot(conversion),
    )


def _notify_owner(conversion, *, event_type: str, subject: str, body: str) -> None:
    notifications.emit_notification(
        recipient=conversion.project_owner,
        event_type=event_type,
        subject=subject,
        body=body,
        payload={"request_id": conversion.request_id, "status": conversion.status},
        city=conversion.city,
    )


def _release_escrow(conversion: TokenToFiatConversion) -> None:
    if conversion.tokens_reserved:
        release_tokens(conversion.project_owner_id, conversion.token_amount)
        conversion.tokens_reserved = False


def request_conversion(
    *,
    actor,
    project_id,
    token_amount,
    bank_details,
    fiat_currency: str = "USD",
    conversion_rate=1,
    request=None,
) -> TokenToFiatConversion:
    require_user_type(actor, User.TYPE_SOCIAL_PROJECT)
    amount = validate_token_amount(token_amount, field_name="token_amount")
    try:
        rate = Decimal(str(conversion_rate))
    except (InvalidOperation, TypeError, ValueError):
        raise LedgerValidationError("conversion_rate must be a number.", field="conversion_rate") from None
    if not rate.is_finite() or rate < Decimal("0.01"):
        raise LedgerValidationError("conversion_rate must be at least 0.01.", field="conversion_rate")
    currency = validate_currency(fiat_currency)
    details = validate_bank_details(bank_details)

    def attempt() -> TokenToFiatConversion:
        project = Project.all_objects.for_actor(actor).filter(pk=project_id, registration__owner=actor).first()
        if project is None:
            raise LedgerNotFound("Project not found.", code="PROJECT_NOT_FOUND", project_id=project_id)

        owner = lock_rows(User.objects.filter(pk=actor.id)).get()
        if owner.available_tokens < amount:
            raise InsufficientBalance(
                f"Insufficient balance: {owner.available_tokens} tokens available, {amount} requested.",
                available=owner.available_tokens,
                requested=amount,
            )

        reserved = escrow_enabled()
        if reserved:
            reserve_tokens(owner.id, amount)

        conversion = TokenToFiatConversion(
            city=project.city,
            request_id=new_request_id(),
            project_owner=owner,
            project=project,
            token_amount=amount,
            conversion_rate=rate,
            fiat_currency=currency,
            bank_details=details,
            tokens_reserved=reserved,
        )
        conversion.save()
        append_audit_entry(
            city=conversion.city,
            actor=actor,
            action=AuditEntry.ACTION_CREATE,
            event_type="conversion.requested",
            resource_label="conversion.TokenToFiatConversion",
            resource_pk=conversion.request_id,
            request=request,
            data_after=_conversion_snapshot(conversion),
        )
        _notify_owner(
            conversion,
            event_type=notifications.EVENT_CONVERSION_REQUESTED,
            subject=f"Conversion {conversion.request_id} submitted",
            body=(
                f"Your request to convert {amount} tokens into {conversion.fiat_amount} {currency} "
                "is waiting for government approval."
            ),
        )
        return conversion

    conversion = run_ledger_operation("conversion.request", attempt)
    logger.info(
        "conversion.requested request_id=%s owner_id=%s token_amount=%s escrow=%s",
        conversion.request_id,
        actor.id,
        amount,
        conversion.tokens_reserved,
    )
    return conversion


def approve_conversion(*, actor, request_id, notes: str = "", request=None) -> TokenToFiatConversion:
    require_approved_government(actor)

    def attempt() -> TokenToFiatConversion:
        conversion = _lock_conversion(request_id, actor=actor)
        _require_transition(conversion, TokenToFiatConversion.STATUS_APPROVED)
        before = _conversion_snapshot(conversion)
        conversion.status = TokenToFiatConversion.STATUS_APPROVED
        conversion.government_user = actor
        conversion.approved_at = timezone.now()
        conversion.internal_notes = (notes or "")[:500]
        conversion.save()
        _audit_transition(conversion, actor=actor, before=before, event_type="conversion.approved", request=request)
        _notify_owner(
            conversion,
            event_type=notifications.EVENT_CONVERSION_APPROVED,
            subject=f"Conversion {conversion.request_id} approved",
            body=f"Your conversion of {conversion.token_amount} tokens was approved and awaits payment.",
        )
        return conversion

    return run_ledger_operation("conversion.approve", attempt)


def reject_conversion(*, actor, request_id, reason: str, request=None) -> TokenToFiatConversion:
    require_approved_government(actor)
    reason = (reason or "").strip()
    if not reason:
        raise LedgerValidationError("A rejection reason is required.", field="reason")

    def attempt() -> TokenToFiatConversion:
        conversion = _lock_conversion(request_id, actor=actor)
        _require_transition(conversion, TokenToFiatConversion.STATUS_REJECTED)
        before = _conversion_snapshot(conversion)
        _release_escrow(conversion)
        conversion.status = TokenToFiatConversion.STATUS_REJECTED
        conversion.rejection_reason = reason[:500]
        conversion.rejected_at = timezone.now()
        conversion.rejected_by = actor
        conversion.save()
        _audit_transition(conversion, actor=actor, before=before, event_type="conversion.rejected", request=request)
        _notify_owner(
            conversion,
            event_type=notifications.EVENT_CONVERSION_REJECTED,
            subject=f"Conversion {conversion.request_id} rejected",
            body=f"Your conversion request was rejected: {conversion.rejection_reason}",
        )
        return conversion

    return run_ledger_operation("conversion.reject", attempt)


def cancel_conversion(*, actor, request_id, request=None) -> TokenToFiatConversion:
    require_authenticated(actor)

    def attempt() -> TokenToFiatConversion:
        conversion = _lock_conversion(request_id, actor=actor)
        is_owner = conversion.project_owner_id == actor.id
        if not is_owner and not actor.is_approved_government:
            raise LedgerUnauthorized("Only the project owner or an approved government can cancel.")
        _require_transition(conversion, TokenToFiatConversion.STATUS_CANCELLED)
        before = _conversion_snapshot(conversion)
        _release_escrow(conversion)
        conversion.status = TokenToFiatConversion.STATUS_CANCELLED
        conversion.cancelled_at = timezone.now()
        conversion.save()
        _audit_transition(conversion, actor=actor, before=before, event_type="conversion.cancelled", request=request)
        _notify_owner(
            conversion,
            event_type=notifications.EVENT_CONVERSION_CANCELLED,
            subject=f"Conversion {conversion.request_id} cancelled",
            body="The conversion request was cancelled; no tokens were debited.",
        )
        return conversion

    return run_ledger_operation("conversion.cancel", attempt)


def mark_conversion_paid(
    *,
    actor,
    request_id,
    transaction_id: str,
    payment_method: str = "bank_transfer",
    payment_notes: str = "",
    bank_transfer_details=None,
    request=None,
    idempotency_key: str | None = None,
) -> TokenToFiatConversion:
    """Record the fiat payout and debit the owner's tokens in the same transaction.

    If the owner no longer holds enough tokens the request stays approved and
    `InsufficientTokensAtPayout` is raised.
    """

    require_approved_government(actor)
    payment_reference = (transaction_id or "").strip()
    if not payment_reference:
        raise LedgerValidationError("transaction_id (payment reference) is required.", field="transaction_id")
    if bank_transfer_details is not None and not isinstance(bank_transfer_details, dict):
        raise LedgerValidationError("bank_transfer_details must be an object.", field="bank_transfer_details")
    key = idempotency.normalize_key(idempotency_key)
    params = {"request_id": str(request_id), "transaction_id": payment_reference}

    def attempt() -> tuple[TokenToFiatConversion, bool]:
        replay = idempotency.find_replay(actor=actor, operation=MARK_PAID_OPERATION, key=key, payload=params)
        if replay is not None:
            return TokenToFiatConversion.all_objects.get(request_id=replay.resource_pk), True

        conversion = _lock_conversion(request_id, actor=actor)
        _require_transition(conversion, TokenToFiatConversion.STATUS_PAID)
        owner = lock_rows(User.objects.filter(pk=conversion.project_owner_id)).get()
        spendable = owner.token_balance if conversion.tokens_reserved else owner.available_tokens
        if spendable < conversion.token_amount:
            raise InsufficientTokensAtPayout(
                f"Project owner holds {spendable} tokens; {conversion.token_amount} are required for payout.",
                available=spendable,
                requested=conversion.token_amount,
                request_id=conversion.request_id,
            )

        before = _conversion_snapshot(conversion)
        entry = post_token_transaction(
            city=conversion.city,
            transaction_type=TokenTransaction.TYPE_SPEND,
            direction=TokenTransaction.DIRECTION_DEBIT,
            amount=conversion.token_amount,
            from_user=owner,
            to_user=owner,
            category=TokenTransaction.CATEGORY_CONVERSION,
            description=f"Conversion {conversion.request_id}",
            related_project=conversion.project,
            approved_by=actor,
            metadata={
                "conversion_request_id": conversion.request_id,
                "fiat_amount": conversion.fiat_amount,
                "fiat_currency": conversion.fiat_currency,
                "payment_reference": payment_reference,
            },
            release_reserved=conversion.token_amount if conversion.tokens_reserved else 0,
        )

        now = timezone.now()
        conversion.status = TokenToFiatConversion.STATUS_PAID
        conversion.tokens_reserved = False
        conversion.token_transaction = entry
        conversion.paid_at = now
        conversion.payment_details = {
            "transaction_id": payment_reference,
            "payment_method": payment_method or "bank_transfer",
            "payment_notes": (payment_notes or "")[:500],
            "bank_transfer_details": mask_bank_details(bank_transfer_details or {}),
            "paid_by": actor.id,
            "paid_at": now,
        }
        conversion.save()

        idempotency.remember(
            actor=actor,
            operation=MARK_PAID_OPERATION,
            key=key,
            payload=params,
            token_transaction=entry,
            resource_label="conversion.TokenToFiatConversion",
            resource_pk=conversion.request_id,
        )
        audit_token_transaction(entry, actor=actor, event_type="conversion.paid", request=request)
        _audit_transition(conversion, actor=actor, before=before, event_type="conversion.paid", request=request)
        _notify_owner(
            conversion,
            event_type=notifications.EVENT_CONVERSION_PAID,
            subject=f"Conversion {conversion.request_id} paid",
            body=(
                f"{conversion.fiat_amount} {conversion.fiat_currency} were sent for "
                f"{conversion.token_amount} tokens (reference {payment_reference})."
            ),
        )
        return conversion, False

    conversion, replayed = run_ledger_operation(MARK_PAID_OPERATION, attempt)
    if not replayed:
        logger.info(
            "conversion.paid request_id=%s owner_id=%s token_amount=%s transaction_id=%s",
            conversion.request_id,
            conversion.project_owner_id,
            conversion.token_amount,
            conversion.token_transaction.transaction_id,
        )
    return conversion
