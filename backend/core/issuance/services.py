from __future__ import annotations

import logging
from datetime import datetime, timedelta

from django.db.models import Sum
from django.utils import timezone

from accounts.models import GovernmentProfile, User
from ledger import idempotency
from ledger.exceptions import (
    InsufficientBalance,
    InvalidRecipient,
    LedgerUnauthorized,
    LedgerValidationError,
    LimitExceeded,
)
from ledger.guards import require_approved_government
from ledger.models import TokenTransaction
from ledger.services import (
    audit_token_transaction,
    lock_rows,
    post_token_transaction,
    run_ledger_operation,
    validate_token_amount,
)
from notifications.services import EVENT_TOKENS_ISSUED, EVENT_TOKENS_TRANSFERRED, emit_notification

logger = logging.getLogger(__name__)

ISSUE_OPERATION = "tokens.issue"
TRANSFER_OPERATION = "tokens.transfer"


def issuance_day_window(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Local calendar day (TIME_ZONE) containing `now`, as aware datetimes."""

    local_now = timezone.localtime(now or timezone.now())
    start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def issued_today(government, *, now: datetime | None = None) -> int:
    start, end = issuance_day_window(now)
    total = TokenTransaction.all_objects.filter(
        issued_by=government,
        transaction_type=TokenTransaction.TYPE_ISSUE,
        status=TokenTransaction.STATUS_COMPLETED,
        created_at__gte=start,
        created_at__lt=end,
    ).aggregate(total=Sum("amount"))["total"]
    return int(total or 0)


def remaining_daily_issuance(government, *, now: datetime | None = None) -> int:
    profile = GovernmentProfile.objects.filter(user=government).first()
    if profile is None:
        return 0
    return max(int(profile.daily_issuance_limit) - issued_today(government, now=now), 0)


def _validate_choice(value: str, choices, field_name: str) -> str:
    if value not in dict(choices):
        raise LedgerValidationError(f"Unknown {field_name}: {value}.", field=field_name)
    return value


def _load_recipient(recipient_id, *, actor) -> User:
    recipient = lock_rows(User.objects.filter(pk=recipient_id)).first()
    if recipient is None or not recipient.is_active:
        raise InvalidRecipient("Recipient not found.", recipient_id=recipient_id)
    if not recipient.is_citizen:
        raise InvalidRecipient("Tokens can only be issued to citizens.", recipient_id=recipient_id)
    if not recipient.is_approved:
        raise InvalidRecipient("Recipient account is pending approval.", recipient_id=recipient_id)
    if recipient.city_id != actor.city_id:
        raise InvalidRecipient("Recipient belongs to a different city.", recipient_id=recipient_id)
    return recipient


def apply_issuance(
    *,
    actor,
    recipient_id,
    amount: int,
    token_type: str = TokenTransaction.TOKEN_CIVIC,
    category: str = TokenTransaction.CATEGORY_PARTICIPATION,
    description: str = "",
    metadata: dict | None = None,
) -> TokenTransaction:
    """Check the daily cap and credit the recipient inside the caller's transaction.

    The government profile row is locked before today's total is read, so two
    issuances by the same government never both pass the cap check.
    """

    recipient = _load_recipient(recipient_id, actor=actor)
    profile = lock_rows(GovernmentProfile.objects.filter(user_id=actor.id)).first()
    if profile is None or profile.status != GovernmentProfile.STATUS_APPROVED:
        raise LedgerUnauthorized("Government account is not approved.")

    already_issued = issued_today(actor)
    daily_limit = int(profile.daily_issuance_limit)
    if already_issued + amount > daily_limit:
        remaining = max(daily_limit - already_issued, 0)
        raise LimitExceeded(
            f"Daily issuance limit of {daily_limit} tokens would be exceeded; {remaining} remaining today.",
            daily_limit=daily_limit,
            issued_today=already_issued,
            remaining=remaining,
        )

    return post_token_transaction(
        city=actor.city,
        transaction_type=TokenTransaction.TYPE_ISSUE,
        direction=TokenTransaction.DIRECTION_CREDIT,
        amount=amount,
        to_user=recipient,
        token_type=token_type,
        category=category,
        description=description or f"Issued by {actor.get_username()}",
        issued_by=actor,
        approved_by=actor,
        metadata=metadata,
    )


def notify_issuance(entry: TokenTransaction) -> None:
    emit_notification(
        recipient=entry.to_user,
        event_type=EVENT_TOKENS_ISSUED,
        subject=f"You received {entry.amount} civic tokens",
        body=f"{entry.amount} tokens were credited to your wallet ({entry.description}).",
        payload={"transaction_id": entry.transaction_id, "amount": entry.amount},
        city=entry.city,
    )


def issue_tokens(
    *,
    actor,
    recipient_id,
    amount,
    token_type: str = TokenTransaction.TOKEN_CIVIC,
    category: str = TokenTransaction.CATEGORY_PARTICIPATION,
    description: str = "",
    request=None,
    idempotency_key: str | None = None,
) -> TokenTransaction:
    amount = validate_token_amount(amount)
    _validate_choice(token_type, TokenTransaction.TOKEN_TYPE_CHOICES, "token_type")
    _validate_choice(category, TokenTransaction.CATEGORY_CHOICES, "category")
    require_approved_government(actor)
    key = idempotency.normalize_key(idempotency_key)
    params = {
        "recipient_id": str(recipient_id),
        "amount": amount,
        "token_type": token_type,
        "category": category,
    }

    def attempt() -> tuple[TokenTransaction, bool]:
        replay = idempotency.find_replay(actor=actor, operation=ISSUE_OPERATION, key=key, payload=params)
        if replay is not None:
            return replay.token_transaction, True

        entry = apply_issuance(
            actor=actor,
            recipient_id=recipient_id,
            amount=amount,
            token_type=token_type,
            category=category,
            description=description,
        )
        idempotency.remember(
            actor=actor,
            operation=ISSUE_OPERATION,
            key=key,
            payload=params,
            token_transaction=entry,
        )
        audit_token_transaction(entry, actor=actor, event_type="tokens.issued", request=request)
        notify_issuance(entry)
        return entry, False

    entry, replayed = run_ledger_operation(ISSUE_OPERATION, attempt)
    if not replayed:
        logger.info(
            "tokens.issued transaction_id=%s government_id=%s recipient_id=%s amount=%s",
            entry.transaction_id,
            actor.id,
            entry.to_user_id,
            entry.amount,
        )
    return entry


def transfer_tokens(
    *,
    actor,
    from_user_id,
    to_user_id,
    amount,
    description: str = "",
    request=None,
    idempotency_key: str | None = None,
) -> TokenTransaction:
    """Government-authorized move of tokens between two citizens of its city."""

    amount = validate_token_amount(amount)
    require_approved_government(actor)
    try:
        from_user_id, to_user_id = int(from_user_id), int(to_user_id)
    except (TypeError, ValueError):
        raise LedgerValidationError("from_user_id and to_user_id must be account ids.") from None
    if from_user_id == to_user_id:
        raise InvalidRecipient("Sender and recipient must be different citizens.")
    key = idempotency.normalize_key(idempotency_key)
    params = {"from_user_id": from_user_id, "to_user_id": to_user_id, "amount": amount}

    def attempt() -> tuple[TokenTransaction, bool]:
        replay = idempotency.find_replay(actor=actor, operation=TRANSFER_OPERATION, key=key, payload=params)
        if replay is not None:
            return replay.token_transaction, True

        # Lock both accounts in id order.
        accounts = {user_id: _load_recipient(user_id, actor=actor) for user_id in sorted((from_user_id, to_user_id))}
        sender = accounts[from_user_id]
        recipient = accounts[to_user_id]
        if sender.available_tokens < amount:
            raise InsufficientBalance(
                f"Insufficient balance: {sender.available_tokens} tokens available, {amount} requested.",
                available=sender.available_tokens,
                requested=amount,
            )

        entry = post_token_transaction(
            city=actor.city,
            transaction_type=TokenTransaction.TYPE_TRANSFER,
            direction=TokenTransaction.DIRECTION_DEBIT,
            amount=amount,
            from_user=sender,
            to_user=recipient,
            description=description or "Citizen transfer",
            approved_by=actor,
        )
        idempotency.remember(
            actor=actor,
            operation=TRANSFER_OPERATION,
            key=key,
            payload=params,
            token_transaction=entry,
        )
        audit_token_transaction(entry, actor=actor, event_type="tokens.transferred", request=request)
        for party, verb in ((sender, "sent"), (recipient, "received")):
            emit_notification(
                recipient=party,
                event_type=EVENT_TOKENS_TRANSFERRED,
                subject=f"You {verb} {amount} civic tokens",
                body=f"A transfer of {amount} tokens was recorded ({entry.transaction_id}).",
                payload={"transaction_id": entry.transaction_id, "amount": amount},
                city=entry.city,
            )
        return entry, False

    entry, replayed = run_ledger_operation(TRANSFER_OPERATION, attempt)
    if not replayed:
        logger.info(
            "tokens.transferred transaction_id=%s government_id=%s from_user_id=%s to_user_id=%s amount=%s",
            entry.transaction_id,
            actor.id,
            entry.from_user_id,
            entry.to_user_id,
            amount,
        )
    return entry
