from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, TypeVar
from uuid import uuid4

from django.conf import settings
from django.db import IntegrityError, connection, transaction
from django.db.models import BooleanField, Case, F, Sum, Value, When
from django.utils import timezone

from accounts.models import User
from audit.models import AuditEntry
from audit.services import append_audit_entry
from ledger.exceptions import ConcurrencyConflict, LedgerValidationError, StaleLedgerState
from ledger.models import TokenTransaction, balance_deltas

logger = logging.getLogger(__name__)

T = TypeVar("T")


def new_transaction_id(prefix: str = "TXN") -> str:
    return f"{prefix}-{uuid4().hex.upper()}"


def lock_rows(queryset):
    if connection.features.has_select_for_update:
        return queryset.select_for_update()
    return queryset


def max_retries() -> int:
    return max(int(getattr(settings, "LEDGER_MAX_RETRIES", 5)), 1)


def validate_token_amount(value, *, field_name: str = "amount") -> int:
    """Accept only positive integers; booleans and fractional values are rejected."""

    amount = None
    if isinstance(value, bool):
        pass
    elif isinstance(value, int):
        amount = value
    elif isinstance(value, (float, Decimal)):
        try:
            if value == int(value):
                amount = int(value)
        except (OverflowError, ValueError):
            amount = None
    elif isinstance(value, str) and value.strip().isdecimal():
        amount = int(value.strip())

    if amount is None:
        raise LedgerValidationError(
            f"{field_name} must be a whole number of tokens.",
            field=field_name,
        )
    if amount <= 0:
        raise LedgerValidationError(f"{field_name} must be greater than zero.", field=field_name)
    return amount


def run_ledger_operation(operation: str, attempt_fn: Callable[[], T]) -> T:
    """Run `attempt_fn` in its own transaction, retrying when it hits stale state.

    `attempt_fn` must re-read everything it validates against; a `StaleLedgerState`
    or `IntegrityError` rolls the whole attempt back before the next one starts.
    """

    attempts = max_retries()
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                return attempt_fn()
        except (StaleLedgerState, IntegrityError) as exc:
            last_error = exc
            logger.info(
                "ledger.operation.retry operation=%s attempt=%s reason=%s",
                operation,
                attempt,
                exc.__class__.__name__,
            )

    logger.warning(
        "ledger.operation.conflict operation=%s attempts=%s last_error=%s",
        operation,
        attempts,
        last_error,
    )
    raise ConcurrencyConflict(
        "The operation could not be completed because the same records kept changing. Retry later.",
        operation=operation,
    )


def _apply_delta(user_id: int, delta: int, *, release_reserved: int = 0) -> None:
    if delta >= 0:
        updated = User.objects.filter(pk=user_id).update(token_balance=F("token_balance") + delta)
        if updated != 1:
            raise StaleLedgerState(f"account {user_id} vanished")
        return

    amount = -delta
    # Compare-and-swap: the balance left after the debit must still cover what stays reserved.
    updated = (
        User.objects.filter(
            pk=user_id,
            reserved_tokens__gte=release_reserved,
            token_balance__gte=F("reserved_tokens") - release_reserved + amount,
        )
        .update(
            token_balance=F("token_balance") - amount,
            reserved_tokens=F("reserved_tokens") - release_reserved,
        )
    )
    if updated != 1:
        raise StaleLedgerState(f"account {user_id} cannot cover a debit of {amount}")


def post_token_transaction(
    *,
    city,
    transaction_type: str,
    direction: str,
    amount: int,
    to_user,
    from_user=None,
    token_type: str = TokenTransaction.TOKEN_CIVIC,
    category: str = TokenTransaction.CATEGORY_PARTICIPATION,
    description: str = "",
    related_project=None,
    issued_by=None,
    approved_by=None,
    metadata: dict | None = None,
    release_reserved: int = 0,
) -> TokenTransaction:
    """Write one completed entry and move the cached balances it implies.

    Must run inside the caller's transaction; a failed conditional debit raises
    `StaleLedgerState` and leaves the rollback to the caller.
    """

    amount = validate_token_amount(amount)
    now = timezone.now()
    deltas = balance_deltas(
        from_user_id=getattr(from_user, "id", None),
        to_user_id=to_user.id,
        direction=direction,
        amount=amount,
    )

    with transaction.atomic():
        # Fixed lock order (by account id) keeps concurrent movements deadlock-free.
        for user_id in sorted(deltas):
            _apply_delta(
                user_id,
                deltas[user_id],
                release_reserved=release_reserved if deltas[user_id] < 0 else 0,
            )

        entry = TokenTransaction(
            transaction_id=new_transaction_id(),
            city=city,
            transaction_type=transaction_type,
            direction=direction,
            from_user=from_user,
            to_user=to_user,
            amount=amount,
            token_type=token_type,
            category=category,
            description=(description or "")[:500],
            related_project=related_project,
            issued_by=issued_by,
            approved_by=approved_by,
            status=TokenTransaction.STATUS_COMPLETED,
            metadata=metadata or {},
            created_at=now,
            processed_at=now,
        )
        entry.save(force_insert=True)

    return entry


def reserve_tokens(user_id: int, amount: int) -> None:
    updated = User.objects.filter(
        pk=user_id,
        token_balance__gte=F("reserved_tokens") + amount,
    ).update(reserved_tokens=F("reserved_tokens") + amount)
    if updated != 1:
        raise StaleLedgerState(f"account {user_id} cannot reserve {amount}")


def release_tokens(user_id: int, amount: int) -> None:
    updated = User.objects.filter(pk=user_id, reserved_tokens__gte=amount).update(
        reserved_tokens=F("reserved_tokens") - amount
    )
    if updated != 1:
        raise StaleLedgerState(f"account {user_id} holds less than {amount} reserved")


def transaction_snapshot(entry: TokenTransaction) -> dict:
    return {
        "transaction_id": entry.transaction_id,
        "transaction_type": entry.transaction_type,
        "direction": entry.direction,
        "from_user_id": entry.from_user_id,
        "to_user_id": entry.to_user_id,
        "amount": entry.amount,
        "token_type": entry.token_type,
        "category": entry.category,
        "related_project_id": entry.related_project_id,
        "issued_by_id": entry.issued_by_id,
        "approved_by_id": entry.approved_by_id,
        "status": entry.status,
    }


def audit_token_transaction(
    entry: TokenTransaction,
    *,
    actor,
    event_type: str,
    request=None,
    metadata: dict | None = None,
) -> AuditEntry:
    return append_audit_entry(
        city=entry.city,
        actor=actor,
        action=AuditEntry.ACTION_TOKEN_MOVEMENT,
        event_type=event_type,
        resource_label="ledger.TokenTransaction",
        resource_pk=entry.transaction_id,
        request=request,
        data_after=transaction_snapshot(entry),
        metadata=metadata,
    )


def ledger_balances(*, user_ids=None) -> dict[int, int]:
    """Recompute balances from completed entries (the source of truth)."""

    entries = TokenTransaction.all_objects.filter(
        status=TokenTransaction.STATUS_COMPLETED
    ).annotate(
        self_referencing=Case(
            When(from_user=F("to_user"), then=Value(True)),
            default=Value(False),
            output_field=BooleanField(),
        )
    )
    two_sided = entries.filter(self_referencing=False)
    one_sided = entries.filter(self_referencing=True)

    credits = two_sided
    debits = two_sided.filter(from_user__isnull=False)
    if user_ids is not None:
        user_ids = list(user_ids)
        credits = credits.filter(to_user_id__in=user_ids)
        debits = debits.filter(from_user_id__in=user_ids)
        one_sided = one_sided.filter(to_user_id__in=user_ids)

    totals: dict[int, int] = defaultdict(int)
    for row in credits.order_by().values("to_user_id").annotate(total=Sum("amount")):
        totals[row["to_user_id"]] += row["total"] or 0
    for row in debits.order_by().values("from_user_id").annotate(total=Sum("amount")):
        totals[row["from_user_id"]] -= row["total"] or 0
    for row in one_sided.order_by().values("to_user_id", "direction").annotate(total=Sum("amount")):
        sign = 1 if row["direction"] == TokenTransaction.DIRECTION_CREDIT else -1
        totals[row["to_user_id"]] += sign * (row["total"] or 0)

    if user_ids is not None:
        for user_id in user_ids:
            totals.setdefault(user_id, 0)
    return dict(totals)


def ledger_balance(user) -> int:
    return ledger_balances(user_ids=[user.id]).get(user.id, 0)


@dataclass(frozen=True)
class BalanceDivergence:
    user_id: int
    username: str
    cached_balance: int
    ledger_balance: int

    @property
    def drift(self) -> int:
        return self.cached_balance - self.ledger_balance


@dataclass
class ReconciliationResult:
    scanned: int = 0
    repaired: int = 0
    divergences: list[BalanceDivergence] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.divergences


def reconcile_balances(*, city=None, apply_changes: bool = False, actor=None) -> ReconciliationResult:
    """Compare every cached `token_balance` with the ledger and optionally repair it."""

    users = User.objects.select_related("city").order_by("id")
    if city is not None:
        users = users.filter(city=city)

    result = ReconciliationResult()
    chunk: list[User] = []
    for user in users.iterator(chunk_size=500):
        chunk.append(user)
        if len(chunk) >= 500:
            _reconcile_chunk(chunk, result, apply_changes=apply_changes, actor=actor)
            chunk = []
    if chunk:
        _reconcile_chunk(chunk, result, apply_changes=apply_changes, actor=actor)

    logger.info(
        "ledger.reconcile.completed city_id=%s scanned=%s divergences=%s repaired=%s",
        getattr(city, "id", None),
        result.scanned,
        len(result.divergences),
        result.repaired,
    )
    return result


def _reconcile_chunk(users: list, result: ReconciliationResult, *, apply_changes: bool, actor) -> None:
    expected = ledger_balances(user_ids=[user.id for user in users])
    for user in users:
        result.scanned += 1
        ledger_value = expected.get(user.id, 0)
        if user.token_balance == ledger_value:
            continue

        divergence = BalanceDivergence(
            user_id=user.id,
            username=user.username,
            cached_balance=user.token_balance,
            ledger_balance=ledger_value,
        )
        result.divergences.append(divergence)
        logger.warning(
            "ledger.reconcile.divergence user_id=%s cached=%s ledger=%s drift=%s",
            divergence.user_id,
            divergence.cached_balance,
            divergence.ledger_balance,
            divergence.drift,
        )

        if not apply_changes or ledger_value < 0:
            continue

        with transaction.atomic():
            updated = User.objects.filter(pk=user.id, token_balance=user.token_balance).update(
                token_balance=ledger_value
            )
            if updated:
                append_audit_entry(
                    city=user.city,
                    actor=actor,
                    action=AuditEntry.ACTION_SYSTEM,
                    event_type="ledger.balance.repaired",
                    resource_label="accounts.User",
                    resource_pk=str(user.id),
                    data_before={"token_balance": divergence.cached_balance},
                    data_after={"token_balance": ledger_value},
                )
        result.repaired += updated
