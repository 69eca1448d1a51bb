from __future__ import annotations

import hashlib
import json

from ledger.exceptions import IdempotencyKeyReused, LedgerValidationError
from ledger.models import IdempotencyKey

MAX_KEY_LENGTH = 128


def normalize_key(raw_key) -> str | None:
    if raw_key is None:
        return None
    key = str(raw_key).strip()
    if not key:
        return None
    if len(key) > MAX_KEY_LENGTH:
        raise LedgerValidationError(
            f"Idempotency-Key must be at most {MAX_KEY_LENGTH} characters.",
            field="idempotency_key",
        )
    return key


def fingerprint(payload: dict) -> str:
    material = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def find_replay(*, actor, operation: str, key: str | None, payload: dict) -> IdempotencyKey | None:
    """Return the stored record for a retried call, or None for a first call.

    A key reused with a different payload is a client bug and is rejected.
    """

    if not key:
        return None
    record = (
        IdempotencyKey.objects.select_related("token_transaction")
        .filter(actor=actor, operation=operation, key=key)
        .first()
    )
    if record is None:
        return None
    if record.fingerprint != fingerprint(payload):
        raise IdempotencyKeyReused(
            "Idempotency-Key was already used with different parameters.",
            operation=operation,
        )
    return record


def remember(
    *,
    actor,
    operation: str,
    key: str | None,
    payload: dict,
    token_transaction=None,
    resource_label: str = "",
    resource_pk: str = "",
) -> IdempotencyKey | None:
    """Store the key in the caller's transaction; a concurrent duplicate raises IntegrityError."""

    if not key:
        return None
    return IdempotencyKey.objects.create(
        actor=actor,
        operation=operation,
        key=key,
        fingerprint=fingerprint(payload),
        token_transaction=token_transaction,
        resource_label=resource_label,
        resource_pk=str(resource_pk or ""),
    )
