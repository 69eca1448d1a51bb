from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from uuid import uuid4

from django.core.serializers.json import DjangoJSONEncoder
from django.db import IntegrityError, transaction
from django.utils import timezone

from audit.models import AuditEntry

logger = logging.getLogger(__name__)

_MAX_APPEND_ATTEMPTS = 5


def _canonical_json(value) -> str:
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        default=str,
    )


def _json_safe(value):
    """Round-trip through the column encoder so hashing sees what the DB stores."""

    if value is None:
        return None
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


def _extract_ip(request) -> str:
    if request is None:
        return ""
    # If behind a LB, X-Forwarded-For might contain a chain. We only keep the left-most.
    forwarded_for = (request.META.get("HTTP_X_FORWARDED_FOR") or "").strip()
    if forwarded_for:
        return forwarded_for.split(",", 1)[0].strip()
    return (request.META.get("REMOTE_ADDR") or "").strip()


def _entry_payload(entry: AuditEntry) -> dict:
    return {
        "chain_id": entry.chain_id,
        "scope": entry.scope,
        "city_id": entry.city_id,
        "actor_username": entry.actor_username,
        "actor_type": entry.actor_type,
        "action": entry.action,
        "event_type": entry.event_type,
        "resource_label": entry.resource_label,
        "resource_pk": entry.resource_pk,
        "occurred_at": entry.occurred_at.isoformat(),
        "request_id": entry.request_id,
        "request_method": entry.request_method,
        "request_path": entry.request_path,
        "ip_address": entry.ip_address or "",
        "user_agent": entry.user_agent,
        "data_before": entry.data_before,
        "data_after": entry.data_after,
        "metadata": entry.metadata,
    }


def _build_entry_hash(payload: dict, prev_hash: str) -> str:
    material = f"{prev_hash}{_canonical_json(payload)}".encode("utf-8")
    return hashlib.sha256(material).hexdigest()


def append_audit_entry(
    *,
    city,
    actor,
    action: str,
    resource_label: str,
    resource_pk: str,
    request=None,
    event_type: str = "",
    data_before: dict | None = None,
    data_after: dict | None = None,
    metadata: dict | None = None,
) -> AuditEntry:
    """Append a new immutable audit entry to the city chain (or the platform chain).

    Retries on concurrent writers so the chain stays linear.
    """

    scope = AuditEntry.SCOPE_CITY if city is not None else AuditEntry.SCOPE_PLATFORM
    city_id = getattr(city, "id", None)
    chain_id = f"city:{city_id}" if scope == AuditEntry.SCOPE_CITY else "platform"

    request_id = ""
    request_method = ""
    request_path = ""
    ip_address = ""
    user_agent = ""
    if request is not None:
        request_id = str(getattr(request, "correlation_id", "") or "")[:64]
        request_method = (getattr(request, "method", "") or "").upper()
        request_path = (getattr(request, "path", "") or "")[:255]
        ip_address = _extract_ip(request)
        user_agent = (request.META.get("HTTP_USER_AGENT") or "").strip()
    if not request_id:
        request_id = str(uuid4())

    actor_obj = actor if getattr(actor, "is_authenticated", False) else None
    metadata_payload = _json_safe(metadata) if isinstance(metadata, dict) else {}
    if not event_type:
        event_type = f"{resource_label}.{action}".lower()

    occurred_at = timezone.now()
    for _attempt in range(_MAX_APPEND_ATTEMPTS):
        prev_hash = (
            AuditEntry.all_objects.filter(chain_id=chain_id)
            .order_by("-id")
            .values_list("entry_hash", flat=True)
            .first()
            or ""
        )

        entry = AuditEntry(
            scope=scope,
            city=city,
            actor=actor_obj,
            actor_username=(getattr(actor_obj, "username", "") or "").strip(),
            actor_type=getattr(actor_obj, "user_type", "") or "",
            action=action,
            event_type=event_type,
            resource_label=resource_label,
            resource_pk=str(resource_pk or ""),
            occurred_at=occurred_at,
            request_id=request_id,
            request_method=request_method,
            request_path=request_path,
            ip_address=ip_address or None,
            user_agent=user_agent,
            chain_id=chain_id,
            prev_hash=prev_hash,
            data_before=_json_safe(data_before),
            data_after=_json_safe(data_after),
            metadata=metadata_payload,
        )
        entry.entry_hash = _build_entry_hash(_entry_payload(entry), prev_hash)

        try:
            with transaction.atomic():
                entry.save(force_insert=True)
            return entry
        except IntegrityError as exc:
            # Concurrent writers race on prev_hash uniqueness. Retry with a new prev_hash.
            if "uq_audit_prev_hash_per_chain" in str(exc) or "prev_hash" in str(exc):
                continue
            raise

    raise RuntimeError("Failed to append audit entry (concurrency retries exhausted).")


@dataclass
class ChainVerification:
    chain_id: str
    checked: int = 0
    broken_at: list[int] = field(default_factory=list)

    @property
    def is_intact(self) -> bool:
        return not self.broken_at


def verify_chain(chain_id: str) -> ChainVerification:
    """Recompute every hash in a chain and report the ids of entries that do not match."""

    result = ChainVerification(chain_id=chain_id)
    prev_hash = ""
    for entry in AuditEntry.all_objects.filter(chain_id=chain_id).order_by("id").iterator():
        result.checked += 1
        expected = _build_entry_hash(_entry_payload(entry), prev_hash)
        if entry.prev_hash != prev_hash or entry.entry_hash != expected:
            result.broken_at.append(entry.id)
        prev_hash = entry.entry_hash

    if not result.is_intact:
        logger.warning(
            "audit.chain.broken chain_id=%s checked=%s broken=%s",
            chain_id,
            result.checked,
            len(result.broken_at),
        )
    return result
