"""Metadata checks for proof documents stored outside the service.

Only the declared mimetype and size are validated; content is never fetched.
"""

from __future__ import annotations

from django.conf import settings
from django.utils import timezone

from ledger.exceptions import LedgerValidationError

ALLOWED_MIMETYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
    }
)
MAX_DOCUMENTS = 10


def max_document_bytes() -> int:
    return int(getattr(settings, "DOCUMENT_MAX_BYTES", 10 * 1024 * 1024))


def validate_document(raw, *, field_name: str = "proof_documents") -> dict:
    if not isinstance(raw, dict):
        raise LedgerValidationError("Each document must be an object.", field=field_name)

    url = str(raw.get("url") or "").strip()
    filename = str(raw.get("filename") or "").strip()
    if not url and not filename:
        raise LedgerValidationError("Document url or filename is required.", field=field_name)

    mimetype = str(raw.get("mimetype") or "").strip().lower()
    if mimetype not in ALLOWED_MIMETYPES:
        raise LedgerValidationError(
            f"Unsupported document type {mimetype or '(none)'}; allowed: {', '.join(sorted(ALLOWED_MIMETYPES))}.",
            field=field_name,
        )

    size = raw.get("size")
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise LedgerValidationError("Document size must be a positive number of bytes.", field=field_name)
    limit = max_document_bytes()
    if size > limit:
        raise LedgerValidationError(
            f"Document exceeds the maximum size of {limit // (1024 * 1024)} MB.",
            field=field_name,
            max_bytes=limit,
        )

    return {
        "url": url,
        "filename": filename,
        "original_name": str(raw.get("original_name") or filename)[:255],
        "mimetype": mimetype,
        "size": size,
        "uploaded_at": str(raw.get("uploaded_at") or timezone.now().isoformat()),
    }


def validate_documents(raw_documents, *, required: bool = False, field_name: str = "proof_documents") -> list[dict]:
    if raw_documents in (None, ""):
        raw_documents = []
    if not isinstance(raw_documents, (list, tuple)):
        raise LedgerValidationError("Documents must be a list.", field=field_name)
    if required and not raw_documents:
        raise LedgerValidationError("At least one proof document is required.", field=field_name)
    if len(raw_documents) > MAX_DOCUMENTS:
        raise LedgerValidationError(f"At most {MAX_DOCUMENTS} documents are allowed.", field=field_name)
    return [validate_document(document, field_name=field_name) for document in raw_documents]
