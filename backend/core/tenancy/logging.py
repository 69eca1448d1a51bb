from __future__ import annotations

import logging
import re
from typing import Any


_IBAN_RE = re.compile(r"\b[A-Z]{2}\d{2}(?:\s?[A-Z0-9]{4}){2,7}(?:\s?[A-Z0-9]{1,4})?\b")
_CBU_RE = re.compile(r"(?<!\d)\d{22}(?!\d)")
_ACCOUNT_RE = re.compile(r"(?i)\b(account_number|account|acct|cuenta)(\s*[=:]\s*|\s+)[\d-]{6,}")

_SENSITIVE_EXTRA_KEYS = ("account_number", "iban", "cbu", "routing_number", "swift_code")


def mask_bank_account(text: str) -> str:
    """Mask bank account identifiers (IBAN, CBU, raw account numbers) in a string.

    No digits are kept; log lines only need to show that a value was present.
    """

    if not text:
        return text

    text = _IBAN_RE.sub("***IBAN***", text)
    text = _CBU_RE.sub("***CBU***", text)
    text = _ACCOUNT_RE.sub(r"\1\2***ACCOUNT***", text)
    return text


def mask_bank_details(bank_details: Any) -> dict:
    """Return a copy of a bank details mapping safe to log or serialize to audit rows."""

    if not isinstance(bank_details, dict):
        return {}
    masked = {}
    for key, value in bank_details.items():
        if key in _SENSITIVE_EXTRA_KEYS and value:
            raw = str(value)
            masked[key] = f"***{raw[-4:]}" if len(raw) > 4 else "***"
        else:
            masked[key] = value
    return masked


class MaskBankAccountFilter(logging.Filter):
    """Logging filter to mask bank account identifiers in log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):  # pragma: no cover
            message = str(getattr(record, "msg", ""))

        # Replace the formatted message and clear args to avoid double formatting.
        record.msg = mask_bank_account(str(message))
        record.args = ()

        for key in _SENSITIVE_EXTRA_KEYS:
            if hasattr(record, key):
                value: Any = getattr(record, key)
                if isinstance(value, str):
                    setattr(record, key, mask_bank_account(value))

        return True
