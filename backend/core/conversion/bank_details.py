from __future__ import annotations

from ledger.exceptions import LedgerValidationError

SUPPORTED_CURRENCIES = ("USD", "EUR", "GBP", "INR", "CAD", "AUD", "ARS")
CURRENCY_CHOICES = [(code, code) for code in SUPPORTED_CURRENCIES]

PAYOUT_REQUIRED_FIELDS = ("account_holder_name", "bank_name", "account_number", "country")
FUND_REQUEST_REQUIRED_FIELDS = ("bank_name", "account_number")
OPTIONAL_FIELDS = (
    "account_type",
    "routing_number",
    "swift_code",
    "ifsc_code",
    "iban",
    "cbu",
)


def validate_currency(value) -> str:
    currency = str(value or "").strip().upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise LedgerValidationError(
            f"fiat_currency must be one of: {', '.join(SUPPORTED_CURRENCIES)}.",
            field="fiat_currency",
        )
    return currency


def validate_bank_details(raw, *, required=PAYOUT_REQUIRED_FIELDS) -> dict:
    """Return a cleaned copy holding only known keys, all stripped strings."""

    if not isinstance(raw, dict):
        raise LedgerValidationError("bank_details must be an object.", field="bank_details")

    cleaned = {}
    for key in tuple(required) + tuple(key for key in PAYOUT_REQUIRED_FIELDS + OPTIONAL_FIELDS if key not in required):
        value = raw.get(key)
        if value is None:
            continue
        if not isinstance(value, (str, int)):
            raise LedgerValidationError(f"bank_details.{key} must be a string.", field=f"bank_details.{key}")
        value = str(value).strip()
        if value:
            cleaned[key] = value[:120]

    missing = [key for key in required if key not in cleaned]
    if missing:
        raise LedgerValidationError(
            f"bank_details is missing: {', '.join(missing)}.",
            field="bank_details",
            missing=missing,
        )
    return cleaned
