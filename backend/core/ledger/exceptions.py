from __future__ import annotations


class TokenLedgerError(RuntimeError):
    """Base error for token ledger operations.

    Every rejection carries a machine-checkable `code` and the HTTP status the API
    layer maps it to. `extra` holds self-correction hints (e.g. remaining tokens).
    """

    code = "LEDGER_ERROR"
    http_status = 400

    def __init__(self, message: str = "", *, code: str | None = None, **extra):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or str(self.args[0])
        if code:
            self.code = code
        self.extra = extra

    def as_dict(self) -> dict:
        payload = {"code": self.code, "detail": self.message}
        payload.update(self.extra)
        return payload


class LedgerValidationError(TokenLedgerError):
    """Malformed or out-of-range input."""

    code = "VALIDATION_ERROR"
    http_status = 400


class LedgerUnauthorized(TokenLedgerError):
    """Actor type or approval state does not allow this operation."""

    code = "UNAUTHORIZED"
    http_status = 403


class LedgerNotFound(TokenLedgerError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidRecipient(TokenLedgerError):
    """Recipient is missing, inactive, or not a citizen."""

    code = "INVALID_RECIPIENT"
    http_status = 400


class LimitExceeded(TokenLedgerError):
    """Daily issuance cap of the government would be exceeded."""

    code = "LIMIT_EXCEEDED"
    http_status = 409


class InsufficientBalance(TokenLedgerError):
    code = "INSUFFICIENT_BALANCE"
    http_status = 409


class ProjectNotActive(TokenLedgerError):
    code = "PROJECT_NOT_ACTIVE"
    http_status = 409


class AllocationNotConfigured(TokenLedgerError):
    """No active allocation limit while the policy requires one."""

    code = "ALLOCATION_NOT_CONFIGURED"
    http_status = 409


class PerCitizenLimitExceeded(TokenLedgerError):
    code = "PER_CITIZEN_LIMIT_EXCEEDED"
    http_status = 409


class ProjectLimitExceeded(TokenLedgerError):
    code = "PROJECT_LIMIT_EXCEEDED"
    http_status = 409


class InsufficientTokensAtPayout(TokenLedgerError):
    """Owner balance dropped below the converted amount before payout."""

    code = "INSUFFICIENT_TOKENS_AT_PAYOUT"
    http_status = 409


class InvalidTransition(TokenLedgerError):
    code = "INVALID_TRANSITION"
    http_status = 409


class AlreadyReviewed(InvalidTransition):
    """Request already left the pending/under_review states."""

    code = "ALREADY_REVIEWED"


class IdempotencyKeyReused(TokenLedgerError):
    """Idempotency key was already used for a different payload."""

    code = "IDEMPOTENCY_KEY_REUSED"
    http_status = 409


class ConcurrencyConflict(TokenLedgerError):
    """Retries exhausted while competing writers kept changing the same rows."""

    code = "CONCURRENCY_CONFLICT"
    http_status = 503


class StaleLedgerState(Exception):
    """Internal signal: a conditional update matched no row, re-validate and retry."""
