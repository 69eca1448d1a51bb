import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response

from ledger.exceptions import LedgerValidationError, TokenLedgerError
from ledger.idempotency import normalize_key
from tenancy.permissions import IsCityRoleAllowed

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


class LedgerErrorResponseMixin:
    """Translate ledger errors raised by services into `{"code", "detail"}` responses."""

    permission_classes = [IsCityRoleAllowed]
    requires_idempotency_key = False

    def handle_exception(self, exc):
        if isinstance(exc, TokenLedgerError):
            logger.info(
                "ledger.request.rejected code=%s path=%s correlation_id=%s",
                exc.code,
                getattr(self.request, "path", ""),
                getattr(self.request, "correlation_id", ""),
            )
            return Response(exc.as_dict(), status=exc.http_status)
        if isinstance(exc, DjangoValidationError):
            detail = exc.message_dict if hasattr(exc, "error_dict") else exc.messages
            return Response(
                {"code": LedgerValidationError.code, "detail": detail},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return super().handle_exception(exc)

    def get_idempotency_key(self, request) -> str | None:
        key = normalize_key(request.headers.get(IDEMPOTENCY_HEADER))
        if key is None and self.requires_idempotency_key:
            raise LedgerValidationError(
                f"{IDEMPOTENCY_HEADER} header is required for this operation.",
                code="IDEMPOTENCY_KEY_REQUIRED",
            )
        return key
