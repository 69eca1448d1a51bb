from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from issuance.serializers import IssueTokensSerializer, TransferTokensSerializer
from issuance.services import issue_tokens, issued_today, remaining_daily_issuance, transfer_tokens
from ledger.api import LedgerErrorResponseMixin
from ledger.serializers import TokenTransactionSerializer


class IssueTokensAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "issuance"
    requires_idempotency_key = True

    def get(self, request):
        government = request.user
        profile = getattr(government, "government_profile", None)
        return Response(
            {
                "daily_issuance_limit": getattr(profile, "daily_issuance_limit", 0),
                "issued_today": issued_today(government),
                "remaining_today": remaining_daily_issuance(government),
            }
        )

    def post(self, request):
        serializer = IssueTokensSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = issue_tokens(
            actor=request.user,
            request=request,
            idempotency_key=self.get_idempotency_key(request),
            **serializer.validated_data,
        )
        return Response(TokenTransactionSerializer(entry).data, status=status.HTTP_201_CREATED)


class TransferTokensAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "transfers"
    requires_idempotency_key = True

    def post(self, request):
        serializer = TransferTokensSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = transfer_tokens(
            actor=request.user,
            request=request,
            idempotency_key=self.get_idempotency_key(request),
            **serializer.validated_data,
        )
        return Response(TokenTransactionSerializer(entry).data, status=status.HTTP_201_CREATED)
