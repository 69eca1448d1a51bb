from django.db.models import Q
from rest_framework import generics
from rest_framework.response import Response
from rest_framework.views import APIView

from ledger.api import LedgerErrorResponseMixin
from ledger.models import TokenTransaction
from ledger.serializers import (
    BalanceDivergenceSerializer,
    TokenTransactionSerializer,
    WalletSerializer,
)
from ledger.services import ledger_balance, reconcile_balances


class WalletAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "wallet"

    def get(self, request):
        user = request.user
        user.refresh_from_db(fields=["token_balance", "reserved_tokens"])
        recent = (
            TokenTransaction.all_objects.filter(Q(to_user=user) | Q(from_user=user))
            .select_related("from_user", "to_user")
            .order_by("-created_at", "-id")[:20]
        )
        payload = {
            "user_id": user.id,
            "token_balance": user.token_balance,
            "reserved_tokens": user.reserved_tokens,
            "available_tokens": user.available_tokens,
            "ledger_balance": ledger_balance(user),
            "recent_transactions": recent,
        }
        return Response(WalletSerializer(payload).data)


class TokenTransactionListAPIView(LedgerErrorResponseMixin, generics.ListAPIView):
    serializer_class = TokenTransactionSerializer
    city_resource_key = "transactions"

    def get_queryset(self):
        user = self.request.user
        queryset = TokenTransaction.all_objects.filter(city=self.request.city).select_related(
            "from_user", "to_user"
        )
        # Governments audit the whole city; everyone else sees their own movements.
        if not user.is_government:
            queryset = queryset.filter(Q(to_user=user) | Q(from_user=user))

        transaction_type = (self.request.query_params.get("type") or "").strip().lower()
        if transaction_type:
            queryset = queryset.filter(transaction_type=transaction_type)

        project_id = self.request.query_params.get("project_id")
        if project_id:
            queryset = queryset.filter(related_project_id=project_id)

        user_id = self.request.query_params.get("user_id")
        if user_id and user.is_government:
            queryset = queryset.filter(Q(to_user_id=user_id) | Q(from_user_id=user_id))

        return queryset.order_by("-created_at", "-id")


class ReconciliationReportAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "reconciliation"

    def get(self, request):
        result = reconcile_balances(city=request.city)
        return Response(
            {
                "scanned": result.scanned,
                "is_consistent": result.is_consistent,
                "divergences": BalanceDivergenceSerializer(result.divergences, many=True).data,
            }
        )
