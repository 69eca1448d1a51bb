from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from conversion.models import TokenToFiatConversion
from conversion.serializers import (
    ConversionApproveSerializer,
    ConversionMarkPaidSerializer,
    ConversionRejectSerializer,
    ConversionRequestSerializer,
    TokenToFiatConversionSerializer,
)
from conversion.services import (
    approve_conversion,
    cancel_conversion,
    mark_conversion_paid,
    reject_conversion,
    request_conversion,
)
from ledger.api import LedgerErrorResponseMixin


class ConversionQuerysetMixin:
    def get_queryset(self):
        queryset = TokenToFiatConversion.objects.select_related("token_transaction", "project")
        if not self.request.user.is_government:
            queryset = queryset.filter(project_owner=self.request.user)
        return queryset


class ConversionListCreateAPIView(LedgerErrorResponseMixin, ConversionQuerysetMixin, generics.ListCreateAPIView):
    serializer_class = TokenToFiatConversionSerializer
    city_resource_key = "conversions"

    def get_queryset(self):
        queryset = super().get_queryset()
        status_filter = (self.request.query_params.get("status") or "").strip().lower()
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = ConversionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        conversion = request_conversion(actor=request.user, request=request, **serializer.validated_data)
        return Response(self.get_serializer(conversion).data, status=status.HTTP_201_CREATED)


class ConversionDetailAPIView(LedgerErrorResponseMixin, ConversionQuerysetMixin, generics.RetrieveAPIView):
    serializer_class = TokenToFiatConversionSerializer
    city_resource_key = "conversions"
    lookup_field = "request_id"


class ConversionApproveAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "conversions"

    def post(self, request, request_id):
        serializer = ConversionApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        conversion = approve_conversion(
            actor=request.user,
            request_id=request_id,
            notes=serializer.validated_data["notes"],
            request=request,
        )
        return Response(TokenToFiatConversionSerializer(conversion).data)


class ConversionRejectAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "conversions"

    def post(self, request, request_id):
        serializer = ConversionRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        conversion = reject_conversion(
            actor=request.user,
            request_id=request_id,
            reason=serializer.validated_data["reason"],
            request=request,
        )
        return Response(TokenToFiatConversionSerializer(conversion).data)


class ConversionCancelAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "conversions"

    def post(self, request, request_id):
        conversion = cancel_conversion(actor=request.user, request_id=request_id, request=request)
        return Response(TokenToFiatConversionSerializer(conversion).data)


class ConversionMarkPaidAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "conversions"
    requires_idempotency_key = True

    def post(self, request, request_id):
        serializer = ConversionMarkPaidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        conversion = mark_conversion_paid(
            actor=request.user,
            request_id=request_id,
            request=request,
            idempotency_key=self.get_idempotency_key(request),
            **serializer.validated_data,
        )
        return Response(TokenToFiatConversionSerializer(conversion).data)
