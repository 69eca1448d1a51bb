from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from claims.models import FundRequest, TokenClaim, TokenRequest
from claims.serializers import (
    FundRequestSerializer,
    FundRequestSubmitSerializer,
    ReviewDecisionSerializer,
    TokenClaimSerializer,
    TokenClaimSubmitSerializer,
    TokenRequestSerializer,
    TokenRequestSubmitSerializer,
)
from claims.services import (
    review_fund_request,
    review_token_claim,
    review_token_request,
    start_review,
    submit_fund_request,
    submit_token_claim,
    submit_token_request,
)
from ledger.api import LedgerErrorResponseMixin


class ReviewableRequestListCreateAPIView(LedgerErrorResponseMixin, generics.ListCreateAPIView):
    model = None
    submit_serializer_class = None
    submitter_field = ""

    def get_queryset(self):
        queryset = self.model.objects.select_related("token_transaction")
        if not self.request.user.is_government:
            queryset = queryset.filter(**{self.submitter_field: self.request.user})
        status_filter = (self.request.query_params.get("status") or "").strip().lower()
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset

    def submit(self, request, data):
        raise NotImplementedError

    def create(self, request, *args, **kwargs):
        serializer = self.submit_serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        obj = self.submit(request, serializer.validated_data)
        return Response(self.get_serializer(obj).data, status=status.HTTP_201_CREATED)


class ReviewStartAPIView(LedgerErrorResponseMixin, APIView):
    model = None
    serializer_class = None

    def post(self, request, pk):
        obj = get_object_or_404(self.model.objects.all(), pk=pk)
        obj = start_review(actor=request.user, request_obj=obj, request=request)
        return Response(self.serializer_class(obj).data)


class ReviewDecisionAPIView(LedgerErrorResponseMixin, APIView):
    serializer_class = None

    def review(self, request, pk, data):
        raise NotImplementedError

    def post(self, request, pk):
        serializer = ReviewDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        obj = self.review(request, pk, serializer.validated_data)
        return Response(self.serializer_class(obj).data)


class TokenClaimListCreateAPIView(ReviewableRequestListCreateAPIView):
    model = TokenClaim
    serializer_class = TokenClaimSerializer
    submit_serializer_class = TokenClaimSubmitSerializer
    submitter_field = "citizen"
    city_resource_key = "token_claims"

    def submit(self, request, data):
        return submit_token_claim(actor=request.user, request=request, **data)


class TokenClaimStartReviewAPIView(ReviewStartAPIView):
    model = TokenClaim
    serializer_class = TokenClaimSerializer
    city_resource_key = "token_claims"


class TokenClaimReviewAPIView(ReviewDecisionAPIView):
    serializer_class = TokenClaimSerializer
    city_resource_key = "token_claims"

    def review(self, request, pk, data):
        return review_token_claim(
            actor=request.user,
            claim_id=pk,
            decision=data["decision"],
            notes=data["notes"],
            reason=data["reason"],
            request=request,
        )


class TokenRequestListCreateAPIView(ReviewableRequestListCreateAPIView):
    model = TokenRequest
    serializer_class = TokenRequestSerializer
    submit_serializer_class = TokenRequestSubmitSerializer
    submitter_field = "citizen"
    city_resource_key = "token_requests"

    def submit(self, request, data):
        return submit_token_request(actor=request.user, request=request, **data)


class TokenRequestStartReviewAPIView(ReviewStartAPIView):
    model = TokenRequest
    serializer_class = TokenRequestSerializer
    city_resource_key = "token_requests"


class TokenRequestReviewAPIView(ReviewDecisionAPIView):
    serializer_class = TokenRequestSerializer
    city_resource_key = "token_requests"

    def review(self, request, pk, data):
        return review_token_request(
            actor=request.user,
            token_request_id=pk,
            decision=data["decision"],
            issue_amount=data.get("issue_amount"),
            notes=data["notes"],
            reason=data["reason"],
            request=request,
        )


class FundRequestListCreateAPIView(ReviewableRequestListCreateAPIView):
    model = FundRequest
    serializer_class = FundRequestSerializer
    submit_serializer_class = FundRequestSubmitSerializer
    submitter_field = "project_owner"
    city_resource_key = "fund_requests"

    def submit(self, request, data):
        return submit_fund_request(actor=request.user, request=request, **data)


class FundRequestStartReviewAPIView(ReviewStartAPIView):
    model = FundRequest
    serializer_class = FundRequestSerializer
    city_resource_key = "fund_requests"


class FundRequestReviewAPIView(ReviewDecisionAPIView):
    serializer_class = FundRequestSerializer
    city_resource_key = "fund_requests"

    def review(self, request, pk, data):
        return review_fund_request(
            actor=request.user,
            fund_request_id=pk,
            decision=data["decision"],
            notes=data["notes"],
            reason=data["reason"],
            request=request,
        )
