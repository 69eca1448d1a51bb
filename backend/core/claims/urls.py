from django.urls import path

from claims.views import (
    FundRequestListCreateAPIView,
    FundRequestReviewAPIView,
    FundRequestStartReviewAPIView,
    TokenClaimListCreateAPIView,
    TokenClaimReviewAPIView,
    TokenClaimStartReviewAPIView,
    TokenRequestListCreateAPIView,
    TokenRequestReviewAPIView,
    TokenRequestStartReviewAPIView,
)

urlpatterns = [
    path("token-claims/", TokenClaimListCreateAPIView.as_view(), name="claims-token-claims"),
    path("token-claims/<int:pk>/start-review/", TokenClaimStartReviewAPIView.as_view(), name="claims-token-claim-start"),
    path("token-claims/<int:pk>/review/", TokenClaimReviewAPIView.as_view(), name="claims-token-claim-review"),
    path("token-requests/", TokenRequestListCreateAPIView.as_view(), name="claims-token-requests"),
    path(
        "token-requests/<int:pk>/start-review/",
        TokenRequestStartReviewAPIView.as_view(),
        name="claims-token-request-start",
    ),
    path("token-requests/<int:pk>/review/", TokenRequestReviewAPIView.as_view(), name="claims-token-request-review"),
    path("fund-requests/", FundRequestListCreateAPIView.as_view(), name="claims-fund-requests"),
    path(
        "fund-requests/<int:pk>/start-review/",
        FundRequestStartReviewAPIView.as_view(),
        name="claims-fund-request-start",
    ),
    path("fund-requests/<int:pk>/review/", FundRequestReviewAPIView.as_view(), name="claims-fund-request-review"),
]
