from django.urls import path

from conversion.views import (
    ConversionApproveAPIView,
    ConversionCancelAPIView,
    ConversionDetailAPIView,
    ConversionListCreateAPIView,
    ConversionMarkPaidAPIView,
    ConversionRejectAPIView,
)

urlpatterns = [
    path("", ConversionListCreateAPIView.as_view(), name="conversions-list"),
    path("<str:request_id>/", ConversionDetailAPIView.as_view(), name="conversions-detail"),
    path("<str:request_id>/approve/", ConversionApproveAPIView.as_view(), name="conversions-approve"),
    path("<str:request_id>/reject/", ConversionRejectAPIView.as_view(), name="conversions-reject"),
    path("<str:request_id>/cancel/", ConversionCancelAPIView.as_view(), name="conversions-cancel"),
    path("<str:request_id>/mark-paid/", ConversionMarkPaidAPIView.as_view(), name="conversions-mark-paid"),
]
