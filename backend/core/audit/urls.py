from django.urls import path

from audit.views import CityAuditChainVerifyAPIView, CityAuditEntryListAPIView

urlpatterns = [
    path("", CityAuditEntryListAPIView.as_view(), name="audit-list"),
    path("verify/", CityAuditChainVerifyAPIView.as_view(), name="audit-verify"),
]
