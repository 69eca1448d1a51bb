from django.urls import path

from accounts.views import AuthenticatedUserAPIView, CapabilitiesAPIView

urlpatterns = [
    path("me/", AuthenticatedUserAPIView.as_view(), name="auth-me"),
    path("capabilities/", CapabilitiesAPIView.as_view(), name="auth-capabilities"),
]
