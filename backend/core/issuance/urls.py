from django.urls import path

from issuance.views import IssueTokensAPIView, TransferTokensAPIView

urlpatterns = [
    path("issue/", IssueTokensAPIView.as_view(), name="tokens-issue"),
    path("transfer/", TransferTokensAPIView.as_view(), name="tokens-transfer"),
]
