from django.urls import path

from ledger.views import ReconciliationReportAPIView, TokenTransactionListAPIView, WalletAPIView

urlpatterns = [
    path("wallet/", WalletAPIView.as_view(), name="tokens-wallet"),
    path("transactions/", TokenTransactionListAPIView.as_view(), name="tokens-transactions"),
    path("reconciliation/", ReconciliationReportAPIView.as_view(), name="tokens-reconciliation"),
]
