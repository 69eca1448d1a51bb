from django.contrib import admin
from django.http import JsonResponse
from django.urls import include, path
from rest_framework.authtoken.views import obtain_auth_token


def healthz(_request):
    return JsonResponse({"status": "ok"})


urlpatterns = [
    path("admin/", admin.site.urls),
    path("healthz/", healthz, name="healthz"),
    path("api/auth/token/", obtain_auth_token, name="api-token-auth"),
    path("api/auth/", include("accounts.urls")),
    path("api/tokens/", include("ledger.urls")),
    path("api/tokens/", include("issuance.urls")),
    path("api/projects/", include("projects.urls")),
    path("api/claims/", include("claims.urls")),
    path("api/conversions/", include("conversion.urls")),
    path("api/audit/", include("audit.urls")),
]
