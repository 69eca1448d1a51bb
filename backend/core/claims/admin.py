from django.contrib import admin

from claims.models import FundRequest, TokenClaim, TokenRequest


class ReviewableRequestAdmin(admin.ModelAdmin):
    list_filter = ("status", "city")
    readonly_fields = ("status", "reviewed_by", "reviewed_at", "token_transaction", "metadata")

    def get_queryset(self, request):
        return self.model.all_objects.select_related("token_transaction")


@admin.register(TokenClaim)
class TokenClaimAdmin(ReviewableRequestAdmin):
    list_display = ("id", "citizen", "payment_type", "payment_amount", "calculated_tokens", "status", "created_at")


@admin.register(TokenRequest)
class TokenRequestAdmin(ReviewableRequestAdmin):
    list_display = ("id", "citizen", "token_amount", "issue_amount", "status", "created_at")


@admin.register(FundRequest)
class FundRequestAdmin(ReviewableRequestAdmin):
    list_display = ("id", "project_owner", "project", "token_amount", "fiat_currency", "status", "created_at")
    exclude = ("bank_details",)
