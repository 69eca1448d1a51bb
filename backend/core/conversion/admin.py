from django.contrib import admin

from conversion.models import TokenToFiatConversion


@admin.register(TokenToFiatConversion)
class TokenToFiatConversionAdmin(admin.ModelAdmin):
    list_display = ("request_id", "city", "project_owner", "token_amount", "fiat_amount", "fiat_currency", "status")
    list_filter = ("status", "fiat_currency", "city")
    search_fields = ("request_id", "project_owner__username")
    exclude = ("bank_details",)
    readonly_fields = (
        "request_id",
        "status",
        "token_amount",
        "fiat_amount",
        "token_transaction",
        "payment_details",
        "tokens_reserved",
    )

    def get_queryset(self, request):
        return TokenToFiatConversion.all_objects.select_related("project_owner", "city")
