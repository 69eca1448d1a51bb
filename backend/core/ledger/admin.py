from django.contrib import admin

from ledger.models import IdempotencyKey, TokenTransaction


class ReadOnlyLedgerAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(TokenTransaction)
class TokenTransactionAdmin(ReadOnlyLedgerAdmin):
    list_display = (
        "transaction_id",
        "city",
        "transaction_type",
        "direction",
        "from_user",
        "to_user",
        "amount",
        "status",
        "created_at",
    )
    list_filter = ("transaction_type", "direction", "status", "token_type", "city")
    search_fields = ("transaction_id", "from_user__username", "to_user__username", "description")
    ordering = ("-created_at", "-id")
    readonly_fields = [field.name for field in TokenTransaction._meta.fields]

    def get_queryset(self, request):
        # Default manager is city-scoped; admin must see all entries.
        return TokenTransaction.all_objects.select_related("from_user", "to_user", "city")


@admin.register(IdempotencyKey)
class IdempotencyKeyAdmin(ReadOnlyLedgerAdmin):
    list_display = ("id", "actor", "operation", "key", "token_transaction", "created_at")
    search_fields = ("key", "operation", "actor__username")
    readonly_fields = [field.name for field in IdempotencyKey._meta.fields]
