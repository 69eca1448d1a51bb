from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from accounts.models import City, GovernmentProfile, User


@admin.register(City)
class CityAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "code", "province", "country", "is_active")
    list_filter = ("is_active", "country")
    search_fields = ("name", "code")


@admin.register(User)
class CivicUserAdmin(UserAdmin):
    list_display = (
        "id",
        "username",
        "user_type",
        "city",
        "is_approved",
        "token_balance",
        "reserved_tokens",
        "is_active",
    )
    list_filter = ("user_type", "is_approved", "is_active", "city")
    search_fields = ("username", "email", "full_name")
    # Balances move only through the ledger services.
    readonly_fields = ("token_balance", "reserved_tokens", "last_login", "date_joined")
    fieldsets = UserAdmin.fieldsets + (
        (
            "Civic",
            {"fields": ("user_type", "city", "full_name", "phone", "is_approved", "token_balance", "reserved_tokens")},
        ),
    )


@admin.register(GovernmentProfile)
class GovernmentProfileAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "department", "status", "daily_issuance_limit")
    list_filter = ("status",)
    search_fields = ("user__username", "department")
