from django.contrib import admin

from audit.models import AuditEntry


@admin.register(AuditEntry)
class AuditEntryAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "scope",
        "chain_id",
        "action",
        "event_type",
        "resource_label",
        "resource_pk",
        "occurred_at",
        "actor_username",
    )
    list_filter = ("scope", "action")
    search_fields = ("event_type", "resource_label", "resource_pk", "actor_username", "chain_id")
    ordering = ("-occurred_at", "-id")
    readonly_fields = [field.name for field in AuditEntry._meta.fields]

    def get_queryset(self, request):
        # Default manager is city-scoped; admin must see all entries.
        return AuditEntry.all_objects.all()

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
