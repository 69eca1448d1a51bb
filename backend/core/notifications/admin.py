from django.contrib import admin

from notifications.models import NotificationIntent


@admin.register(NotificationIntent)
class NotificationIntentAdmin(admin.ModelAdmin):
    list_display = ("id", "city", "recipient", "event_type", "status", "attempts", "created_at", "sent_at")
    list_filter = ("status", "event_type", "city")
    search_fields = ("recipient__username", "subject", "event_type")
    readonly_fields = ("payload", "attempts", "last_error", "next_retry_at", "sent_at")

    def get_queryset(self, request):
        return NotificationIntent.all_objects.select_related("recipient", "city")
