from django.contrib import admin

from projects.models import AllocationLimit, Project, ProjectSupport, SocialProjectRegistration


class UnscopedAdminMixin:
    """Admin runs outside the request city context; list every city's rows."""

    def get_queryset(self, request):
        return self.model.all_objects.all()


@admin.register(SocialProjectRegistration)
class SocialProjectRegistrationAdmin(UnscopedAdminMixin, admin.ModelAdmin):
    list_display = ("id", "organization_name", "owner", "city", "status", "reviewed_at")
    list_filter = ("status", "city")
    search_fields = ("organization_name", "owner__username")


@admin.register(Project)
class ProjectAdmin(UnscopedAdminMixin, admin.ModelAdmin):
    list_display = ("id", "title", "city", "status", "funding_goal", "tokens_funded", "allocation_set")
    list_filter = ("status", "city", "allocation_set")
    search_fields = ("title", "registration__organization_name")
    readonly_fields = ("tokens_funded",)


@admin.register(ProjectSupport)
class ProjectSupportAdmin(UnscopedAdminMixin, admin.ModelAdmin):
    list_display = ("id", "project", "citizen", "tokens_spent", "updated_at")
    readonly_fields = ("project", "citizen", "tokens_spent")

    def has_add_permission(self, request):
        return False


@admin.register(AllocationLimit)
class AllocationLimitAdmin(UnscopedAdminMixin, admin.ModelAdmin):
    list_display = ("id", "project", "citizen_token_limit", "project_token_limit", "status", "set_by")
    list_filter = ("status", "city")
