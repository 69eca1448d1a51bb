from rest_framework import serializers

from projects.models import AllocationLimit, Project, ProjectSupport, SocialProjectRegistration


class SocialProjectRegistrationSerializer(serializers.ModelSerializer):
    owner_username = serializers.CharField(source="owner.username", read_only=True)

    class Meta:
        model = SocialProjectRegistration
        fields = (
            "id",
            "owner",
            "owner_username",
            "organization_name",
            "description",
            "contact_email",
            "status",
            "reviewed_by",
            "reviewed_at",
            "created_at",
        )
        read_only_fields = ("owner", "status", "reviewed_by", "reviewed_at", "created_at")


class ProjectSerializer(serializers.ModelSerializer):
    owner_id = serializers.IntegerField(read_only=True)
    organization_name = serializers.CharField(source="registration.organization_name", read_only=True)
    funding_percentage = serializers.IntegerField(read_only=True)
    tokens_needed = serializers.IntegerField(read_only=True)
    is_fully_funded = serializers.BooleanField(read_only=True)

    class Meta:
        model = Project
        fields = (
            "id",
            "owner_id",
            "organization_name",
            "title",
            "description",
            "project_type",
            "funding_goal",
            "tokens_funded",
            "funding_percentage",
            "tokens_needed",
            "is_fully_funded",
            "allocation_set",
            "status",
            "status_reason",
            "approved_by",
            "approved_at",
            "created_at",
        )
        read_only_fields = (
            "tokens_funded",
            "allocation_set",
            "status",
            "status_reason",
            "approved_by",
            "approved_at",
            "created_at",
        )


class ProjectSupportSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProjectSupport
        fields = ("id", "project", "citizen", "tokens_spent", "updated_at")
        read_only_fields = fields


class AllocationLimitSerializer(serializers.ModelSerializer):
    class Meta:
        model = AllocationLimit
        fields = (
            "id",
            "project",
            "citizen_token_limit",
            "project_token_limit",
            "status",
            "set_by",
            "notes",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class AllocationLimitInputSerializer(serializers.Serializer):
    citizen_token_limit = serializers.IntegerField(min_value=1)
    project_token_limit = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")


class AllocationLimitUpdateSerializer(serializers.Serializer):
    citizen_token_limit = serializers.IntegerField(min_value=1, required=False)
    project_token_limit = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=AllocationLimit.STATUS_CHOICES, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500)


class ProjectApproveSerializer(serializers.Serializer):
    funding_goal = serializers.IntegerField(min_value=1)
    citizen_token_limit = serializers.IntegerField(min_value=1, required=False)


class ProjectStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Project.STATUS_CHOICES)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")


class ProjectSupportInputSerializer(serializers.Serializer):
    tokens_to_spend = serializers.IntegerField(min_value=1)


class RegistrationReviewSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=("approve", "reject"))
