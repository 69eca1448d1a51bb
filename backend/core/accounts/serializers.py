from rest_framework import serializers

from accounts.models import City, GovernmentProfile, User


class CitySerializer(serializers.ModelSerializer):
    class Meta:
        model = City
        fields = ("id", "name", "code", "province", "country")


class GovernmentProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = GovernmentProfile
        fields = (
            "department",
            "status",
            "daily_issuance_limit",
            "default_citizen_limit",
            "default_project_limit",
        )


class UserSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "username", "full_name", "user_type")


class AuthenticatedUserSerializer(serializers.ModelSerializer):
    city = CitySerializer(read_only=True)
    government_profile = serializers.SerializerMethodField()
    available_tokens = serializers.IntegerField(read_only=True)

    class Meta:
        model = User
        fields = (
            "id",
            "username",
            "email",
            "full_name",
            "user_type",
            "city",
            "is_approved",
            "token_balance",
            "reserved_tokens",
            "available_tokens",
            "government_profile",
        )
        read_only_fields = fields

    def get_government_profile(self, obj):
        profile = getattr(obj, "government_profile", None) if obj.is_government else None
        if profile is None:
            return None
        return GovernmentProfileSerializer(profile).data
