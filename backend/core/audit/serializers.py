from rest_framework import serializers

from audit.models import AuditEntry


class AuditEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditEntry
        fields = (
            "id",
            "scope",
            "city_id",
            "actor_username",
            "actor_type",
            "action",
            "event_type",
            "resource_label",
            "resource_pk",
            "occurred_at",
            "request_id",
            "chain_id",
            "prev_hash",
            "entry_hash",
            "data_before",
            "data_after",
            "metadata",
        )
