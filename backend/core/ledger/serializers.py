from rest_framework import serializers

from ledger.models import TokenTransaction


class TokenTransactionSerializer(serializers.ModelSerializer):
    from_username = serializers.CharField(source="from_user.username", default=None, read_only=True)
    to_username = serializers.CharField(source="to_user.username", read_only=True)

    class Meta:
        model = TokenTransaction
        fields = (
            "id",
            "transaction_id",
            "transaction_type",
            "direction",
            "from_user",
            "from_username",
            "to_user",
            "to_username",
            "amount",
            "token_type",
            "category",
            "description",
            "related_project",
            "issued_by",
            "approved_by",
            "status",
            "created_at",
            "processed_at",
        )
        read_only_fields = fields


class WalletSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    token_balance = serializers.IntegerField()
    reserved_tokens = serializers.IntegerField()
    available_tokens = serializers.IntegerField()
    ledger_balance = serializers.IntegerField()
    recent_transactions = TokenTransactionSerializer(many=True)


class BalanceDivergenceSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    username = serializers.CharField()
    cached_balance = serializers.IntegerField()
    ledger_balance = serializers.IntegerField()
    drift = serializers.IntegerField()
