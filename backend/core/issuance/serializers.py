from rest_framework import serializers

from ledger.models import TokenTransaction


class IssueTokensSerializer(serializers.Serializer):
    recipient_id = serializers.IntegerField()
    amount = serializers.IntegerField(min_value=1)
    token_type = serializers.ChoiceField(
        choices=TokenTransaction.TOKEN_TYPE_CHOICES,
        default=TokenTransaction.TOKEN_CIVIC,
    )
    category = serializers.ChoiceField(
        choices=TokenTransaction.CATEGORY_CHOICES,
        default=TokenTransaction.CATEGORY_PARTICIPATION,
    )
    description = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")


class TransferTokensSerializer(serializers.Serializer):
    from_user_id = serializers.IntegerField()
    to_user_id = serializers.IntegerField()
    amount = serializers.IntegerField(min_value=1)
    description = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")
