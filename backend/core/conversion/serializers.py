from rest_framework import serializers

from conversion.bank_details import CURRENCY_CHOICES
from conversion.models import TokenToFiatConversion
from tenancy.logging import mask_bank_details


class TokenToFiatConversionSerializer(serializers.ModelSerializer):
    bank_details = serializers.SerializerMethodField()
    token_transaction_id = serializers.CharField(
        source="token_transaction.transaction_id",
        default=None,
        read_only=True,
    )

    class Meta:
        model = TokenToFiatConversion
        fields = (
            "id",
            "request_id",
            "project_owner",
            "project",
            "token_amount",
            "conversion_rate",
            "fiat_amount",
            "fiat_currency",
            "bank_details",
            "status",
            "government_user",
            "approved_at",
            "payment_details",
            "paid_at",
            "token_transaction_id",
            "rejection_reason",
            "rejected_at",
            "cancelled_at",
            "tokens_reserved",
            "created_at",
        )
        read_only_fields = fields

    def get_bank_details(self, obj):
        return mask_bank_details(obj.bank_details)


class ConversionRequestSerializer(serializers.Serializer):
    project_id = serializers.IntegerField()
    token_amount = serializers.IntegerField(min_value=1)
    fiat_currency = serializers.ChoiceField(choices=CURRENCY_CHOICES, default="USD")
    conversion_rate = serializers.DecimalField(max_digits=12, decimal_places=4, default=1)
    bank_details = serializers.DictField(child=serializers.CharField(allow_blank=True))


class ConversionApproveSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")


class ConversionRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)


class ConversionMarkPaidSerializer(serializers.Serializer):
    transaction_id = serializers.CharField(max_length=120)
    payment_method = serializers.CharField(required=False, max_length=60, default="bank_transfer")
    payment_notes = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")
    bank_transfer_details = serializers.DictField(required=False)
