from rest_framework import serializers

from claims.models import FundRequest, TokenClaim, TokenRequest
from conversion.bank_details import CURRENCY_CHOICES
from tenancy.logging import mask_bank_details

_REVIEW_FIELDS = (
    "status",
    "reviewed_by",
    "reviewed_at",
    "review_notes",
    "rejection_reason",
    "token_transaction_id",
    "proof_documents",
    "created_at",
)


class _ReviewableRequestSerializer(serializers.ModelSerializer):
    token_transaction_id = serializers.CharField(
        source="token_transaction.transaction_id",
        default=None,
        read_only=True,
    )


class TokenClaimSerializer(_ReviewableRequestSerializer):
    class Meta:
        model = TokenClaim
        fields = (
            "id",
            "citizen",
            "payment_type",
            "payment_amount",
            "payment_currency",
            "payment_date",
            "payment_reference",
            "token_rate",
            "calculated_tokens",
        ) + _REVIEW_FIELDS
        read_only_fields = fields


class TokenRequestSerializer(_ReviewableRequestSerializer):
    class Meta:
        model = TokenRequest
        fields = ("id", "citizen", "token_amount", "request_reason", "issue_amount") + _REVIEW_FIELDS
        read_only_fields = fields


class FundRequestSerializer(_ReviewableRequestSerializer):
    bank_details = serializers.SerializerMethodField()

    class Meta:
        model = FundRequest
        fields = (
            "id",
            "project_owner",
            "project",
            "token_amount",
            "requested_fiat_amount",
            "fiat_currency",
            "bank_details",
            "bank_transfer_proof",
        ) + _REVIEW_FIELDS
        read_only_fields = fields

    def get_bank_details(self, obj):
        return mask_bank_details(obj.bank_details)


class DocumentSerializer(serializers.Serializer):
    url = serializers.CharField(required=False, allow_blank=True, max_length=1000)
    filename = serializers.CharField(required=False, allow_blank=True, max_length=255)
    original_name = serializers.CharField(required=False, allow_blank=True, max_length=255)
    mimetype = serializers.CharField(max_length=100)
    size = serializers.IntegerField()


class TokenClaimSubmitSerializer(serializers.Serializer):
    payment_type = serializers.ChoiceField(choices=TokenClaim.PAYMENT_TYPE_CHOICES)
    payment_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_currency = serializers.CharField(max_length=3, default="ARS")
    payment_date = serializers.DateField()
    payment_reference = serializers.CharField(required=False, allow_blank=True, max_length=120, default="")
    proof_documents = DocumentSerializer(many=True)


class TokenRequestSubmitSerializer(serializers.Serializer):
    token_amount = serializers.IntegerField(min_value=1)
    request_reason = serializers.CharField(required=False, allow_blank=True, max_length=1000, default="")
    proof_documents = DocumentSerializer(many=True)


class FundRequestSubmitSerializer(serializers.Serializer):
    project_id = serializers.IntegerField()
    token_amount = serializers.IntegerField(min_value=1)
    requested_fiat_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    fiat_currency = serializers.ChoiceField(choices=CURRENCY_CHOICES, default="ARS")
    bank_details = serializers.DictField(child=serializers.CharField(allow_blank=True))
    bank_transfer_proof = DocumentSerializer(many=True, required=False, default=list)


class ReviewDecisionSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=("approve", "reject"))
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000, default="")
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")
    issue_amount = serializers.IntegerField(min_value=1, required=False)
