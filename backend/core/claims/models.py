from decimal import ROUND_FLOOR, Decimal

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import MinValueValidator
from django.db import models

from conversion.bank_details import CURRENCY_CHOICES
from tenancy.models import BaseCityModel


def default_token_rate():
    return Decimal(str(getattr(settings, "TOKEN_CLAIM_RATE", 100)))


def calculate_claim_tokens(payment_amount, token_rate) -> int:
    """Whole tokens earned for a payment; fractions are dropped."""

    amount = Decimal(str(payment_amount or 0))
    rate = Decimal(str(token_rate or 0))
    if amount <= 0 or rate <= 0:
        return 0
    return int((amount / rate).to_integral_value(rounding=ROUND_FLOOR))


class ReviewableRequest(BaseCityModel):
    """Submission that a government reviews once, optionally producing one ledger entry."""

    STATUS_PENDING = "pending"
    STATUS_UNDER_REVIEW = "under_review"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_UNDER_REVIEW, "Under review"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_REJECTED, "Rejected"),
    ]
    OPEN_STATUSES = frozenset({STATUS_PENDING, STATUS_UNDER_REVIEW})

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="reviewed_%(class)s_set",
        null=True,
        blank=True,
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.CharField(max_length=1000, blank=True)
    rejection_reason = models.CharField(max_length=500, blank=True)
    token_transaction = models.OneToOneField(
        "ledger.TokenTransaction",
        on_delete=models.PROTECT,
        related_name="%(class)s",
        null=True,
        blank=True,
    )
    proof_documents = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)

    class Meta:
        abstract = True
        ordering = ("-created_at", "-id")

    @property
    def is_open(self) -> bool:
        return self.status in self.OPEN_STATUSES


class TokenClaim(ReviewableRequest):
    PAYMENT_PROPERTY_TAX = "property_tax"
    PAYMENT_UTILITY_BILL = "utility_bill"
    PAYMENT_MUNICIPAL_FEE = "municipal_fee"
    PAYMENT_OTHER = "other"
    PAYMENT_TYPE_CHOICES = [
        (PAYMENT_PROPERTY_TAX, "Property tax"),
        (PAYMENT_UTILITY_BILL, "Utility bill"),
        (PAYMENT_MUNICIPAL_FEE, "Municipal fee"),
        (PAYMENT_OTHER, "Other"),
    ]

    citizen = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="token_claims",
    )
    payment_type = models.CharField(max_length=20, choices=PAYMENT_TYPE_CHOICES)
    payment_amount = models.DecimalField(max_digits=14, decimal_places=2, validators=[MinValueValidator(0)])
    payment_currency = models.CharField(max_length=3, default="ARS")
    payment_date = models.DateField()
    payment_reference = models.CharField(max_length=120, blank=True)
    token_rate = models.DecimalField(max_digits=10, decimal_places=2, default=default_token_rate)
    calculated_tokens = models.PositiveIntegerField(default=0, editable=False)

    class Meta(ReviewableRequest.Meta):
        verbose_name = "Token Claim"
        verbose_name_plural = "Token Claims"

    def __str__(self):
        return f"Claim {self.pk} by {self.citizen_id}: {self.calculated_tokens} tokens ({self.status})"

    def save(self, *args, **kwargs):
        self.calculated_tokens = calculate_claim_tokens(self.payment_amount, self.token_rate)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "calculated_tokens" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["calculated_tokens"]
        return super().save(*args, **kwargs)


class TokenRequest(ReviewableRequest):
    citizen = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="token_requests",
    )
    token_amount = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    request_reason = models.CharField(max_length=1000, blank=True)
    issue_amount = models.PositiveIntegerField(null=True, blank=True)

    class Meta(ReviewableRequest.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(token_amount__gte=1),
                name="ck_token_request_amount_positive",
            ),
        ]
        verbose_name = "Token Request"
        verbose_name_plural = "Token Requests"

    def __str__(self):
        return f"Token request {self.pk} by {self.citizen_id}: {self.token_amount} ({self.status})"


class FundRequest(ReviewableRequest):
    project_owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="fund_requests",
    )
    project = models.ForeignKey("projects.Project", on_delete=models.PROTECT, related_name="fund_requests")
    token_amount = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    requested_fiat_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    fiat_currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default="ARS")
    bank_details = models.JSONField(default=dict, blank=True)
    bank_transfer_proof = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)

    class Meta(ReviewableRequest.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(token_amount__gte=1),
                name="ck_fund_request_amount_positive",
            ),
        ]
        verbose_name = "Fund Request"
        verbose_name_plural = "Fund Requests"

    def __str__(self):
        return f"Fund request {self.pk} for project {self.project_id}: {self.token_amount} ({self.status})"
