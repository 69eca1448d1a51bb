from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import MinValueValidator
from django.db import models

from conversion.bank_details import CURRENCY_CHOICES
from tenancy.models import BaseCityModel


class TokenToFiatConversion(BaseCityModel):
    """A project owner's request to turn accumulated tokens into a fiat payout.

    Tokens leave the owner's balance exactly once, when the request is marked paid.
    """

    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved_by_government"
    STATUS_PAID = "paid"
    STATUS_REJECTED = "rejected"
    STATUS_CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved by government"),
        (STATUS_PAID, "Paid"),
        (STATUS_REJECTED, "Rejected"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    request_id = models.CharField(max_length=64, unique=True)
    project_owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="conversion_requests",
    )
    project = models.ForeignKey("projects.Project", on_delete=models.PROTECT, related_name="conversions")
    token_amount = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    conversion_rate = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal("1"))
    fiat_amount = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0"))
    fiat_currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default="USD")
    bank_details = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=30, choices=STATUS_CHOICES, default=STATUS_PENDING)
    government_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="approved_conversions",
        null=True,
        blank=True,
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    internal_notes = models.CharField(max_length=500, blank=True)
    payment_details = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    paid_at = models.DateTimeField(null=True, blank=True)
    token_transaction = models.OneToOneField(
        "ledger.TokenTransaction",
        on_delete=models.PROTECT,
        related_name="conversion",
        null=True,
        blank=True,
    )
    rejection_reason = models.CharField(max_length=500, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="rejected_conversions",
        null=True,
        blank=True,
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    tokens_reserved = models.BooleanField(default=False)

    class Meta:
        ordering = ("-created_at", "-id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(token_amount__gte=1),
                name="ck_conversion_token_amount_positive",
            ),
            models.CheckConstraint(
                condition=~models.Q(status="paid") | models.Q(token_transaction__isnull=False),
                name="ck_conversion_paid_has_transaction",
            ),
        ]
        verbose_name = "Token to Fiat Conversion"
        verbose_name_plural = "Token to Fiat Conversions"

    def __str__(self):
        return f"{self.request_id} {self.token_amount} -> {self.fiat_amount} {self.fiat_currency} ({self.status})"

    def save(self, *args, **kwargs):
        self.fiat_amount = compute_fiat_amount(self.token_amount, self.conversion_rate)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "fiat_amount" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["fiat_amount"]
        return super().save(*args, **kwargs)


def compute_fiat_amount(token_amount, conversion_rate) -> Decimal:
    amount = Decimal(int(token_amount or 0)) * Decimal(str(conversion_rate or 0))
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
