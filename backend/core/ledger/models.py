from __future__ import annotations

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone

from tenancy.context import get_current_city
from tenancy.managers import CityManager


class TokenTransaction(models.Model):
    """Append-only record of a single token movement.

    Balance effect: an entry whose `from_user` equals `to_user` is a one-sided entry
    applied to that account with the sign of `direction` (conversion payouts, fund
    requests). Any other entry credits `to_user` and, when present, debits
    `from_user`. Issuance has no `from_user`; governments hold no balance.
    """

    TYPE_ISSUE = "issue"
    TYPE_TRANSFER = "transfer"
    TYPE_SPEND = "spend"
    TYPE_REWARD = "reward"
    TYPE_PENALTY = "penalty"
    TYPE_REFUND = "refund"
    TYPE_CHOICES = [
        (TYPE_ISSUE, "Issue"),
        (TYPE_TRANSFER, "Transfer"),
        (TYPE_SPEND, "Spend"),
        (TYPE_REWARD, "Reward"),
        (TYPE_PENALTY, "Penalty"),
        (TYPE_REFUND, "Refund"),
    ]

    DIRECTION_CREDIT = "credit"
    DIRECTION_DEBIT = "debit"
    DIRECTION_CHOICES = [
        (DIRECTION_CREDIT, "Credit"),
        (DIRECTION_DEBIT, "Debit"),
    ]

    TOKEN_CIVIC = "civic"
    TOKEN_PROJECT = "project"
    TOKEN_REWARD = "reward"
    TOKEN_PENALTY = "penalty"
    TOKEN_TYPE_CHOICES = [
        (TOKEN_CIVIC, "Civic"),
        (TOKEN_PROJECT, "Project"),
        (TOKEN_REWARD, "Reward"),
        (TOKEN_PENALTY, "Penalty"),
    ]

    CATEGORY_PARTICIPATION = "participation"
    CATEGORY_CONTRIBUTION = "contribution"
    CATEGORY_MILESTONE = "milestone"
    CATEGORY_BONUS = "bonus"
    CATEGORY_CORRECTION = "correction"
    CATEGORY_CONVERSION = "conversion"
    CATEGORY_CHOICES = [
        (CATEGORY_PARTICIPATION, "Participation"),
        (CATEGORY_CONTRIBUTION, "Contribution"),
        (CATEGORY_MILESTONE, "Milestone"),
        (CATEGORY_BONUS, "Bonus"),
        (CATEGORY_CORRECTION, "Correction"),
        (CATEGORY_CONVERSION, "Conversion"),
    ]

    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"
    STATUS_CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    transaction_id = models.CharField(max_length=64, unique=True)
    city = models.ForeignKey(
        "accounts.City",
        on_delete=models.PROTECT,
        related_name="token_transactions",
    )
    transaction_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    direction = models.CharField(max_length=10, choices=DIRECTION_CHOICES)
    from_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="outgoing_token_transactions",
        null=True,
        blank=True,
    )
    to_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="incoming_token_transactions",
    )
    amount = models.PositiveIntegerField()
    token_type = models.CharField(max_length=20, choices=TOKEN_TYPE_CHOICES, default=TOKEN_CIVIC)
    category = models.CharField(
        max_length=20,
        choices=CATEGORY_CHOICES,
        default=CATEGORY_PARTICIPATION,
    )
    description = models.CharField(max_length=500, blank=True)
    related_project = models.ForeignKey(
        "projects.Project",
        on_delete=models.PROTECT,
        related_name="token_transactions",
        null=True,
        blank=True,
    )
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="issued_token_transactions",
        null=True,
        blank=True,
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="approved_token_transactions",
        null=True,
        blank=True,
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_COMPLETED)
    failure_reason = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(default=timezone.now)
    processed_at = models.DateTimeField(null=True, blank=True)

    objects = CityManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ("-created_at", "-id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="ck_token_transaction_amount_positive",
            ),
        ]
        indexes = [
            models.Index(
                fields=("issued_by", "transaction_type", "created_at"),
                name="idx_tokentx_issuer_day",
            ),
            models.Index(fields=("to_user", "status"), name="idx_tokentx_to_user"),
            models.Index(fields=("from_user", "status"), name="idx_tokentx_from_user"),
        ]
        verbose_name = "Token Transaction"
        verbose_name_plural = "Token Transactions"

    def __str__(self) -> str:  # pragma: no cover - admin/debug helper
        return f"{self.transaction_id} {self.transaction_type}/{self.direction} {self.amount}"

    @property
    def is_self_referencing(self) -> bool:
        return self.from_user_id is not None and self.from_user_id == self.to_user_id

    def balance_deltas(self) -> dict[int, int]:
        return balance_deltas(
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            direction=self.direction,
            amount=self.amount,
        )

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError("Token transactions are immutable; updates are not allowed.")

        current_city = get_current_city()
        if self.city_id is None and current_city is not None:
            self.city = current_city
        if self.city_id is None:
            raise ValidationError("city is required for token transactions.")
        if current_city is not None and self.city_id != current_city.id:
            raise ValidationError(
                "Cross-city ledger write blocked: entry city does not match request city."
            )

        if not self.amount or int(self.amount) <= 0:
            raise ValidationError("amount must be a positive integer.")
        if not self.transaction_id:
            raise ValidationError(
                "transaction_id is required. Use ledger.services.post_token_transaction()."
            )

        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Token transactions are immutable; deletes are not allowed.")


def balance_deltas(*, from_user_id, to_user_id, direction: str, amount: int) -> dict[int, int]:
    """Return the signed balance change per account caused by one entry."""

    amount = int(amount)
    if from_user_id is not None and from_user_id == to_user_id:
        sign = 1 if direction == TokenTransaction.DIRECTION_CREDIT else -1
        return {to_user_id: sign * amount}

    deltas = {to_user_id: amount}
    if from_user_id is not None:
        deltas[from_user_id] = -amount
    return deltas


class IdempotencyKey(models.Model):
    """Client-supplied key that makes a mutating ledger call safe to retry."""

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="idempotency_keys",
    )
    operation = models.CharField(max_length=60)
    key = models.CharField(max_length=128)
    fingerprint = models.CharField(max_length=64)
    token_transaction = models.ForeignKey(
        TokenTransaction,
        on_delete=models.PROTECT,
        related_name="idempotency_keys",
        null=True,
        blank=True,
    )
    resource_label = models.CharField(max_length=120, blank=True)
    resource_pk = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=("actor", "operation", "key"),
                name="uq_idempotency_actor_operation_key",
            ),
        ]
        verbose_name = "Idempotency Key"
        verbose_name_plural = "Idempotency Keys"

    def __str__(self) -> str:  # pragma: no cover - admin/debug helper
        return f"{self.operation}:{self.key}"
