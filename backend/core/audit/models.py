from __future__ import annotations

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone

from tenancy.context import get_current_city
from tenancy.managers import CityManager


class AuditEntry(models.Model):
    """Append-only audit record of a decision or token movement.

    Entries are chained per city with a SHA-256 hash over the previous entry, so a
    rewritten or removed row breaks the chain and shows up in `verify_chain`.
    Token balances are not derived from this table; `ledger.TokenTransaction`
    is the source of truth for amounts.
    """

    SCOPE_CITY = "CITY"
    SCOPE_PLATFORM = "PLATFORM"
    SCOPE_CHOICES = [
        (SCOPE_CITY, "City"),
        (SCOPE_PLATFORM, "Platform"),
    ]

    ACTION_CREATE = "CREATE"
    ACTION_UPDATE = "UPDATE"
    ACTION_TRANSITION = "TRANSITION"
    ACTION_TOKEN_MOVEMENT = "TOKEN_MOVEMENT"
    ACTION_SYSTEM = "SYSTEM"
    ACTION_CHOICES = [
        (ACTION_CREATE, "Create"),
        (ACTION_UPDATE, "Update"),
        (ACTION_TRANSITION, "Transition"),
        (ACTION_TOKEN_MOVEMENT, "Token movement"),
        (ACTION_SYSTEM, "System"),
    ]

    scope = models.CharField(max_length=20, choices=SCOPE_CHOICES, default=SCOPE_CITY)
    city = models.ForeignKey(
        "accounts.City",
        on_delete=models.PROTECT,
        related_name="audit_entries",
        null=True,
        blank=True,
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="audit_entries",
        null=True,
        blank=True,
    )
    actor_username = models.CharField(max_length=150, blank=True)
    actor_type = models.CharField(max_length=20, blank=True)

    action = models.CharField(max_length=20, choices=ACTION_CHOICES, default=ACTION_SYSTEM)
    event_type = models.CharField(max_length=120, blank=True)
    resource_label = models.CharField(max_length=200)
    resource_pk = models.CharField(max_length=64, blank=True)

    occurred_at = models.DateTimeField(default=timezone.now)
    request_id = models.CharField(max_length=64, blank=True)
    request_method = models.CharField(max_length=12, blank=True)
    request_path = models.CharField(max_length=255, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)

    chain_id = models.CharField(max_length=80, db_index=True)
    prev_hash = models.CharField(max_length=64, blank=True, default="")
    entry_hash = models.CharField(max_length=64, unique=True)

    data_before = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    data_after = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)

    objects = CityManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ("-occurred_at", "-id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(scope="CITY", city__isnull=False)
                | models.Q(scope="PLATFORM", city__isnull=True),
                name="ck_audit_scope_city",
            ),
            models.UniqueConstraint(
                fields=("chain_id", "prev_hash"),
                name="uq_audit_prev_hash_per_chain",
            ),
        ]
        indexes = [
            models.Index(fields=("chain_id", "occurred_at"), name="idx_audit_chain_occurred"),
            models.Index(fields=("resource_label", "resource_pk"), name="idx_audit_resource"),
        ]
        verbose_name = "Audit Entry"
        verbose_name_plural = "Audit Entries"

    def __str__(self) -> str:  # pragma: no cover - admin/debug helper
        return f"{self.occurred_at:%Y-%m-%d %H:%M:%S} [{self.chain_id}] {self.event_type}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError("Audit entries are immutable; updates are not allowed.")

        current_city = get_current_city()
        if self.scope == self.SCOPE_CITY:
            if self.city_id is None and current_city is not None:
                self.city = current_city
            if self.city_id is None:
                raise ValidationError("city is required for city audit entries.")
            if current_city is not None and self.city_id != current_city.id:
                raise ValidationError(
                    "Cross-city audit write blocked: entry city does not match request city."
                )
        elif self.city_id is not None:
            raise ValidationError("city must be NULL for platform audit entries.")

        if not self.chain_id:
            self.chain_id = f"city:{self.city_id}" if self.scope == self.SCOPE_CITY else "platform"

        if not self.entry_hash:
            raise ValidationError("entry_hash is required. Use audit.services.append_audit_entry().")

        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Audit entries are immutable; deletes are not allowed.")
