from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.validators import MinValueValidator
from django.db import models


class City(models.Model):
    name = models.CharField(max_length=150)
    code = models.SlugField(
        max_length=63,
        unique=True,
        help_text="Identifier used in the X-City-ID header.",
    )
    province = models.CharField(max_length=120, blank=True)
    country = models.CharField(max_length=80, default="Argentina")
    contact_email = models.EmailField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("name",)
        verbose_name = "City"
        verbose_name_plural = "Cities"

    def __str__(self):
        return f"{self.name} ({self.code})"


class User(AbstractUser):
    TYPE_CITIZEN = "citizen"
    TYPE_SOCIAL_PROJECT = "social_project"
    TYPE_GOVERNMENT = "government"
    TYPE_CHOICES = [
        (TYPE_CITIZEN, "Citizen"),
        (TYPE_SOCIAL_PROJECT, "Social project"),
        (TYPE_GOVERNMENT, "Government"),
    ]

    user_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_CITIZEN)
    city = models.ForeignKey(
        City,
        on_delete=models.PROTECT,
        related_name="users",
        null=True,
        blank=True,
    )
    full_name = models.CharField(max_length=200, blank=True)
    phone = models.CharField(max_length=40, blank=True)
    is_approved = models.BooleanField(default=False)
    # Cache of the ledger; only ledger.services may write these two columns.
    token_balance = models.PositiveIntegerField(default=0)
    reserved_tokens = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ("username",)
        constraints = [
            models.CheckConstraint(
                condition=models.Q(token_balance__gte=0),
                name="ck_user_token_balance_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(reserved_tokens__gte=0),
                name="ck_user_reserved_tokens_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.username} ({self.user_type})"

    @property
    def is_citizen(self) -> bool:
        return self.user_type == self.TYPE_CITIZEN

    @property
    def is_social_project(self) -> bool:
        return self.user_type == self.TYPE_SOCIAL_PROJECT

    @property
    def is_government(self) -> bool:
        return self.user_type == self.TYPE_GOVERNMENT

    @property
    def available_tokens(self) -> int:
        return max(int(self.token_balance) - int(self.reserved_tokens), 0)

    @property
    def is_approved_government(self) -> bool:
        if not self.is_government or not self.is_approved or not self.is_active:
            return False
        profile = getattr(self, "government_profile", None)
        return profile is not None and profile.status == GovernmentProfile.STATUS_APPROVED


def _default_daily_issuance_limit():
    return getattr(settings, "DEFAULT_DAILY_ISSUANCE_LIMIT", 10000)


class GovernmentProfile(models.Model):
    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"
    STATUS_SUSPENDED = "suspended"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_REJECTED, "Rejected"),
        (STATUS_SUSPENDED, "Suspended"),
    ]

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="government_profile",
    )
    department = models.CharField(max_length=200, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    daily_issuance_limit = models.PositiveIntegerField(
        default=_default_daily_issuance_limit,
        validators=[MinValueValidator(1)],
    )
    default_citizen_limit = models.PositiveIntegerField(default=100)
    default_project_limit = models.PositiveIntegerField(default=1000)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Government Profile"
        verbose_name_plural = "Government Profiles"

    def __str__(self):
        return f"{self.user.username} ({self.status})"
