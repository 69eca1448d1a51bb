from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from tenancy.models import BaseCityModel

CITIZEN_TOKEN_LIMIT_MAX = 100
PROJECT_TOKEN_LIMIT_MAX = 1000


class SocialProjectRegistration(BaseCityModel):
    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_REJECTED, "Rejected"),
    ]

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="project_registrations",
    )
    organization_name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    contact_email = models.EmailField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="reviewed_project_registrations",
        null=True,
        blank=True,
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("organization_name", "id")
        verbose_name = "Social Project Registration"
        verbose_name_plural = "Social Project Registrations"

    def __str__(self):
        return f"{self.organization_name} ({self.status})"


class Project(BaseCityModel):
    STATUS_PENDING_APPROVAL = "pending_approval"
    STATUS_ACTIVE = "active"
    STATUS_INACTIVE = "inactive"
    STATUS_COMPLETED = "completed"
    STATUS_REJECTED = "rejected"
    STATUS_CHOICES = [
        (STATUS_PENDING_APPROVAL, "Pending approval"),
        (STATUS_ACTIVE, "Active"),
        (STATUS_INACTIVE, "Inactive"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_REJECTED, "Rejected"),
    ]

    registration = models.ForeignKey(
        SocialProjectRegistration,
        on_delete=models.PROTECT,
        related_name="projects",
    )
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    project_type = models.CharField(max_length=80, blank=True)
    funding_goal = models.PositiveIntegerField(default=0)
    tokens_funded = models.PositiveIntegerField(default=0)
    allocation_set = models.BooleanField(default=False)
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING_APPROVAL,
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="approved_projects",
        null=True,
        blank=True,
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    status_reason = models.CharField(max_length=500, blank=True)

    class Meta:
        ordering = ("-created_at", "-id")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(tokens_funded__gte=0),
                name="ck_project_tokens_funded_non_negative",
            ),
        ]
        verbose_name = "Project"
        verbose_name_plural = "Projects"

    def __str__(self):
        return f"{self.title} ({self.status})"

    @property
    def owner(self):
        return self.registration.owner

    @property
    def owner_id(self):
        return self.registration.owner_id

    @property
    def funding_percentage(self) -> int:
        return funding_percentage(self.tokens_funded, self.funding_goal)

    @property
    def tokens_needed(self) -> int:
        return max(int(self.funding_goal) - int(self.tokens_funded), 0)

    @property
    def is_fully_funded(self) -> bool:
        return self.funding_goal > 0 and self.tokens_funded >= self.funding_goal


def funding_percentage(tokens_funded: int, funding_goal: int) -> int:
    if not funding_goal:
        return 0
    return round(int(tokens_funded) / int(funding_goal) * 100)


class ProjectSupport(BaseCityModel):
    """Running total a citizen has spent on one project."""

    project = models.ForeignKey(Project, on_delete=models.PROTECT, related_name="supports")
    citizen = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="project_supports",
    )
    tokens_spent = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ("-updated_at", "-id")
        constraints = [
            models.UniqueConstraint(
                fields=("project", "citizen"),
                name="uq_project_support_project_citizen",
            ),
        ]
        verbose_name = "Project Support"
        verbose_name_plural = "Project Supports"

    def __str__(self):
        return f"{self.citizen_id} -> {self.project_id}: {self.tokens_spent}"


class AllocationLimit(BaseCityModel):
    STATUS_ACTIVE = "active"
    STATUS_INACTIVE = "inactive"
    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_INACTIVE, "Inactive"),
    ]

    project = models.ForeignKey(Project, on_delete=models.PROTECT, related_name="allocation_limits")
    citizen_token_limit = models.PositiveIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(CITIZEN_TOKEN_LIMIT_MAX)],
    )
    project_token_limit = models.PositiveIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(PROJECT_TOKEN_LIMIT_MAX)],
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    set_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="allocation_limits_set",
    )
    notes = models.CharField(max_length=500, blank=True)

    class Meta:
        ordering = ("-created_at", "-id")
        constraints = [
            models.UniqueConstraint(
                fields=("project",),
                condition=models.Q(status="active"),
                name="uq_allocation_limit_active_per_project",
            ),
            models.CheckConstraint(
                condition=models.Q(citizen_token_limit__gte=1, citizen_token_limit__lte=CITIZEN_TOKEN_LIMIT_MAX),
                name="ck_allocation_citizen_limit_range",
            ),
            models.CheckConstraint(
                condition=models.Q(project_token_limit__gte=1, project_token_limit__lte=PROJECT_TOKEN_LIMIT_MAX),
                name="ck_allocation_project_limit_range",
            ),
            models.CheckConstraint(
                condition=models.Q(citizen_token_limit__lte=models.F("project_token_limit")),
                name="ck_allocation_citizen_within_project",
            ),
        ]
        verbose_name = "Allocation Limit"
        verbose_name_plural = "Allocation Limits"

    def __str__(self):
        return f"{self.project_id}: {self.citizen_token_limit}/{self.project_token_limit} ({self.status})"
