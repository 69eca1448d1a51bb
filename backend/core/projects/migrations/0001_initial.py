# Generated manually. Keep in sync with projects/models.py.

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="SocialProjectRegistration",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("organization_name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("contact_email", models.EmailField(blank=True, max_length=254)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected")], default="pending", max_length=20)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("city", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="%(app_label)s_%(class)s_set", to="accounts.city")),
                ("owner", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="project_registrations", to=settings.AUTH_USER_MODEL)),
                ("reviewed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="reviewed_project_registrations", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Social Project Registration",
                "verbose_name_plural": "Social Project Registrations",
                "ordering": ("organization_name", "id"),
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="Project",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("project_type", models.CharField(blank=True, max_length=80)),
                ("funding_goal", models.PositiveIntegerField(default=0)),
                ("tokens_funded", models.PositiveIntegerField(default=0)),
                ("allocation_set", models.BooleanField(default=False)),
                ("status", models.CharField(choices=[("pending_approval", "Pending approval"), ("active", "Active"), ("inactive", "Inactive"), ("completed", "Completed"), ("rejected", "Rejected")], default="pending_approval", max_length=20)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("status_reason", models.CharField(blank=True, max_length=500)),
                ("approved_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="approved_projects", to=settings.AUTH_USER_MODEL)),
                ("city", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="%(app_label)s_%(class)s_set", to="accounts.city")),
                ("registration", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="projects", to="projects.socialprojectregistration")),
            ],
            options={
                "verbose_name": "Project",
                "verbose_name_plural": "Projects",
                "ordering": ("-created_at", "-id"),
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("tokens_funded__gte", 0)), name="ck_project_tokens_funded_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProjectSupport",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("tokens_spent", models.PositiveIntegerField(default=0)),
                ("citizen", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="project_supports", to=settings.AUTH_USER_MODEL)),
                ("city", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="%(app_label)s_%(class)s_set", to="accounts.city")),
                ("project", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="supports", to="projects.project")),
            ],
            options={
                "verbose_name": "Project Support",
                "verbose_name_plural": "Project Supports",
                "ordering": ("-updated_at", "-id"),
                "abstract": False,
                "constraints": [
                    models.UniqueConstraint(fields=("project", "citizen"), name="uq_project_support_project_citizen"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AllocationLimit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("citizen_token_limit", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(100)])),
                ("project_token_limit", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(1000)])),
                ("status", models.CharField(choices=[("active", "Active"), ("inactive", "Inactive")], default="active", max_length=20)),
                ("notes", models.CharField(blank=True, max_length=500)),
                ("city", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="%(app_label)s_%(class)s_set", to="accounts.city")),
                ("project", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="allocation_limits", to="projects.project")),
                ("set_by", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="allocation_limits_set", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Allocation Limit",
                "verbose_name_plural": "Allocation Limits",
                "ordering": ("-created_at", "-id"),
                "abstract": False,
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("status", "active")), fields=("project",), name="uq_allocation_limit_active_per_project"),
                    models.CheckConstraint(condition=models.Q(("citizen_token_limit__gte", 1), ("citizen_token_limit__lte", 100)), name="ck_allocation_citizen_limit_range"),
                    models.CheckConstraint(condition=models.Q(("project_token_limit__gte", 1), ("project_token_limit__lte", 1000)), name="ck_allocation_project_limit_range"),
                    models.CheckConstraint(condition=models.Q(("citizen_token_limit__lte", models.F("project_token_limit"))), name="ck_allocation_citizen_within_project"),
                ],
            },
        ),
    ]
