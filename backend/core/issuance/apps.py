from django.apps import AppConfig


class IssuanceConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "issuance"
    verbose_name = "Token Issuance"
