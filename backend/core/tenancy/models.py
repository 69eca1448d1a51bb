from django.core.exceptions import ValidationError
from django.db import models

from tenancy.context import get_current_city
from tenancy.managers import CityManager, CityQuerySet


class BaseCityModel(models.Model):
    city = models.ForeignKey(
        "accounts.City",
        on_delete=models.PROTECT,
        related_name="%(app_label)s_%(class)s_set",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CityManager()
    all_objects = CityQuerySet.as_manager()

    class Meta:
        abstract = True

    def _enforce_city_scope(self):
        current_city = get_current_city()

        if self.city_id is None and current_city is not None:
            self.city = current_city

        if self.city_id is None:
            raise ValidationError("city is required.")

        if current_city is not None and self.city_id != current_city.id:
            raise ValidationError(
                f"{self._meta.label} belongs to city {self.city_id}; "
                f"the request is bound to city {current_city.id}."
            )

    def save(self, *args, **kwargs):
        self._enforce_city_scope()
        return super().save(*args, **kwargs)
