from django.db import models

from tenancy.context import get_current_city


class CityQuerySet(models.QuerySet):
    def for_actor(self, actor):
        """Rows of the actor's own city; nothing for an actor without a city."""

        city_id = getattr(actor, "city_id", None)
        if city_id is None:
            return self.none()
        return self.filter(city_id=city_id)


class CityManager(models.Manager.from_queryset(CityQuerySet)):
    """Scoped to the city bound by the request; empty when none is bound."""

    def get_queryset(self):
        queryset = super().get_queryset()
        city = get_current_city()
        if city is None:
            return queryset.none()
        return queryset.filter(city=city)
