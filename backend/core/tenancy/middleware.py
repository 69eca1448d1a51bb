import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.http import JsonResponse

from accounts.models import City
from tenancy.context import bound_city


@dataclass(frozen=True)
class CityResolutionResult:
    city: Optional[City]
    error_response: Optional[JsonResponse] = None


class CityContextMiddleware:
    """Bind the municipality addressed by the request to the city context.

    `/api/*` requests must name their city with the `X-City-ID` header (city code
    or numeric id). Membership of the authenticated user is checked later by the
    DRF permissions, since token authentication runs inside the view.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.logger = logging.getLogger(__name__)
        self.city_id_header = getattr(settings, "CITY_ID_HEADER", "X-City-ID")
        self.required_path_prefixes = tuple(
            getattr(settings, "CITY_REQUIRED_PATH_PREFIXES", ["/api/"])
        )
        self.exempt_path_prefixes = tuple(
            getattr(settings, "CITY_EXEMPT_PATH_PREFIXES", ["/api/auth/token/"])
        )

    def __call__(self, request):
        request.correlation_id = self._resolve_correlation_id(request)
        resolution = self._resolve_city(request)

        if resolution.error_response is not None:
            resolution.error_response["X-Correlation-ID"] = request.correlation_id
            return resolution.error_response

        request.city = resolution.city
        with bound_city(resolution.city):
            response = self.get_response(request)
        response["X-Correlation-ID"] = request.correlation_id
        return response

    @staticmethod
    def _resolve_correlation_id(request) -> str:
        header_value = (request.headers.get("X-Correlation-ID", "") or "").strip()
        return header_value or str(uuid.uuid4())

    def _resolve_city(self, request) -> CityResolutionResult:
        if request.path.startswith(self.exempt_path_prefixes):
            return CityResolutionResult(city=None)

        if not request.path.startswith(self.required_path_prefixes):
            return CityResolutionResult(city=None)

        header_value = (request.headers.get(self.city_id_header, "") or "").strip().lower()
        if not header_value:
            return CityResolutionResult(
                city=None,
                error_response=JsonResponse(
                    {"code": "CITY_REQUIRED", "detail": f"City not provided. Send {self.city_id_header}."},
                    status=400,
                ),
            )

        lookup = {"id": int(header_value)} if header_value.isdigit() else {"code": header_value}
        city = City.objects.filter(is_active=True, **lookup).first()
        if city is None:
            self.logger.warning(
                "city request blocked",
                extra={
                    "correlation_id": request.correlation_id,
                    "city_header": header_value,
                    "path": request.path,
                },
            )
            return CityResolutionResult(
                city=None,
                error_response=JsonResponse(
                    {
                        "code": "CITY_NOT_FOUND",
                        "detail": "Invalid city identifier.",
                        "correlation_id": request.correlation_id,
                    },
                    status=404,
                ),
            )

        return CityResolutionResult(city=city)
