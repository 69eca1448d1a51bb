from rest_framework.response import Response
from rest_framework.views import APIView

from audit.models import AuditEntry
from audit.serializers import AuditEntrySerializer
from audit.services import verify_chain
from tenancy.permissions import IsCityRoleAllowed


class CityAuditEntryListAPIView(APIView):
    permission_classes = [IsCityRoleAllowed]
    city_resource_key = "audit"

    def get(self, request):
        try:
            limit = int(request.query_params.get("limit", "200"))
        except ValueError:
            limit = 200
        limit = max(1, min(limit, 1000))

        entries = AuditEntry.all_objects.filter(
            scope=AuditEntry.SCOPE_CITY,
            city=request.city,
        )
        event_type = (request.query_params.get("event_type") or "").strip()
        if event_type:
            entries = entries.filter(event_type=event_type)
        resource_pk = (request.query_params.get("resource_pk") or "").strip()
        if resource_pk:
            entries = entries.filter(resource_pk=resource_pk)

        entries = entries.order_by("-occurred_at", "-id")[:limit]
        return Response(AuditEntrySerializer(entries, many=True).data)


class CityAuditChainVerifyAPIView(APIView):
    permission_classes = [IsCityRoleAllowed]
    city_resource_key = "audit"

    def get(self, request):
        result = verify_chain(f"city:{request.city.id}")
        return Response(
            {
                "chain_id": result.chain_id,
                "checked": result.checked,
                "is_intact": result.is_intact,
                "broken_at": result.broken_at,
            }
        )
