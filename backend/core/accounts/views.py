from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.serializers import AuthenticatedUserSerializer
from tenancy.permissions import IsCityMember
from tenancy.rbac import capabilities_for_role


class AuthenticatedUserAPIView(APIView):
    permission_classes = [IsCityMember]

    def get(self, request):
        return Response(AuthenticatedUserSerializer(request.user).data)


class CapabilitiesAPIView(APIView):
    permission_classes = [IsCityMember]

    def get(self, request):
        return Response(
            {
                "user_type": request.user.user_type,
                "city": request.city.code,
                "capabilities": capabilities_for_role(request.user.user_type),
            }
        )
