from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from ledger.api import LedgerErrorResponseMixin
from ledger.serializers import TokenTransactionSerializer
from projects.models import AllocationLimit, Project, SocialProjectRegistration
from projects.serializers import (
    AllocationLimitInputSerializer,
    AllocationLimitSerializer,
    AllocationLimitUpdateSerializer,
    ProjectApproveSerializer,
    ProjectSerializer,
    ProjectStatusSerializer,
    ProjectSupportInputSerializer,
    ProjectSupportSerializer,
    RegistrationReviewSerializer,
    SocialProjectRegistrationSerializer,
)
from projects.services.allocation_service import (
    get_allocation_limits,
    set_allocation_limits,
    update_allocation_limits,
)
from projects.services.project_service import (
    approve_project,
    create_project,
    project_funding_stats,
    review_registration,
    submit_registration,
    transition_project_status,
)
from projects.services.support_service import support_project


class RegistrationListCreateAPIView(LedgerErrorResponseMixin, generics.ListCreateAPIView):
    serializer_class = SocialProjectRegistrationSerializer
    city_resource_key = "project_registrations"

    def get_queryset(self):
        queryset = SocialProjectRegistration.objects.select_related("owner")
        if not self.request.user.is_government:
            queryset = queryset.filter(owner=self.request.user)
        status_filter = (self.request.query_params.get("status") or "").strip().lower()
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        registration = submit_registration(actor=request.user, request=request, **serializer.validated_data)
        return Response(self.get_serializer(registration).data, status=status.HTTP_201_CREATED)


class RegistrationReviewAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "project_registrations"

    def post(self, request, pk):
        serializer = RegistrationReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        registration = review_registration(
            actor=request.user,
            registration_id=pk,
            decision=serializer.validated_data["decision"],
            request=request,
        )
        return Response(SocialProjectRegistrationSerializer(registration).data)


class ProjectListCreateAPIView(LedgerErrorResponseMixin, generics.ListCreateAPIView):
    serializer_class = ProjectSerializer
    city_resource_key = "projects"

    def get_queryset(self):
        queryset = Project.objects.select_related("registration")
        status_filter = (self.request.query_params.get("status") or "").strip().lower()
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        if self.request.query_params.get("mine") and self.request.user.is_social_project:
            queryset = queryset.filter(registration__owner=self.request.user)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        project = create_project(
            actor=request.user,
            title=data.get("title", ""),
            description=data.get("description", ""),
            project_type=data.get("project_type", ""),
            funding_goal=data.get("funding_goal"),
            request=request,
        )
        return Response(self.get_serializer(project).data, status=status.HTTP_201_CREATED)


class ProjectDetailAPIView(LedgerErrorResponseMixin, generics.RetrieveAPIView):
    serializer_class = ProjectSerializer
    city_resource_key = "projects"

    def get_queryset(self):
        return Project.objects.select_related("registration")


class ProjectApproveAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "projects"

    def post(self, request, pk):
        serializer = ProjectApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        project = approve_project(
            actor=request.user,
            project_id=pk,
            funding_goal=serializer.validated_data["funding_goal"],
            citizen_token_limit=serializer.validated_data.get("citizen_token_limit"),
            request=request,
        )
        return Response(ProjectSerializer(project).data)


class ProjectStatusAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "projects"

    def post(self, request, pk):
        serializer = ProjectStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        project = transition_project_status(
            actor=request.user,
            project_id=pk,
            status=serializer.validated_data["status"],
            reason=serializer.validated_data["reason"],
            request=request,
        )
        return Response(ProjectSerializer(project).data)


class ProjectSupportAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "project_support"
    requires_idempotency_key = True

    def post(self, request, pk):
        serializer = ProjectSupportInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = support_project(
            actor=request.user,
            project_id=pk,
            tokens_to_spend=serializer.validated_data["tokens_to_spend"],
            request=request,
            idempotency_key=self.get_idempotency_key(request),
        )
        return Response(
            {
                "transaction": TokenTransactionSerializer(result.transaction).data,
                "project": ProjectSerializer(result.project).data,
                "support": ProjectSupportSerializer(result.support).data,
                "replayed": result.replayed,
            },
            status=status.HTTP_200_OK if result.replayed else status.HTTP_201_CREATED,
        )


class ProjectFundingStatsAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "projects"

    def get(self, request, pk):
        project = get_object_or_404(Project.objects.all(), pk=pk)
        return Response(project_funding_stats(project))


class ProjectAllocationLimitAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "allocation_limits"

    def get(self, request, pk):
        project = get_object_or_404(Project.objects.all(), pk=pk)
        limit = get_allocation_limits(project.id)
        if limit is None:
            return Response(
                {"code": "ALLOCATION_NOT_CONFIGURED", "detail": "No active allocation limit."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(AllocationLimitSerializer(limit).data)

    def post(self, request, pk):
        serializer = AllocationLimitInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        limit = set_allocation_limits(
            actor=request.user,
            project_id=pk,
            request=request,
            **serializer.validated_data,
        )
        return Response(AllocationLimitSerializer(limit).data, status=status.HTTP_201_CREATED)


class AllocationLimitDetailAPIView(LedgerErrorResponseMixin, APIView):
    city_resource_key = "allocation_limits"

    def get(self, request, pk):
        limit = get_object_or_404(AllocationLimit.objects.all(), pk=pk)
        return Response(AllocationLimitSerializer(limit).data)

    def patch(self, request, pk):
        serializer = AllocationLimitUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        limit = update_allocation_limits(
            actor=request.user,
            limit_id=pk,
            request=request,
            **serializer.validated_data,
        )
        return Response(AllocationLimitSerializer(limit).data)
