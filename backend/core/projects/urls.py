from django.urls import path

from projects.views import (
    AllocationLimitDetailAPIView,
    ProjectAllocationLimitAPIView,
    ProjectApproveAPIView,
    ProjectDetailAPIView,
    ProjectFundingStatsAPIView,
    ProjectListCreateAPIView,
    ProjectStatusAPIView,
    ProjectSupportAPIView,
    RegistrationListCreateAPIView,
    RegistrationReviewAPIView,
)

urlpatterns = [
    path("", ProjectListCreateAPIView.as_view(), name="projects-list"),
    path("registrations/", RegistrationListCreateAPIView.as_view(), name="projects-registrations"),
    path(
        "registrations/<int:pk>/review/",
        RegistrationReviewAPIView.as_view(),
        name="projects-registration-review",
    ),
    path("allocation-limits/<int:pk>/", AllocationLimitDetailAPIView.as_view(), name="projects-allocation-detail"),
    path("<int:pk>/", ProjectDetailAPIView.as_view(), name="projects-detail"),
    path("<int:pk>/approve/", ProjectApproveAPIView.as_view(), name="projects-approve"),
    path("<int:pk>/status/", ProjectStatusAPIView.as_view(), name="projects-status"),
    path("<int:pk>/support/", ProjectSupportAPIView.as_view(), name="projects-support"),
    path("<int:pk>/funding/", ProjectFundingStatsAPIView.as_view(), name="projects-funding"),
    path("<int:pk>/allocation-limits/", ProjectAllocationLimitAPIView.as_view(), name="projects-allocation"),
]
