# custody/urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter

# -------------------------------------------------
# Core API ViewSets
# -------------------------------------------------
from .views import (
    HealthCheckView,
    DashboardView,
    PlantViewSet,
    AnalysisTypeViewSet,
    RequirementViewSet,
    SampleViewSet,
    AnalysisViewSet,
    StorageViewSet,
    QREventViewSet,
    QRCodeEventsView,
    SampleTimelineView,
)

# -------------------------------------------------
# Workflow introspection (canonical, read-only)
# -------------------------------------------------
from .views_workflows import (
    WorkflowDefinitionView,
    WorkflowStateView,
    WorkflowHistoryView,
)


router = DefaultRouter()
router.register(r"plants", PlantViewSet, basename="plant")
router.register(r"analysis-types", AnalysisTypeViewSet, basename="analysis-type")
router.register(r"requirements", RequirementViewSet, basename="requirement")
router.register(r"samples", SampleViewSet, basename="sample")
router.register(r"analyses", AnalysisViewSet, basename="analysis")
router.register(r"storage", StorageViewSet, basename="storage")
router.register(r"qr/events", QREventViewSet, basename="qr-event")


urlpatterns = [
    path("health/", HealthCheckView.as_view(), name="health"),
    path("dashboard/", DashboardView.as_view(), name="dashboard"),

    # QR lookups
    path("qr/<str:qr_code>/events/", QRCodeEventsView.as_view(), name="qr-code-events"),
    path("qr/samples/<int:pk>/timeline/", SampleTimelineView.as_view(), name="qr-sample-timeline"),

    # Workflows
    path("workflows/<str:kind>/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
    path("workflows/<str:kind>/<int:pk>/", WorkflowStateView.as_view(), name="workflow-state"),
    path(
        "workflows/<str:kind>/<int:pk>/history/",
        WorkflowHistoryView.as_view(),
        name="workflow-history",
    ),

    path("", include(router.urls)),
]
