# custody/views.py
from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import (
    AnalysisFilter,
    RequirementFilter,
    SampleFilter,
    StorageFilter,
)
from .models import (
    Analysis,
    AnalysisType,
    Plant,
    QREvent,
    Requirement,
    Sample,
    Storage,
)
from .serializers import (
    AnalysisCancelSerializer,
    AnalysisCompleteSerializer,
    AnalysisCreateSerializer,
    AnalysisResultsSerializer,
    AnalysisSerializer,
    AnalysisStartSerializer,
    AnalysisTypeSerializer,
    AnalysisUpdateSerializer,
    DerivativeSampleSerializer,
    PlantSerializer,
    QREventCreateSerializer,
    QREventSerializer,
    RequirementCreateSerializer,
    RequirementSerializer,
    RequirementUpdateSerializer,
    SampleCreateSerializer,
    SampleReceiveSerializer,
    SampleSerializer,
    SampleUpdateSerializer,
    StatusChangeSerializer,
    StorageCreateSerializer,
    StorageSerializer,
    StorageUpdateSerializer,
    WorkflowTransitionSerializer,
)
from .services import analysis as analysis_service
from .services import qr_events as qr_service
from .services import requirements as requirement_service
from .services import samples as sample_service
from .services import statistics as statistics_service
from .services import storage as storage_service


# ===============================================================
# Utilities
# ===============================================================
def _validated(serializer_class, request, **kwargs) -> dict:
    serializer = serializer_class(data=request.data, **kwargs)
    serializer.is_valid(raise_exception=True)
    return dict(serializer.validated_data)


def _parse_int(value, field: str, default=None):
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError({field: "Must be an integer."})


# ===============================================================
# Health
# ===============================================================
class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        return Response({"status": "ok", "service": "LabTrack-LIMS"})


# ===============================================================
# Catalogs
# ===============================================================
@extend_schema(tags=["Catalogs"])
class PlantViewSet(viewsets.ModelViewSet):
    queryset = Plant.objects.all().order_by("name", "id")
    serializer_class = PlantSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ["is_active"]


@extend_schema(tags=["Catalogs"])
class AnalysisTypeViewSet(viewsets.ModelViewSet):
    queryset = AnalysisType.objects.all().order_by("name", "id")
    serializer_class = AnalysisTypeSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ["is_active"]


# ===============================================================
# Requirements
# ===============================================================
@extend_schema(tags=["Requirements"])
class RequirementViewSet(viewsets.ModelViewSet):
    queryset = Requirement.objects.select_related("requester", "plant").all()
    serializer_class = RequirementSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = RequirementFilter

    @extend_schema(request=RequirementCreateSerializer)
    def create(self, request, *args, **kwargs):
        data = _validated(RequirementCreateSerializer, request)
        data.setdefault("requester_id", request.user.pk)
        requirement = requirement_service.create_requirement(**data)
        return Response(RequirementSerializer(requirement).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=RequirementUpdateSerializer)
    def update(self, request, *args, **kwargs):
        data = _validated(RequirementUpdateSerializer, request, partial=True)
        requirement = requirement_service.update_requirement(
            requirement_id=kwargs["pk"],
            data=data,
            performed_by=request.user,
        )
        return Response(RequirementSerializer(requirement).data)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        requirement = requirement_service.remove_requirement(
            requirement_id=kwargs["pk"],
            performed_by=request.user,
        )
        return Response(RequirementSerializer(requirement).data)

    @extend_schema(request=StatusChangeSerializer)
    @action(detail=True, methods=["post", "patch"], url_path="status")
    def change_status(self, request, pk=None):
        data = _validated(StatusChangeSerializer, request)
        requirement = requirement_service.change_requirement_status(
            requirement_id=pk,
            status=data["status"],
            performed_by=request.user,
        )
        return Response(RequirementSerializer(requirement).data)

    @action(detail=False, methods=["get"], url_path=r"by-code/(?P<code>[^/]+)")
    def by_code(self, request, code=None):
        requirement = requirement_service.get_requirement_by_code(code)
        return Response(RequirementSerializer(requirement).data)

    @action(detail=False, methods=["get"])
    def history(self, request):
        qs = requirement_service.requester_history(request.user)
        return Response(RequirementSerializer(qs, many=True).data)


# ===============================================================
# Samples (canonical lifecycle enforced)
# ===============================================================
@extend_schema(tags=["Samples"])
class SampleViewSet(viewsets.ModelViewSet):
    queryset = Sample.objects.select_related("requirement", "parent").all()
    serializer_class = SampleSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = SampleFilter

    @extend_schema(request=SampleCreateSerializer)
    def create(self, request, *args, **kwargs):
        data = _validated(SampleCreateSerializer, request)
        sample = sample_service.create_sample(**data)
        return Response(SampleSerializer(sample).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=SampleUpdateSerializer)
    def update(self, request, *args, **kwargs):
        data = _validated(SampleUpdateSerializer, request, partial=True)
        sample = sample_service.update_sample(
            sample_id=kwargs["pk"],
            data=data,
            performed_by=request.user,
        )
        return Response(SampleSerializer(sample).data)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        sample = sample_service.remove_sample(sample_id=kwargs["pk"], performed_by=request.user)
        return Response(SampleSerializer(sample).data)

    @extend_schema(request=StatusChangeSerializer)
    @action(detail=True, methods=["post", "patch"], url_path="status")
    def change_status(self, request, pk=None):
        data = _validated(StatusChangeSerializer, request)
        sample = sample_service.change_sample_status(
            sample_id=pk,
            status=data["status"],
            performed_by=request.user,
        )
        return Response(SampleSerializer(sample).data)

    @extend_schema(request=SampleReceiveSerializer)
    @action(detail=True, methods=["post"])
    def receive(self, request, pk=None):
        data = _validated(SampleReceiveSerializer, request)
        sample = sample_service.receive_sample(
            sample_id=pk,
            notes=data.get("notes"),
            received_at=data.get("received_at"),
            performed_by=request.user,
        )
        return Response(SampleSerializer(sample).data)

    @extend_schema(request=DerivativeSampleSerializer)
    @action(detail=True, methods=["get", "post"])
    def derivatives(self, request, pk=None):
        if request.method == "GET":
            parent = self.get_object()
            return Response(SampleSerializer(parent.derived_samples.all(), many=True).data)

        data = _validated(DerivativeSampleSerializer, request)
        sample = sample_service.create_derivative(parent_id=pk, **data)
        return Response(SampleSerializer(sample).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def history(self, request, pk=None):
        history = sample_service.sample_history(sample_id=pk)
        storage = history["storage"]
        return Response(
            {
                "sample": SampleSerializer(history["sample"]).data,
                "qr_events": QREventSerializer(history["qr_events"], many=True).data,
                "analyses": AnalysisSerializer(history["analyses"], many=True).data,
                "storage": StorageSerializer(storage).data if storage else None,
                "transitions": WorkflowTransitionSerializer(history["transitions"], many=True).data,
                "derived_samples": SampleSerializer(history["derived_samples"], many=True).data,
            }
        )

    @action(detail=False, methods=["get"], url_path=r"by-qr/(?P<qr_code>[^/]+)")
    def by_qr(self, request, qr_code=None):
        return Response(SampleSerializer(sample_service.get_sample_by_qr(qr_code)).data)


# ===============================================================
# Analyses
# ===============================================================
@extend_schema(tags=["Analyses"])
class AnalysisViewSet(viewsets.ModelViewSet):
    queryset = Analysis.objects.select_related("sample", "analysis_type", "analyst").all()
    serializer_class = AnalysisSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = AnalysisFilter
    http_method_names = ["get", "post", "put", "patch", "head", "options"]

    @extend_schema(request=AnalysisCreateSerializer)
    def create(self, request, *args, **kwargs):
        data = _validated(AnalysisCreateSerializer, request)
        analysis = analysis_service.create_analysis(**data)
        return Response(AnalysisSerializer(analysis).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=AnalysisUpdateSerializer)
    def update(self, request, *args, **kwargs):
        data = _validated(AnalysisUpdateSerializer, request, partial=True)
        analysis = analysis_service.update_analysis(
            analysis_id=kwargs["pk"],
            data=data,
            performed_by=request.user,
        )
        return Response(AnalysisSerializer(analysis).data)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    @extend_schema(request=AnalysisStartSerializer)
    @action(detail=True, methods=["post"])
    def start(self, request, pk=None):
        data = _validated(AnalysisStartSerializer, request)
        analysis = analysis_service.start_analysis(
            analysis_id=pk,
            analyst_id=data.get("analyst_id"),
            performed_by=request.user,
        )
        return Response(AnalysisSerializer(analysis).data)

    @extend_schema(request=AnalysisCompleteSerializer)
    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):
        data = _validated(AnalysisCompleteSerializer, request)
        analysis = analysis_service.complete_analysis(
            analysis_id=pk,
            performed_by=request.user,
            **data,
        )
        return Response(AnalysisSerializer(analysis).data)

    @extend_schema(request=AnalysisCancelSerializer)
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        data = _validated(AnalysisCancelSerializer, request)
        analysis = analysis_service.cancel_analysis(
            analysis_id=pk,
            reason=data.get("reason"),
            performed_by=request.user,
        )
        return Response(AnalysisSerializer(analysis).data)

    @extend_schema(request=AnalysisResultsSerializer)
    @action(detail=True, methods=["post", "patch"])
    def results(self, request, pk=None):
        data = _validated(AnalysisResultsSerializer, request)
        analysis = analysis_service.upload_results(analysis_id=pk, **data)
        return Response(AnalysisSerializer(analysis).data)

    @action(detail=False, methods=["get"], url_path=r"by-sample/(?P<sample_id>\d+)")
    def by_sample(self, request, sample_id=None):
        qs = analysis_service.analyses_for_sample(int(sample_id))
        return Response(AnalysisSerializer(qs, many=True).data)

    @action(detail=False, methods=["get"], url_path=r"by-status/(?P<status_value>[A-Za-z_]+)")
    def by_status(self, request, status_value=None):
        qs = analysis_service.analyses_by_status(status_value)
        return Response(AnalysisSerializer(qs, many=True).data)

    @action(detail=False, methods=["get"])
    def statistics(self, request):
        return Response(analysis_service.analysis_statistics())


# ===============================================================
# Storage (two-step deletion)
# ===============================================================
@extend_schema(tags=["Storage"])
class StorageViewSet(viewsets.ModelViewSet):
    queryset = Storage.objects.select_related("sample").all()
    serializer_class = StorageSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = StorageFilter

    @extend_schema(request=StorageCreateSerializer)
    def create(self, request, *args, **kwargs):
        data = _validated(StorageCreateSerializer, request)
        storage = storage_service.create_storage(**data)
        return Response(StorageSerializer(storage).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=StorageUpdateSerializer)
    def update(self, request, *args, **kwargs):
        data = _validated(StorageUpdateSerializer, request, partial=True)
        storage = storage_service.update_storage(storage_id=kwargs["pk"], data=data)
        return Response(StorageSerializer(storage).data)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        storage_service.remove_storage(storage_id=kwargs["pk"])
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="request-deletion")
    def request_deletion(self, request, pk=None):
        storage = storage_service.request_deletion(storage_id=pk)
        return Response(StorageSerializer(storage).data)

    @action(detail=True, methods=["post"], url_path="approve-deletion")
    def approve_deletion(self, request, pk=None):
        storage = storage_service.approve_deletion(storage_id=pk)
        return Response(StorageSerializer(storage).data)

    @extend_schema(parameters=[OpenApiParameter("days", int, required=False)])
    @action(detail=False, methods=["get"])
    def expiring(self, request):
        days = _parse_int(request.query_params.get("days"), "days")
        qs = storage_service.expiring_soon(days=days)
        return Response(StorageSerializer(qs, many=True).data)

    @action(detail=False, methods=["get"])
    def statistics(self, request):
        return Response(storage_service.storage_statistics())

    @action(detail=False, methods=["get"], url_path=r"locations/(?P<shelf>[^/]+)")
    def locations(self, request, shelf=None):
        return Response(storage_service.shelf_locations(shelf))

    @action(detail=False, methods=["get"], url_path=r"by-sample/(?P<sample_id>\d+)")
    def by_sample(self, request, sample_id=None):
        return Response(StorageSerializer(storage_service.find_by_sample(int(sample_id))).data)


# ===============================================================
# QR events (append-only)
# ===============================================================
@extend_schema(tags=["QR"])
class QREventViewSet(mixins.CreateModelMixin, viewsets.GenericViewSet):
    queryset = QREvent.objects.select_related("sample", "actor").all()
    serializer_class = QREventSerializer
    permission_classes = [IsAuthenticated]

    @extend_schema(parameters=[OpenApiParameter("limit", int, required=False)])
    def list(self, request, *args, **kwargs):
        limit = _parse_int(request.query_params.get("limit"), "limit")
        events = qr_service.recent_events(limit=limit)
        return Response(QREventSerializer(events, many=True).data)

    @extend_schema(request=QREventCreateSerializer)
    def create(self, request, *args, **kwargs):
        data = _validated(QREventCreateSerializer, request)
        data.setdefault("actor_id", request.user.pk)
        event = qr_service.record_event(**data)
        return Response(QREventSerializer(event).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path=r"by-type/(?P<event_type>[A-Za-z_]+)")
    def by_type(self, request, event_type=None):
        return Response(QREventSerializer(qr_service.events_by_type(event_type), many=True).data)

    @extend_schema(parameters=[OpenApiParameter("location", str, required=True)])
    @action(detail=False, methods=["get"], url_path="by-location")
    def by_location(self, request):
        location = (request.query_params.get("location") or "").strip()
        if not location:
            raise ValidationError({"location": "This query parameter is required."})
        events = qr_service.search_by_location(location)
        return Response(
            {
                "location": location,
                "events": QREventSerializer(events, many=True).data,
                "total": len(events),
            }
        )

    @action(detail=False, methods=["get"])
    def statistics(self, request):
        return Response(qr_service.event_statistics())


class QRCodeEventsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["QR"])
    def get(self, request, qr_code: str):
        found = qr_service.events_for_qr(qr_code)
        events = QREventSerializer(found["events"], many=True).data
        return Response(
            {
                "sample": SampleSerializer(found["sample"]).data,
                "events": events,
                "total": len(events),
            }
        )


class SampleTimelineView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["QR"])
    def get(self, request, pk: int):
        found = qr_service.sample_timeline(pk)
        return Response(
            {
                "sample": SampleSerializer(found["sample"]).data,
                "timeline": QREventSerializer(found["events"], many=True).data,
            }
        )


# ===============================================================
# Dashboard
# ===============================================================
class DashboardView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Dashboard"])
    def get(self, request):
        payload = statistics_service.dashboard_overview()
        payload["requirements"] = statistics_service.requirement_statistics()
        payload["samples"] = statistics_service.sample_statistics()
        return Response(payload)
