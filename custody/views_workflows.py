# custody/views_workflows.py

from drf_spectacular.utils import extend_schema
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from custody.models import WorkflowTransition
from custody.serializers import WorkflowTransitionSerializer
from custody.workflows import (
    WORKFLOW_KINDS,
    allowed_next_states,
    is_terminal,
    normalize_kind,
    workflow_definition,
)
from custody.workflows.transition_service import get_workflow_object


def _normalize_kind(kind: str) -> str:
    k = normalize_kind(kind)
    if k not in WORKFLOW_KINDS:
        raise ValidationError(
            {"kind": f"Invalid workflow kind. Use one of: {', '.join(WORKFLOW_KINDS)}."}
        )
    return k


class WorkflowDefinitionView(APIView):
    """
    GET /lims/workflows/<kind>/
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflows"])
    def get(self, request, kind: str):
        return Response(workflow_definition(_normalize_kind(kind)))


class WorkflowStateView(APIView):
    """
    GET /lims/workflows/<kind>/<pk>/

    Current status plus the states reachable from it.
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflows"])
    def get(self, request, kind: str, pk: int):
        kind = _normalize_kind(kind)
        obj = get_workflow_object(kind, pk)

        return Response(
            {
                "kind": kind,
                "object_id": obj.pk,
                "current": obj.status,
                "allowed": allowed_next_states(kind, obj.status),
                "terminal": is_terminal(kind, obj.status),
            }
        )


class WorkflowHistoryView(APIView):
    """
    GET /lims/workflows/<kind>/<pk>/history/
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflows"])
    def get(self, request, kind: str, pk: int):
        kind = _normalize_kind(kind)
        obj = get_workflow_object(kind, pk)

        qs = (
            WorkflowTransition.objects.filter(kind=kind, object_id=obj.pk)
            .select_related("performed_by")
            .order_by("created_at", "id")
        )

        return Response(
            {
                "kind": kind,
                "object_id": obj.pk,
                "current": obj.status,
                "history": WorkflowTransitionSerializer(qs, many=True).data,
            }
        )
