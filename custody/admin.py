# custody/admin.py

from django.contrib import admin

from .models import (
    Plant,
    AnalysisType,
    Requirement,
    Sample,
    Analysis,
    Storage,
    QREvent,
    WorkflowTransition,
    CodeSequence,
)
from .services.codes import REQUIREMENT_PREFIX, SAMPLE_PREFIX, next_code


# =============================================================
# Read-only base for audit tables
# =============================================================

class ReadOnlyAdmin(admin.ModelAdmin):
    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================
# Workflow transitions (READ-ONLY AUDIT LOG)
# =============================================================

@admin.register(WorkflowTransition)
class WorkflowTransitionAdmin(ReadOnlyAdmin):
    list_display = (
        "kind",
        "object_id",
        "from_status",
        "to_status",
        "performed_by",
        "created_at",
    )
    list_filter = ("kind", "from_status", "to_status")
    search_fields = ("object_id", "performed_by__username")
    ordering = ("-created_at",)


@admin.register(QREvent)
class QREventAdmin(ReadOnlyAdmin):
    list_display = ("sample", "event_type", "actor", "location", "occurred_at")
    list_filter = ("event_type",)
    search_fields = ("sample__qr_code", "location", "actor__username")
    ordering = ("-occurred_at",)


@admin.register(CodeSequence)
class CodeSequenceAdmin(ReadOnlyAdmin):
    list_display = ("prefix", "year", "last_value")
    ordering = ("prefix", "-year")


# =============================================================
# Catalogs
# =============================================================

@admin.register(Plant)
class PlantAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "location", "is_active")
    list_filter = ("is_active",)
    search_fields = ("code", "name")


@admin.register(AnalysisType)
class AnalysisTypeAdmin(admin.ModelAdmin):
    list_display = ("name", "method", "estimated_hours", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "method")


# =============================================================
# Workflow entities (status is changed through the API only)
# =============================================================

@admin.register(Requirement)
class RequirementAdmin(admin.ModelAdmin):
    list_display = ("code", "requester", "plant", "sample_type", "expected_quantity", "status", "created_at")
    list_filter = ("status", "plant")
    search_fields = ("code", "requester__username", "requester__email")
    readonly_fields = ("code", "status", "created_at", "updated_at")

    def save_model(self, request, obj, form, change):
        if not change:
            obj.code = next_code(REQUIREMENT_PREFIX)
        super().save_model(request, obj, form, change)


@admin.register(Sample)
class SampleAdmin(admin.ModelAdmin):
    list_display = ("qr_code", "requirement", "sample_type", "status", "received_at", "is_counter_sample")
    list_filter = ("status", "is_counter_sample")
    search_fields = ("qr_code", "requirement__code")
    readonly_fields = (
        "qr_code",
        "status",
        "received_at",
        "analysis_started_at",
        "analysis_ended_at",
        "created_at",
        "updated_at",
    )

    def save_model(self, request, obj, form, change):
        if not change:
            obj.qr_code = next_code(SAMPLE_PREFIX)
        super().save_model(request, obj, form, change)


@admin.register(Analysis)
class AnalysisAdmin(admin.ModelAdmin):
    list_display = ("sample", "analysis_type", "analyst", "status", "started_at", "ended_at")
    list_filter = ("status", "analysis_type")
    search_fields = ("sample__qr_code", "analysis_type__name")
    readonly_fields = ("status", "started_at", "ended_at", "created_at", "updated_at")


@admin.register(Storage)
class StorageAdmin(admin.ModelAdmin):
    list_display = (
        "sample",
        "location",
        "shelf",
        "box",
        "position",
        "status",
        "expires_on",
        "deletion_requested",
        "deletion_approved",
    )
    list_filter = ("status", "deletion_requested", "deletion_approved", "shelf")
    search_fields = ("sample__qr_code", "location")
    readonly_fields = ("deletion_requested", "deletion_approved", "created_at", "updated_at")

    def has_delete_permission(self, request, obj=None):
        if obj is not None and not obj.deletion_approved:
            return False
        return super().has_delete_permission(request, obj=obj)
