# custody/serializers.py
from __future__ import annotations

from typing import List

from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import (
    Analysis,
    AnalysisType,
    Plant,
    QREvent,
    Requirement,
    Sample,
    Storage,
    WorkflowTransition,
)
from .workflows import allowed_next_states

User = get_user_model()


# ===============================================================
# Helpers
# ===============================================================

class UserSlimSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "username", "email", "first_name", "last_name")
        read_only_fields = fields


class StatusChangeSerializer(serializers.Serializer):
    status = serializers.CharField()


# ===============================================================
# Catalogs
# ===============================================================

class PlantSerializer(serializers.ModelSerializer):
    class Meta:
        model = Plant
        fields = ("id", "code", "name", "location", "is_active", "created_at", "updated_at")
        read_only_fields = ("id", "created_at", "updated_at")


class AnalysisTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = AnalysisType
        fields = (
            "id",
            "name",
            "description",
            "method",
            "estimated_hours",
            "is_active",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "created_at", "updated_at")


# ===============================================================
# Requirement
# ===============================================================

class RequirementSerializer(serializers.ModelSerializer):
    requester = UserSlimSerializer(read_only=True)
    plant_code = serializers.CharField(source="plant.code", read_only=True, default=None)
    sample_count = serializers.SerializerMethodField()
    allowed_next_states = serializers.SerializerMethodField()

    class Meta:
        model = Requirement
        fields = (
            "id",
            "code",
            "requester",
            "plant",
            "plant_code",
            "sample_type",
            "expected_quantity",
            "description",
            "attachments",
            "status",
            "allowed_next_states",
            "sample_count",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_sample_count(self, obj: Requirement) -> int:
        return obj.samples.count()

    def get_allowed_next_states(self, obj: Requirement) -> List[str]:
        return allowed_next_states("requirement", obj.status)


class RequirementCreateSerializer(serializers.Serializer):
    requester_id = serializers.IntegerField(required=False)
    plant_id = serializers.IntegerField(required=False, allow_null=True)
    sample_type = serializers.CharField(max_length=100)
    expected_quantity = serializers.IntegerField(min_value=1)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    attachments = serializers.ListField(child=serializers.CharField(), required=False, default=list)


class RequirementUpdateSerializer(serializers.Serializer):
    plant_id = serializers.IntegerField(required=False, allow_null=True)
    sample_type = serializers.CharField(max_length=100, required=False)
    expected_quantity = serializers.IntegerField(min_value=1, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    attachments = serializers.ListField(child=serializers.CharField(), required=False)
    status = serializers.CharField(required=False)


# ===============================================================
# Sample
# ===============================================================

class SampleSerializer(serializers.ModelSerializer):
    requirement_code = serializers.CharField(source="requirement.code", read_only=True)
    parent_qr_code = serializers.CharField(source="parent.qr_code", read_only=True, default=None)
    allowed_next_states = serializers.SerializerMethodField()

    class Meta:
        model = Sample
        fields = (
            "id",
            "qr_code",
            "requirement",
            "requirement_code",
            "parent",
            "parent_qr_code",
            "sample_type",
            "sample_format",
            "quantity",
            "status",
            "allowed_next_states",
            "received_at",
            "analysis_started_at",
            "analysis_ended_at",
            "notes",
            "is_counter_sample",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_allowed_next_states(self, obj: Sample) -> List[str]:
        return allowed_next_states("sample", obj.status)


class SampleCreateSerializer(serializers.Serializer):
    requirement_id = serializers.IntegerField()
    parent_id = serializers.IntegerField(required=False, allow_null=True)
    sample_type = serializers.CharField(max_length=100)
    sample_format = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    quantity = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    is_counter_sample = serializers.BooleanField(required=False, default=False)


class SampleUpdateSerializer(serializers.Serializer):
    sample_type = serializers.CharField(max_length=100, required=False)
    sample_format = serializers.CharField(max_length=100, required=False, allow_blank=True)
    quantity = serializers.CharField(max_length=100, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    is_counter_sample = serializers.BooleanField(required=False)
    status = serializers.CharField(required=False)


class SampleReceiveSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True)
    received_at = serializers.DateTimeField(required=False)


class DerivativeSampleSerializer(serializers.Serializer):
    sample_type = serializers.CharField(max_length=100, required=False)
    sample_format = serializers.CharField(max_length=100, required=False, allow_blank=True)
    quantity = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    is_counter_sample = serializers.BooleanField(required=False, default=False)


# ===============================================================
# Analysis
# ===============================================================

class AnalysisSerializer(serializers.ModelSerializer):
    sample_qr_code = serializers.CharField(source="sample.qr_code", read_only=True)
    analysis_type_name = serializers.CharField(source="analysis_type.name", read_only=True)
    analyst = UserSlimSerializer(read_only=True)
    allowed_next_states = serializers.SerializerMethodField()

    class Meta:
        model = Analysis
        fields = (
            "id",
            "sample",
            "sample_qr_code",
            "analysis_type",
            "analysis_type_name",
            "analyst",
            "status",
            "allowed_next_states",
            "started_at",
            "ended_at",
            "results",
            "report_url",
            "notes",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_allowed_next_states(self, obj: Analysis) -> List[str]:
        return allowed_next_states("analysis", obj.status)


class AnalysisCreateSerializer(serializers.Serializer):
    sample_id = serializers.IntegerField()
    analysis_type_id = serializers.IntegerField()
    analyst_id = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class AnalysisUpdateSerializer(serializers.Serializer):
    analyst_id = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    results = serializers.DictField(required=False)
    report_url = serializers.CharField(max_length=500, required=False, allow_blank=True)
    status = serializers.CharField(required=False)
    started_at = serializers.DateTimeField(required=False)
    ended_at = serializers.DateTimeField(required=False)


class AnalysisStartSerializer(serializers.Serializer):
    analyst_id = serializers.IntegerField(required=False, allow_null=True)


class AnalysisResultsSerializer(serializers.Serializer):
    results = serializers.DictField(required=False)
    report_url = serializers.CharField(max_length=500, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class AnalysisCompleteSerializer(AnalysisResultsSerializer):
    ended_at = serializers.DateTimeField(required=False)


class AnalysisCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True)


# ===============================================================
# Storage
# ===============================================================

class StorageSerializer(serializers.ModelSerializer):
    sample_qr_code = serializers.CharField(source="sample.qr_code", read_only=True)

    class Meta:
        model = Storage
        fields = (
            "id",
            "sample",
            "sample_qr_code",
            "location",
            "shelf",
            "box",
            "position",
            "stored_at",
            "expires_on",
            "status",
            "deletion_requested",
            "deletion_approved",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class StorageCreateSerializer(serializers.Serializer):
    sample_id = serializers.IntegerField()
    location = serializers.CharField(max_length=255)
    shelf = serializers.CharField(max_length=50)
    box = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    position = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    expires_on = serializers.DateTimeField(required=False, allow_null=True)
    stored_at = serializers.DateTimeField(required=False)


class StorageUpdateSerializer(serializers.Serializer):
    location = serializers.CharField(max_length=255, required=False)
    shelf = serializers.CharField(max_length=50, required=False)
    box = serializers.CharField(max_length=50, required=False, allow_blank=True)
    position = serializers.CharField(max_length=50, required=False, allow_blank=True)
    expires_on = serializers.DateTimeField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=Storage.Status.choices, required=False)


# ===============================================================
# QR events (append-only)
# ===============================================================

class QREventSerializer(serializers.ModelSerializer):
    sample_qr_code = serializers.CharField(source="sample.qr_code", read_only=True)
    actor = UserSlimSerializer(read_only=True)

    class Meta:
        model = QREvent
        fields = (
            "id",
            "sample",
            "sample_qr_code",
            "event_type",
            "actor",
            "location",
            "metadata",
            "occurred_at",
        )
        read_only_fields = fields


class QREventCreateSerializer(serializers.Serializer):
    qr_code = serializers.CharField(max_length=32)
    event_type = serializers.ChoiceField(choices=QREvent.EventType.choices)
    actor_id = serializers.IntegerField(required=False)
    location = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    metadata = serializers.DictField(required=False, default=dict)


# ===============================================================
# Workflow history (READ-ONLY)
# ===============================================================

class WorkflowTransitionSerializer(serializers.ModelSerializer):
    performed_by = UserSlimSerializer(read_only=True)

    class Meta:
        model = WorkflowTransition
        fields = ("id", "kind", "object_id", "from_status", "to_status", "performed_by", "created_at")
        read_only_fields = fields
