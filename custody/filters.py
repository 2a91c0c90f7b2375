# custody/filters.py
import django_filters as df
from .models import Requirement, Sample, Analysis, Storage


class RequirementFilter(df.FilterSet):
    requester = df.NumberFilter(field_name="requester_id")
    plant = df.NumberFilter(field_name="plant_id")
    status = df.CharFilter(field_name="status", lookup_expr="iexact")
    code = df.CharFilter(field_name="code", lookup_expr="icontains")
    created_at = df.DateFromToRangeFilter()

    class Meta:
        model = Requirement
        fields = ["requester", "plant", "status", "code", "created_at"]


class SampleFilter(df.FilterSet):
    requirement = df.NumberFilter(field_name="requirement_id")
    status = df.CharFilter(field_name="status", lookup_expr="iexact")
    qr_code = df.CharFilter(field_name="qr_code", lookup_expr="icontains")
    sample_type = df.CharFilter(field_name="sample_type", lookup_expr="icontains")

    class Meta:
        model = Sample
        fields = ["requirement", "status", "qr_code", "sample_type", "is_counter_sample"]


class AnalysisFilter(df.FilterSet):
    sample = df.NumberFilter(field_name="sample_id")
    analysis_type = df.NumberFilter(field_name="analysis_type_id")
    analyst = df.NumberFilter(field_name="analyst_id")
    status = df.CharFilter(field_name="status", lookup_expr="iexact")

    class Meta:
        model = Analysis
        fields = ["sample", "analysis_type", "analyst", "status"]


class StorageFilter(df.FilterSet):
    status = df.CharFilter(field_name="status", lookup_expr="iexact")
    location = df.CharFilter(field_name="location", lookup_expr="icontains")
    shelf = df.CharFilter(field_name="shelf")

    class Meta:
        model = Storage
        fields = ["status", "location", "shelf", "deletion_requested", "deletion_approved"]

