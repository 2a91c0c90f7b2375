# custody/models/core.py

from django.db import models
from django.conf import settings
from django.utils import timezone

from custody.workflows.guards import WorkflowWriteGuardMixin


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Catalogs
# ============================================================
class Plant(TimeStampedModel):
    """Production plant a requirement may originate from."""

    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=255)
    location = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.code} - {self.name}"


class AnalysisType(TimeStampedModel):
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    method = models.CharField(max_length=255, blank=True)
    estimated_hours = models.PositiveIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


# ============================================================
# Requirement
# ============================================================
class Requirement(WorkflowWriteGuardMixin, TimeStampedModel):
    """Intake request for a batch of samples."""

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        SUBMITTED = "SUBMITTED", "Submitted"
        IN_PROGRESS = "IN_PROGRESS", "In progress"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"

    code = models.CharField(max_length=32, unique=True, editable=False)
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="requirements",
    )
    plant = models.ForeignKey(
        Plant,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="requirements",
    )
    sample_type = models.CharField(max_length=100)
    expected_quantity = models.PositiveIntegerField(default=1)
    description = models.TextField(blank=True)
    attachments = models.JSONField(default=list, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["requester", "status"], name="req_requester_status_idx"),
        ]

    def __str__(self):
        return f"{self.code} ({self.status})"


# ============================================================
# Sample
# ============================================================
class Sample(WorkflowWriteGuardMixin, TimeStampedModel):
    """Physical specimen tracked through custody states."""

    class Status(models.TextChoices):
        EXPECTED = "EXPECTED", "Expected"
        RECEIVED = "RECEIVED", "Received"
        IN_ANALYSIS = "IN_ANALYSIS", "In analysis"
        ANALYSIS_COMPLETE = "ANALYSIS_COMPLETE", "Analysis complete"
        STORED = "STORED", "Stored"
        DELETED = "DELETED", "Deleted"

    qr_code = models.CharField(max_length=32, unique=True, editable=False)
    requirement = models.ForeignKey(
        Requirement,
        on_delete=models.PROTECT,
        related_name="samples",
    )
    parent = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="derived_samples",
    )
    sample_type = models.CharField(max_length=100)
    sample_format = models.CharField(max_length=100, blank=True)
    quantity = models.CharField(max_length=100, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.EXPECTED,
        db_index=True,
    )
    received_at = models.DateTimeField(null=True, blank=True)
    analysis_started_at = models.DateTimeField(null=True, blank=True)
    analysis_ended_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    is_counter_sample = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["requirement", "status"], name="sample_req_status_idx"),
        ]

    def __str__(self):
        return f"{self.qr_code} ({self.status})"


# ============================================================
# Analysis
# ============================================================
class Analysis(WorkflowWriteGuardMixin, TimeStampedModel):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        IN_PROGRESS = "IN_PROGRESS", "In progress"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"

    sample = models.ForeignKey(
        Sample,
        on_delete=models.CASCADE,
        related_name="analyses",
    )
    analysis_type = models.ForeignKey(
        AnalysisType,
        on_delete=models.PROTECT,
        related_name="analyses",
    )
    analyst = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="analyses",
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    started_at = models.DateTimeField(null=True, blank=True)
    ended_at = models.DateTimeField(null=True, blank=True)
    results = models.JSONField(default=dict, blank=True)
    report_url = models.CharField(max_length=500, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name_plural = "analyses"

    def __str__(self):
        return f"{self.analysis_type} on {self.sample.qr_code} ({self.status})"


# ============================================================
# Storage
# ============================================================
class Storage(TimeStampedModel):
    """
    Bodega placement for one sample.

    Deletion is gated by two independent flags: deletion_requested must be
    set before deletion_approved, and the row may only be removed once
    approved.
    """

    class Status(models.TextChoices):
        AVAILABLE = "AVAILABLE", "Available"
        OCCUPIED = "OCCUPIED", "Occupied"
        RESERVED = "RESERVED", "Reserved"
        EXPIRED = "EXPIRED", "Expired"

    sample = models.OneToOneField(
        Sample,
        on_delete=models.CASCADE,
        related_name="storage",
    )
    location = models.CharField(max_length=255)
    shelf = models.CharField(max_length=50, db_index=True)
    box = models.CharField(max_length=50, blank=True)
    position = models.CharField(max_length=50, blank=True)
    stored_at = models.DateTimeField(default=timezone.now)
    expires_on = models.DateTimeField(null=True, blank=True, db_index=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.OCCUPIED,
        db_index=True,
    )
    deletion_requested = models.BooleanField(default=False)
    deletion_approved = models.BooleanField(default=False)

    class Meta:
        ordering = ["-stored_at"]
        verbose_name_plural = "storage"

    def __str__(self):
        return f"{self.sample.qr_code} @ {self.location}/{self.shelf}"


# ============================================================
# Workflow history and code sequences
# ============================================================
class WorkflowTransition(models.Model):
    kind = models.CharField(max_length=32)
    object_id = models.PositiveIntegerField()
    from_status = models.CharField(max_length=50)
    to_status = models.CharField(max_length=50)

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="workflow_transitions",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["kind", "object_id"], name="wf_transition_kind_obj_idx"),
        ]

    def __str__(self):
        return (
            f"{self.kind}:{self.object_id} "
            f"{self.from_status} -> {self.to_status}"
        )


class CodeSequence(models.Model):
    """Last counter issued per (prefix, year)."""

    prefix = models.CharField(max_length=10)
    year = models.PositiveIntegerField()
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        unique_together = ("prefix", "year")

    def __str__(self):
        return f"{self.prefix}-{self.year}: {self.last_value}"
