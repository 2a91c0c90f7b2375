# custody/models/qr_event.py
from django.db import models
from django.conf import settings

from custody.workflows.guards import AppendOnlyModelMixin


class QREvent(AppendOnlyModelMixin, models.Model):
    """
    Immutable audit log entry for something that happened to a sample.
    """

    class EventType(models.TextChoices):
        RECEIVED = "RECEIVED", "Received"
        IN_TRANSIT = "IN_TRANSIT", "In transit"
        IN_ANALYSIS = "IN_ANALYSIS", "In analysis"
        STORED = "STORED", "Stored"
        DISPOSED = "DISPOSED", "Disposed"
        OTHER = "OTHER", "Other"

    sample = models.ForeignKey(
        "custody.Sample",
        on_delete=models.CASCADE,
        related_name="qr_events",
    )
    event_type = models.CharField(max_length=20, choices=EventType.choices, db_index=True)

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="qr_events",
    )

    location = models.CharField(max_length=255, blank=True, db_index=True)
    metadata = models.JSONField(default=dict, blank=True)

    occurred_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-occurred_at", "-id"]
        indexes = [
            models.Index(fields=["sample", "occurred_at"], name="qr_event_sample_time_idx"),
        ]

    def __str__(self):
        return f"{self.event_type} {self.sample_id} by {self.actor_id}"
