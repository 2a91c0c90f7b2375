# custody/models/__init__.py

from .core import (
    TimeStampedModel,
    Plant,
    AnalysisType,
    Requirement,
    Sample,
    Analysis,
    Storage,
    WorkflowTransition,
    CodeSequence,
)
from .qr_event import QREvent

__all__ = [
    "TimeStampedModel",
    "Plant",
    "AnalysisType",
    "Requirement",
    "Sample",
    "Analysis",
    "Storage",
    "WorkflowTransition",
    "CodeSequence",
    "QREvent",
]
