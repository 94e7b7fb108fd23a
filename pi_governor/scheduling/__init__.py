"""
Admission-controlled scheduling.

This package provides:
- AdmissionQueue: bounded priority queue with thermal/resource coupling
- Request, recommendation and reporting data models
"""

from .data_models import (
    AdmissionRequest,
    CancelReason,
    QueueMetrics,
    QueueStatus,
    Recommendation,
    RequestStatus,
    TERMINAL_STATUSES,
)
from .admission_queue import AdmissionQueue

__all__ = [
    "AdmissionRequest",
    "CancelReason",
    "QueueMetrics",
    "QueueStatus",
    "Recommendation",
    "RequestStatus",
    "TERMINAL_STATUSES",
    "AdmissionQueue",
]
