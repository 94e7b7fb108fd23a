"""
Cross-component orchestration.

This package provides:
- Orchestrator: composition, event fan-in, feedback rules and health checks
- SystemEvent records and the bounded EventHistory
"""

from .system_events import (
    EventHistory,
    EventIdGenerator,
    Severity,
    SystemEvent,
    SystemEventType,
    translate,
)
from .orchestrator import Orchestrator, OrchestratorStatus

__all__ = [
    "EventHistory",
    "EventIdGenerator",
    "Severity",
    "SystemEvent",
    "SystemEventType",
    "translate",
    "Orchestrator",
    "OrchestratorStatus",
]
