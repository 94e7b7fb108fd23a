"""
Uniform audit records for everything the orchestrator observes.

Raw component events are translated into ``SystemEvent`` records with a
type, subtype and severity, then kept in a fixed-capacity ring buffer.
High-frequency events (metric samples, per-write notifications, skipped
passes) are forwarded on the external stream but not recorded.
"""

from __future__ import annotations

import itertools
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field, is_dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..events import GovernorEvent
from ..thermal import ACTION_PAUSE_SERVICES


class SystemEventType(str, Enum):
    RESOURCE = "resource"
    THERMAL = "thermal"
    STORAGE = "storage"
    INTEGRATION = "integration"
    SYSTEM = "system"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


LOG_LEVELS = {
    Severity.INFO: "INFO",
    Severity.WARNING: "WARNING",
    Severity.CRITICAL: "ERROR",
    Severity.EMERGENCY: "CRITICAL",
}


@dataclass(frozen=True)
class SystemEvent:
    id: str
    type: SystemEventType
    subtype: str
    severity: Severity
    source: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "subtype": self.subtype,
            "severity": self.severity.value,
            "source": self.source,
            "message": self.message,
            "data": self.data,
            "timestamp": self.timestamp,
        }


class EventIdGenerator:
    """``<epoch ms>-<counter>`` identifiers, unique within one process."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            return f"{int(self._clock() * 1000)}-{next(self._counter)}"


class EventHistory:
    """Append-only ring buffer; the oldest record is dropped at capacity."""

    def __init__(self, capacity: int = 500):
        if capacity < 1:
            raise ValueError("event history capacity must be at least 1")
        self.capacity = capacity
        self._events: deque[SystemEvent] = deque(maxlen=capacity)
        self._total = 0
        self._lock = threading.Lock()

    def append(self, event: SystemEvent) -> None:
        with self._lock:
            self._events.append(event)
            self._total += 1

    def recent(self, limit: int = 50) -> List[SystemEvent]:
        """Up to ``limit`` most recent records, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            return list(self._events)[-limit:]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    @property
    def total_recorded(self) -> int:
        with self._lock:
            return self._total


def plain(value: Any) -> Any:
    """Convert enums, dataclasses and tuples into JSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return plain(asdict(value))
    if isinstance(value, dict):
        return {k: plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain(v) for v in value]
    return value


SeverityRule = Union[Severity, Callable[[Dict[str, Any]], Severity]]

# event name -> (type, subtype, severity rule, message template)
TRANSLATIONS: Dict[str, Tuple[SystemEventType, str, SeverityRule, str]] = {
    # collector
    "memory_pressure": (
        SystemEventType.RESOURCE, "memory_pressure",
        lambda d: {"critical": Severity.CRITICAL, "gc": Severity.WARNING}.get(d["level"], Severity.INFO),
        "Memory pressure {level} at {usage:.0%}",
    ),
    "cpu_pressure": (SystemEventType.RESOURCE, "cpu_pressure", Severity.WARNING, "CPU usage {usage:.1f}%"),
    "storage_pressure": (SystemEventType.RESOURCE, "storage_pressure", Severity.WARNING, "Filesystem usage {usage:.0%}"),
    "network_pressure": (SystemEventType.RESOURCE, "network_pressure", Severity.WARNING, "Network latency {latency:.0f}ms"),
    "memory_limit_exceeded": (
        SystemEventType.RESOURCE, "memory_limit_exceeded", Severity.CRITICAL,
        "Memory {used} bytes exceeds hardware limit {limit} bytes",
    ),
    "garbage_collection_triggered": (
        SystemEventType.RESOURCE, "garbage_collection", Severity.INFO,
        "Garbage collection freed {memory_freed} bytes",
    ),
    "service_reduction_requested": (
        SystemEventType.RESOURCE, "service_reduction",
        lambda d: Severity.CRITICAL if d["level"] == "aggressive" else Severity.WARNING,
        "Service reduction ({level}) requested: {reason}",
    ),
    "service_restoration_requested": (
        SystemEventType.RESOURCE, "service_restoration", Severity.INFO,
        "Service restoration requested: {reason}",
    ),
    "cpu_reduction_requested": (
        SystemEventType.RESOURCE, "cpu_reduction", Severity.WARNING,
        "CPU-intensive work reduction requested at {usage:.1f}%",
    ),
    "storage_cleanup_requested": (
        SystemEventType.STORAGE, "cleanup_requested", Severity.WARNING,
        "Storage cleanup requested at {usage:.0%}",
    ),
    "thresholds_updated": (SystemEventType.RESOURCE, "thresholds_updated", Severity.INFO, "Resource thresholds updated"),
    "monitoring_started": (SystemEventType.SYSTEM, "monitoring_started", Severity.INFO, "{component} monitoring started"),
    "monitoring_stopped": (SystemEventType.SYSTEM, "monitoring_stopped", Severity.INFO, "{component} monitoring stopped"),
    # thermal
    "thermal_throttling": (
        SystemEventType.THERMAL, "throttling",
        lambda d: Severity.CRITICAL if d["action"] == ACTION_PAUSE_SERVICES else Severity.WARNING,
        "Thermal throttling ({action}) at {temperature:.1f}°C",
    ),
    "thermal_recovery": (SystemEventType.THERMAL, "recovery", Severity.INFO, "Thermal recovery at {temperature:.1f}°C"),
    "thermal_emergency": (SystemEventType.THERMAL, "emergency", Severity.EMERGENCY, "Thermal emergency at {temperature:.1f}°C"),
    # storage
    "tmpfs_setup_completed": (SystemEventType.STORAGE, "tmpfs_setup", Severity.INFO, "tmpfs setup completed"),
    "caching_setup_completed": (SystemEventType.STORAGE, "caching_setup", Severity.INFO, "Cache tiers ready"),
    "external_storage_detected": (SystemEventType.STORAGE, "external_storage", Severity.INFO, "External storage detected"),
    "cleanup_completed": (
        SystemEventType.STORAGE, "cleanup_completed", Severity.INFO,
        "Cleanup removed {cleaned_files} files ({cleaned_size} bytes)",
    ),
    "log_rotation_completed": (
        SystemEventType.STORAGE, "log_rotation", Severity.INFO,
        "Log rotation reduced logs from {total_size_before} to {total_size_after} bytes",
    ),
    "storage_optimization_completed": (
        SystemEventType.STORAGE, "optimization_completed", Severity.INFO, "Storage optimization completed",
    ),
    # queue
    "queued": (SystemEventType.INTEGRATION, "request_queued", Severity.INFO, "Request {request_id} queued"),
    "started": (SystemEventType.INTEGRATION, "request_started", Severity.INFO, "Request {request_id} started"),
    "completed": (SystemEventType.INTEGRATION, "request_completed", Severity.INFO, "Request {request_id} completed"),
    "failed": (SystemEventType.INTEGRATION, "request_failed", Severity.WARNING, "Request {request_id} failed: {error}"),
    "cancelled": (SystemEventType.INTEGRATION, "request_cancelled", Severity.INFO, "Request {request_id} cancelled: {reason}"),
    "queue_suspended": (
        SystemEventType.INTEGRATION, "queue_suspended", Severity.CRITICAL,
        "Dispatch suspended at {temperature:.1f}°C",
    ),
    "queue_throttled": (
        SystemEventType.INTEGRATION, "queue_throttled", Severity.WARNING,
        "Concurrency reduced to {max_concurrent} at {temperature:.1f}°C",
    ),
    "queue_resumed": (SystemEventType.INTEGRATION, "queue_resumed", Severity.INFO, "Dispatch resumed"),
    "queue_load_shed": (
        SystemEventType.INTEGRATION, "load_shed", Severity.WARNING,
        "Shed {cancelled} queued requests under {resource} pressure",
    ),
}


def translate(
    source: str, event: GovernorEvent, ids: EventIdGenerator
) -> Optional[SystemEvent]:
    """Build the audit record for ``event``; ``None`` for unrecorded kinds."""
    rule = TRANSLATIONS.get(event.name)
    if rule is None:
        return None
    event_type, subtype, severity_rule, template = rule
    data = plain(event.payload())
    severity = severity_rule(data) if callable(severity_rule) else severity_rule
    try:
        message = template.format(**data)
    except (KeyError, ValueError, TypeError):
        message = f"{source}: {subtype}"
    return SystemEvent(
        id=ids.next_id(),
        type=event_type,
        subtype=subtype,
        severity=severity,
        source=source,
        message=message,
        data=data,
        timestamp=event.timestamp,
    )
