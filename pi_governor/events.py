"""
Typed event contract and publish/subscribe bus.

Every component owns an ``EventBus`` and publishes frozen event dataclasses
on it. Each event class carries a stable ``name`` used for subscription and
for the externally observable stream, so subscribers never have to guess
which fields exist for which kind.

Dispatch is synchronous, in registration order, with error isolation: a
failing subscriber is logged and does not stop the remaining ones. Consumers
that want explicit fan-in and backpressure call ``channel()`` and read a
``queue.Queue`` instead.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, List, Optional, Tuple, Type, Union

if TYPE_CHECKING:
    from .orchestration.system_events import SystemEvent
    from .resources.data_models import PressureLevel, SystemMetrics
    from .storage.data_models import StorageReport

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"


@dataclass(frozen=True)
class GovernorEvent:
    """Base class for everything published on an ``EventBus``."""

    name: ClassVar[str] = "event"
    timestamp: float = field(default_factory=time.time, kw_only=True)

    def payload(self) -> Dict[str, Any]:
        """Event fields without the timestamp, for logging and translation."""
        data = asdict(self)
        data.pop("timestamp", None)
        return data


# =============================================================================
# Collector events
# =============================================================================

@dataclass(frozen=True)
class MetricsSampled(GovernorEvent):
    name: ClassVar[str] = "metrics"
    metrics: "SystemMetrics"


@dataclass(frozen=True)
class MemoryPressure(GovernorEvent):
    name: ClassVar[str] = "memory_pressure"
    level: "PressureLevel"
    usage: float


@dataclass(frozen=True)
class CpuPressure(GovernorEvent):
    name: ClassVar[str] = "cpu_pressure"
    usage: float


@dataclass(frozen=True)
class StoragePressure(GovernorEvent):
    name: ClassVar[str] = "storage_pressure"
    usage: float


@dataclass(frozen=True)
class NetworkPressure(GovernorEvent):
    name: ClassVar[str] = "network_pressure"
    latency: float


@dataclass(frozen=True)
class MemoryLimitExceeded(GovernorEvent):
    name: ClassVar[str] = "memory_limit_exceeded"
    used: int
    limit: int


@dataclass(frozen=True)
class GarbageCollectionTriggered(GovernorEvent):
    name: ClassVar[str] = "garbage_collection_triggered"
    memory_freed: int
    before_gc: int
    after_gc: int
    objects_collected: int = 0


@dataclass(frozen=True)
class ServiceReductionRequested(GovernorEvent):
    name: ClassVar[str] = "service_reduction_requested"
    reason: str
    level: str


@dataclass(frozen=True)
class ServiceRestorationRequested(GovernorEvent):
    name: ClassVar[str] = "service_restoration_requested"
    reason: str


@dataclass(frozen=True)
class CpuReductionRequested(GovernorEvent):
    name: ClassVar[str] = "cpu_reduction_requested"
    usage: float


@dataclass(frozen=True)
class StorageCleanupRequested(GovernorEvent):
    name: ClassVar[str] = "storage_cleanup_requested"
    usage: float


@dataclass(frozen=True)
class ThresholdsUpdated(GovernorEvent):
    name: ClassVar[str] = "thresholds_updated"
    thresholds: Dict[str, float]


@dataclass(frozen=True)
class MonitoringStarted(GovernorEvent):
    name: ClassVar[str] = "monitoring_started"
    component: str
    interval: float


@dataclass(frozen=True)
class MonitoringStopped(GovernorEvent):
    name: ClassVar[str] = "monitoring_stopped"
    component: str


# =============================================================================
# Storage events
# =============================================================================

@dataclass(frozen=True)
class TmpfsSetupCompleted(GovernorEvent):
    name: ClassVar[str] = "tmpfs_setup_completed"
    mounted: Tuple[str, ...]
    fallback: Tuple[str, ...]


@dataclass(frozen=True)
class CachingSetupCompleted(GovernorEvent):
    name: ClassVar[str] = "caching_setup_completed"
    cache_roots: Tuple[str, ...]


@dataclass(frozen=True)
class ExternalStorageDetected(GovernorEvent):
    name: ClassVar[str] = "external_storage_detected"
    paths: Tuple[str, ...]


@dataclass(frozen=True)
class LogRotationSkipped(GovernorEvent):
    name: ClassVar[str] = "log_rotation_skipped"
    total_size: int
    max_size: int


@dataclass(frozen=True)
class LogRotationCompleted(GovernorEvent):
    name: ClassVar[str] = "log_rotation_completed"
    total_size_before: int
    total_size_after: int
    removed_files: Tuple[str, ...]
    removed_size: int
    rotated_files: Tuple[str, ...] = ()


@dataclass(frozen=True)
class WriteOptimized(GovernorEvent):
    name: ClassVar[str] = "write_optimized"
    write_count: int
    next_write_path: str


@dataclass(frozen=True)
class CleanupSkipped(GovernorEvent):
    name: ClassVar[str] = "cleanup_skipped"
    usage_percentage: float


@dataclass(frozen=True)
class CleanupCompleted(GovernorEvent):
    name: ClassVar[str] = "cleanup_completed"
    cleaned_files: int
    cleaned_size: int
    usage_percentage_before: float
    usage_percentage_after: float
    logs_rotated: bool = False


@dataclass(frozen=True)
class StorageMetricsUpdated(GovernorEvent):
    name: ClassVar[str] = "storage_metrics_updated"
    report: "StorageReport"


@dataclass(frozen=True)
class StorageOptimizationCompleted(GovernorEvent):
    name: ClassVar[str] = "storage_optimization_completed"
    report: "StorageReport"


@dataclass(frozen=True)
class MediaProcessingProgress(GovernorEvent):
    name: ClassVar[str] = "media_processing_progress"
    path: str
    chunks_processed: int
    bytes_processed: int
    total_bytes: int


# =============================================================================
# Queue events
# =============================================================================

@dataclass(frozen=True)
class RequestQueued(GovernorEvent):
    name: ClassVar[str] = "queued"
    request_id: str
    priority: int
    queue_size: int


@dataclass(frozen=True)
class RequestStarted(GovernorEvent):
    name: ClassVar[str] = "started"
    request_id: str
    priority: int
    wait_ms: float


@dataclass(frozen=True)
class RequestCompleted(GovernorEvent):
    name: ClassVar[str] = "completed"
    request_id: str
    execution_ms: float


@dataclass(frozen=True)
class RequestFailed(GovernorEvent):
    name: ClassVar[str] = "failed"
    request_id: str
    error: str
    execution_ms: float


@dataclass(frozen=True)
class RequestCancelled(GovernorEvent):
    name: ClassVar[str] = "cancelled"
    request_id: str
    reason: str
    previous_status: str


@dataclass(frozen=True)
class QueueSuspended(GovernorEvent):
    name: ClassVar[str] = "queue_suspended"
    temperature: float
    cancelled: int


@dataclass(frozen=True)
class QueueThrottled(GovernorEvent):
    name: ClassVar[str] = "queue_throttled"
    temperature: float
    max_concurrent: int
    cancelled: int


@dataclass(frozen=True)
class QueueResumed(GovernorEvent):
    name: ClassVar[str] = "queue_resumed"
    max_concurrent: int


@dataclass(frozen=True)
class QueueLoadShed(GovernorEvent):
    name: ClassVar[str] = "queue_load_shed"
    resource: str
    usage: float
    cancelled: int


# =============================================================================
# Thermal collaborator events
# =============================================================================

@dataclass(frozen=True)
class ThermalThrottling(GovernorEvent):
    name: ClassVar[str] = "thermal_throttling"
    temperature: float
    threshold: float
    action: str
    reduction_level: Optional[float] = None


@dataclass(frozen=True)
class ThermalRecovery(GovernorEvent):
    name: ClassVar[str] = "thermal_recovery"
    temperature: float
    threshold: float


@dataclass(frozen=True)
class ThermalEmergency(GovernorEvent):
    name: ClassVar[str] = "thermal_emergency"
    temperature: float
    emergency_level: float


# =============================================================================
# Orchestrator events
# =============================================================================

@dataclass(frozen=True)
class SystemEventRecorded(GovernorEvent):
    name: ClassVar[str] = "system_event"
    event: "SystemEvent"


@dataclass(frozen=True)
class SystemEmergency(GovernorEvent):
    name: ClassVar[str] = "system_emergency"
    reason: str
    temperature: Optional[float] = None


@dataclass(frozen=True)
class CleanupTriggered(GovernorEvent):
    """Private orchestrator signal asking the storage engine to clean up."""

    name: ClassVar[str] = "cleanup_triggered"
    reason: str
    force: bool = False


EventType = Union[Type[GovernorEvent], str]
Handler = Callable[[GovernorEvent], None]


@dataclass
class Subscription:
    """Registered subscriber.

    Attributes:
        event_name: Event name the callback receives, or ``"*"`` for all
        callback: Called with the event instance
        name: Descriptive name for logging
    """
    event_name: str
    callback: Handler
    name: str = "unnamed_subscriber"


def _event_name(event_type: Optional[EventType]) -> str:
    if event_type is None:
        return ALL_EVENTS
    if isinstance(event_type, str):
        return event_type
    return event_type.name


class EventBus:
    """Synchronous publish/subscribe bus owned by one component.

    Example:
        >>> bus = EventBus("collector")
        >>> bus.subscribe(CpuPressure, lambda e: print(e.usage))
        >>> bus.publish(CpuPressure(usage=93.0))
        93.0
    """

    def __init__(self, source: str):
        self.source = source
        self._subscriptions: List[Subscription] = []
        self._lock = threading.RLock()

    def subscribe(
        self,
        event_type: Optional[EventType],
        callback: Handler,
        name: Optional[str] = None,
    ) -> Subscription:
        """Register ``callback`` for one event type, or all when ``None``."""
        subscription = Subscription(
            event_name=_event_name(event_type),
            callback=callback,
            name=name or getattr(callback, "__name__", "unnamed_subscriber"),
        )
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def subscribe_all(self, callback: Handler, name: Optional[str] = None) -> Subscription:
        return self.subscribe(None, callback, name=name)

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
                return True
            except ValueError:
                return False

    def clear(self) -> None:
        with self._lock:
            self._subscriptions.clear()

    def subscriber_count(self, event_type: Optional[EventType] = None) -> int:
        wanted = _event_name(event_type)
        with self._lock:
            if wanted == ALL_EVENTS:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions if s.event_name in (wanted, ALL_EVENTS))

    def publish(self, event: GovernorEvent) -> int:
        """Deliver ``event`` to matching subscribers; returns how many ran cleanly."""
        with self._lock:
            targets = [
                s for s in self._subscriptions
                if s.event_name == ALL_EVENTS or s.event_name == event.name
            ]

        delivered = 0
        for subscription in targets:
            try:
                subscription.callback(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Subscriber %s failed handling %s from %s",
                    subscription.name, event.name, self.source,
                )
        return delivered

    def channel(self, maxsize: int = 0) -> "queue.Queue[Tuple[str, GovernorEvent]]":
        """Return a queue receiving ``(source, event)`` for every published event.

        With ``maxsize`` set, events published while the queue is full are
        dropped and logged rather than blocking the publisher.
        """
        inbox: "queue.Queue[Tuple[str, GovernorEvent]]" = queue.Queue(maxsize=maxsize)
        self.connect(inbox)
        return inbox

    def connect(self, inbox: "queue.Queue[Tuple[str, GovernorEvent]]") -> Subscription:
        """Forward every event on this bus into an existing ``inbox``."""

        def _forward(event: GovernorEvent) -> None:
            try:
                inbox.put_nowait((self.source, event))
            except queue.Full:
                logger.warning("Inbox full, dropped %s from %s", event.name, self.source)

        return self.subscribe_all(_forward, name=f"{self.source}_fan_in")
