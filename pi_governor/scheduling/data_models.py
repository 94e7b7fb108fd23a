"""
Data models for the admission queue.

No internal dependencies.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class RequestStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {RequestStatus.COMPLETED, RequestStatus.FAILED, RequestStatus.CANCELLED}
)


class CancelReason:
    QUEUE_FULL = "queue full"
    TIMEOUT = "timeout"
    SHUTDOWN = "system shutdown"
    THERMAL_PAUSE = "thermal emergency"
    THERMAL_REDUCE = "thermal throttling"
    RESOURCE_PRESSURE = "resource pressure"
    USER = "cancelled by request"


@dataclass
class AdmissionRequest:
    """One schedulable unit of work.

    ``queued_at``/``started_at``/``completed_at`` are wall-clock timestamps
    for reporting; waits and timeouts are measured on the monotonic clock.
    """

    id: str
    priority: int
    payload: Any
    thermal_sensitive: bool = False
    memory_intensive: bool = False
    variant: Optional[str] = None
    size_hint: Optional[int] = None
    status: RequestStatus = RequestStatus.QUEUED
    queued_at: float = 0.0
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    cancel_reason: Optional[str] = None
    error: Optional[str] = None

    sequence: int = field(default=0, repr=False)
    queued_monotonic: float = field(default=0.0, repr=False)
    started_monotonic: Optional[float] = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "priority": self.priority,
            "payload": self.payload,
            "thermal_sensitive": self.thermal_sensitive,
            "memory_intensive": self.memory_intensive,
            "variant": self.variant,
            "size_hint": self.size_hint,
            "queued_at": self.queued_at,
        }


@dataclass
class Recommendation:
    """Advisory suggestion; never applied by the queue itself."""

    action: str  # "use_lightweight_variant", "reduce_size", "delay", "cancel"
    reason: str
    value: Any = None


@dataclass
class QueueMetrics:
    active: int
    queued: int
    total_processed: int
    average_execution_ms: float
    thermal_throttling_events: int
    resource_throttling_events: int
    failed: int
    cancelled: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QueueStatus:
    queue_size: int
    active: int
    max_concurrent: int
    effective_max_concurrent: int
    suspended: bool
    average_wait_ms: float
    priority_distribution: Dict[int, int]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
