"""
Admission-controlled execution queue.

A bounded priority queue that decides whether and when work proceeds under
memory, CPU and thermal constraints. It is payload-agnostic: agent runs and
outbound messages both go through the same states

    queued -> running -> completed | failed
    queued | running -> cancelled

and cancellation is terminal. A periodic tick evicts timed-out items and
dispatches the highest-priority queued items into free concurrency slots
unless thermal suspension is active.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
import uuid
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ..config import QueueSettings
from ..events import (
    EventBus,
    GovernorEvent,
    MonitoringStarted,
    MonitoringStopped,
    QueueLoadShed,
    QueueResumed,
    QueueSuspended,
    QueueThrottled,
    RequestCancelled,
    RequestCompleted,
    RequestFailed,
    RequestQueued,
    RequestStarted,
)
from ..exceptions import QueueDisabledError
from ..persistence import read_json, write_json_atomic
from ..resources.data_models import SystemMetrics
from ..results import OperationResult
from ..timers import PeriodicTask
from .data_models import (
    AdmissionRequest,
    CancelReason,
    QueueMetrics,
    QueueStatus,
    Recommendation,
    RequestStatus,
)

logger = logging.getLogger(__name__)

LOW_PRIORITY_CEILING = 3
MAX_SHED_PER_SIGNAL = 2
FINISHED_HISTORY_SIZE = 256
SNAPSHOT_VERSION = 1


class AdmissionQueue:
    """Bounded priority queue with thermal and resource-aware admission.

    ``handler`` is optional. Without one the caller owns execution: it reads
    ``started`` events (or ``get_request``) and reports back through
    ``complete`` / ``fail``. With one, dispatched payloads run on a thread
    pool and are completed or failed automatically.
    """

    def __init__(
        self,
        settings: Optional[QueueSettings] = None,
        max_concurrent: Optional[int] = None,
        handler: Optional[Callable[[Any], Any]] = None,
        metrics_provider: Optional[Callable[[], Optional[SystemMetrics]]] = None,
        name: str = "queue",
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or QueueSettings()
        self.max_concurrent = max_concurrent or self.settings.max_concurrent or 1
        self.handler = handler
        self.metrics_provider = metrics_provider
        self.events = EventBus(name)
        self._clock = clock
        self._wall_clock = wall_clock

        self._queued: List[AdmissionRequest] = []
        self._active: Dict[str, AdmissionRequest] = {}
        self._finished: "OrderedDict[str, AdmissionRequest]" = OrderedDict()
        self._sequence = itertools.count()

        self._suspended = False
        self._thermal_reduced = False
        self._resume_at: Optional[float] = None

        self._total_processed = 0
        self._total_execution_ms = 0.0
        self._failed = 0
        self._cancelled = 0
        self._thermal_events = 0
        self._resource_events = 0

        self._task: Optional[PeriodicTask] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._stopped = False
        self._lock = threading.RLock()

    # --------------------------------------------------------------- helpers

    def _emit(self, events: List[GovernorEvent]) -> None:
        for event in events:
            self.events.publish(event)

    @property
    def effective_max_concurrent(self) -> int:
        if self._thermal_reduced:
            return max(1, self.max_concurrent // 2)
        return self.max_concurrent

    @property
    def suspended(self) -> bool:
        return self._suspended

    @property
    def queue_size(self) -> int:
        with self._lock:
            return len(self._queued)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def _cancel_locked(self, request: AdmissionRequest, reason: str) -> RequestCancelled:
        previous = request.status
        if previous == RequestStatus.QUEUED:
            self._queued.remove(request)
        else:
            self._active.pop(request.id, None)
        request.status = RequestStatus.CANCELLED
        request.cancel_reason = reason
        request.completed_at = self._wall_clock()
        self._cancelled += 1
        self._remember(request)
        logger.debug("Cancelled %s (%s)", request.id, reason)
        return RequestCancelled(request_id=request.id, reason=reason, previous_status=previous.value)

    def _remember(self, request: AdmissionRequest) -> None:
        self._finished[request.id] = request
        while len(self._finished) > FINISHED_HISTORY_SIZE:
            self._finished.popitem(last=False)

    # ------------------------------------------------------------- admission

    def submit(
        self,
        payload: Any,
        priority: int = 5,
        *,
        thermal_sensitive: bool = False,
        memory_intensive: bool = False,
        variant: Optional[str] = None,
        size_hint: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> AdmissionRequest:
        """Queue ``payload``; at capacity the lowest-priority queued item is evicted.

        Raises:
            QueueDisabledError: queue management is switched off.
            ValueError: priority outside ``1..priority_levels`` or duplicate id.
        """
        if not self.settings.enabled:
            raise QueueDisabledError()
        if not 1 <= priority <= self.settings.priority_levels:
            raise ValueError(
                f"priority must be between 1 and {self.settings.priority_levels}, got {priority}"
            )

        pending: List[GovernorEvent] = []
        with self._lock:
            request_id = request_id or uuid.uuid4().hex[:12]
            if any(r.id == request_id for r in self._queued) or request_id in self._active:
                raise ValueError(f"duplicate request id: {request_id}")

            if len(self._queued) >= self.settings.max_queue_size:
                # min() returns the first of equal keys, i.e. earliest in queue order
                victim = min(self._queued, key=lambda r: r.priority)
                pending.append(self._cancel_locked(victim, CancelReason.QUEUE_FULL))

            request = AdmissionRequest(
                id=request_id,
                priority=priority,
                payload=payload,
                thermal_sensitive=thermal_sensitive,
                memory_intensive=memory_intensive,
                variant=variant,
                size_hint=size_hint,
                queued_at=self._wall_clock(),
                sequence=next(self._sequence),
                queued_monotonic=self._clock(),
            )
            self._queued.append(request)
            pending.append(
                RequestQueued(request_id=request.id, priority=priority, queue_size=len(self._queued))
            )

        self._emit(pending)
        return request

    # -------------------------------------------------------------- dispatch

    def tick(self) -> List[AdmissionRequest]:
        """Evict timeouts, lift expired thermal cooldowns, dispatch free slots.

        Returns the requests that moved to ``running``.
        """
        pending: List[GovernorEvent] = []
        started: List[AdmissionRequest] = []
        with self._lock:
            now = self._clock()
            timeout = self.settings.timeout_ms / 1000.0
            for request in list(self._queued):
                if now - request.queued_monotonic > timeout:
                    pending.append(self._cancel_locked(request, CancelReason.TIMEOUT))

            if self._resume_at is not None and now >= self._resume_at:
                self._suspended = False
                self._thermal_reduced = False
                self._resume_at = None
                logger.info("Thermal cooldown elapsed, dispatch resumed")
                pending.append(QueueResumed(max_concurrent=self.max_concurrent))

            while (
                self._queued
                and not self._suspended
                and len(self._active) < self.effective_max_concurrent
            ):
                # Highest priority first; among equals the lowest sequence (earliest arrival)
                request = max(self._queued, key=lambda r: (r.priority, -r.sequence))
                self._queued.remove(request)
                request.status = RequestStatus.RUNNING
                request.started_at = self._wall_clock()
                request.started_monotonic = now
                self._active[request.id] = request
                started.append(request)
                pending.append(
                    RequestStarted(
                        request_id=request.id,
                        priority=request.priority,
                        wait_ms=(now - request.queued_monotonic) * 1000.0,
                    )
                )

        self._emit(pending)
        for request in started:
            self._launch(request)
        return started

    def _launch(self, request: AdmissionRequest) -> None:
        if self.handler is None:
            return
        with self._lock:
            if not self._stopped:
                if self._executor is None:
                    self._executor = ThreadPoolExecutor(
                        max_workers=self.max_concurrent,
                        thread_name_prefix=f"{self.events.source}-worker",
                    )
                self._executor.submit(self._execute, request)
                return
            # Dispatched while stop() ran
            if request.status != RequestStatus.RUNNING:
                return
            event = self._cancel_locked(request, CancelReason.SHUTDOWN)
        self.events.publish(event)

    def _execute(self, request: AdmissionRequest) -> None:
        try:
            self.handler(request.payload)
        except Exception as e:
            logger.warning("Request %s failed: %s", request.id, e)
            self.fail(request.id, str(e))
            return
        self.complete(request.id)

    # ------------------------------------------------------------ completion

    def complete(self, request_id: str) -> OperationResult:
        return self._finish(request_id, RequestStatus.COMPLETED, None)

    def fail(self, request_id: str, error: str) -> OperationResult:
        return self._finish(request_id, RequestStatus.FAILED, error)

    def _finish(self, request_id: str, status: RequestStatus, error: Optional[str]) -> OperationResult:
        with self._lock:
            request = self._active.pop(request_id, None)
            if request is None:
                return self._not_active(request_id)
            request.status = status
            request.error = error
            request.completed_at = self._wall_clock()
            execution_ms = (self._clock() - (request.started_monotonic or self._clock())) * 1000.0
            self._total_processed += 1
            self._total_execution_ms += execution_ms
            if status == RequestStatus.FAILED:
                self._failed += 1
            self._remember(request)

        if status == RequestStatus.COMPLETED:
            self.events.publish(RequestCompleted(request_id=request_id, execution_ms=execution_ms))
        else:
            self.events.publish(
                RequestFailed(request_id=request_id, error=error or "", execution_ms=execution_ms)
            )
        return OperationResult(True, f"Request {request_id} {status.value}")

    def _not_active(self, request_id: str) -> OperationResult:
        finished = self._finished.get(request_id)
        if finished is not None:
            return OperationResult(
                False, f"Request {request_id} already {finished.status.value}",
                {"status": finished.status.value},
            )
        if any(r.id == request_id for r in self._queued):
            return OperationResult(False, f"Request {request_id} has not started", {"status": "queued"})
        return OperationResult(False, f"Request {request_id} not found")

    def cancel(self, request_id: str, reason: str = CancelReason.USER) -> OperationResult:
        with self._lock:
            request = next((r for r in self._queued if r.id == request_id), None)
            if request is None:
                request = self._active.get(request_id)
            if request is None:
                finished = self._finished.get(request_id)
                if finished is not None:
                    return OperationResult(
                        False, f"Request {request_id} already {finished.status.value}",
                        {"status": finished.status.value},
                    )
                return OperationResult(False, f"Request {request_id} not found")
            event = self._cancel_locked(request, reason)

        self.events.publish(event)
        return OperationResult(True, f"Request {request_id} cancelled", {"previous_status": event.previous_status})

    def get_request(self, request_id: str) -> Optional[AdmissionRequest]:
        with self._lock:
            for request in self._queued:
                if request.id == request_id:
                    return request
            return self._active.get(request_id) or self._finished.get(request_id)

    # ----------------------------------------------------- thermal coupling

    def handle_thermal_signal(self, temperature: float) -> int:
        """React to a throttling or emergency reading; returns items cancelled."""
        s = self.settings
        pending: List[GovernorEvent] = []
        with self._lock:
            if temperature >= s.pause_temperature_c:
                self._suspended = True
                self._thermal_reduced = True
                self._resume_at = None
                self._thermal_events += 1
                for request in [r for r in self._queued if r.thermal_sensitive]:
                    pending.append(self._cancel_locked(request, CancelReason.THERMAL_PAUSE))
                cancelled = len(pending)
                logger.warning("Dispatch suspended at %.1f°C, %d queued items cancelled", temperature, cancelled)
                pending.append(QueueSuspended(temperature=temperature, cancelled=cancelled))
            elif temperature >= s.reduce_temperature_c:
                self._thermal_reduced = True
                self._resume_at = None
                self._thermal_events += 1
                over = len(self._active) - self.effective_max_concurrent
                if over > 0:
                    # Lowest priority first; among equals the most recently queued
                    candidates = sorted(
                        (r for r in self._active.values() if r.thermal_sensitive),
                        key=lambda r: (r.priority, -r.sequence),
                    )
                    for request in candidates[:over]:
                        pending.append(self._cancel_locked(request, CancelReason.THERMAL_REDUCE))
                cancelled = len(pending)
                pending.append(
                    QueueThrottled(
                        temperature=temperature,
                        max_concurrent=self.effective_max_concurrent,
                        cancelled=cancelled,
                    )
                )
            else:
                return 0

        self._emit(pending)
        return cancelled

    def handle_thermal_recovery(self, temperature: float) -> bool:
        """Schedule resumption once ``temperature`` is below the reduce threshold.

        Suspension and the reduced cap lift on the first tick after the
        cooldown has elapsed.
        """
        with self._lock:
            if temperature >= self.settings.reduce_temperature_c:
                return False
            if not (self._suspended or self._thermal_reduced):
                return False
            if self._resume_at is None:
                self._resume_at = self._clock() + self.settings.thermal_cooldown_ms / 1000.0
            return True

    # ---------------------------------------------------- resource coupling

    def handle_resource_pressure(self, resource: str, usage: float) -> int:
        """Shed up to two low-priority queued items when ``usage`` ratio is high."""
        if usage < self.settings.resource_pressure_ratio:
            return 0
        with self._lock:
            self._resource_events += 1
            candidates = sorted(
                (r for r in self._queued if r.priority <= LOW_PRIORITY_CEILING),
                key=lambda r: (r.priority, r.sequence),
            )
            pending: List[GovernorEvent] = [
                self._cancel_locked(request, CancelReason.RESOURCE_PRESSURE)
                for request in candidates[:MAX_SHED_PER_SIGNAL]
            ]
        cancelled = len(pending)
        if cancelled:
            logger.info("Shed %d queued items under %s pressure (%.0f%%)", cancelled, resource, usage * 100)
            pending.append(QueueLoadShed(resource=resource, usage=usage, cancelled=cancelled))
        self._emit(pending)
        return cancelled

    # ------------------------------------------------------- recommendations

    def get_recommendations(self, request: Union[str, AdmissionRequest]) -> List[Recommendation]:
        if isinstance(request, str):
            found = self.get_request(request)
            if found is None:
                return []
            request = found

        s = self.settings
        metrics = self.metrics_provider() if self.metrics_provider else None
        memory_percent = metrics.memory.usage_ratio * 100 if metrics else 0.0
        cpu_percent = metrics.cpu.usage_percent if metrics else 0.0
        temperature = metrics.cpu.temperature_c if metrics else 0.0

        memory_pressure = memory_percent > s.memory_threshold_percent
        running_hot = temperature > s.reduce_temperature_c
        recommendations: List[Recommendation] = []

        lighter = s.lightweight_variants.get(request.variant or "")
        if s.prefer_lightweight and lighter and (memory_pressure or running_hot):
            recommendations.append(
                Recommendation("use_lightweight_variant", "memory or thermal pressure", lighter)
            )
        if request.size_hint and memory_pressure:
            recommendations.append(
                Recommendation("reduce_size", "memory pressure", int(request.size_hint * s.size_reduction_factor))
            )
        if self._suspended or temperature >= s.pause_temperature_c:
            recommendations.append(Recommendation("delay", "thermal suspension"))
        if self.active_count >= self.max_concurrent and cpu_percent > s.cpu_threshold_percent:
            recommendations.append(Recommendation("cancel", "at full concurrency with CPU over threshold"))
        return recommendations

    # ------------------------------------------------------------- reporting

    def get_metrics(self) -> QueueMetrics:
        with self._lock:
            processed = self._total_processed
            return QueueMetrics(
                active=len(self._active),
                queued=len(self._queued),
                total_processed=processed,
                average_execution_ms=self._total_execution_ms / processed if processed else 0.0,
                thermal_throttling_events=self._thermal_events,
                resource_throttling_events=self._resource_events,
                failed=self._failed,
                cancelled=self._cancelled,
            )

    def get_queue_status(self) -> QueueStatus:
        with self._lock:
            now = self._clock()
            waits = [(now - r.queued_monotonic) * 1000.0 for r in self._queued]
            distribution: Dict[int, int] = {}
            for request in self._queued:
                distribution[request.priority] = distribution.get(request.priority, 0) + 1
            return QueueStatus(
                queue_size=len(self._queued),
                active=len(self._active),
                max_concurrent=self.max_concurrent,
                effective_max_concurrent=self.effective_max_concurrent,
                suspended=self._suspended,
                average_wait_ms=sum(waits) / len(waits) if waits else 0.0,
                priority_distribution=dict(sorted(distribution.items())),
            )

    # ------------------------------------------------------------- lifecycle

    @property
    def is_running(self) -> bool:
        return self._task is not None and self._task.is_running

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                return
            self._task = PeriodicTask("AdmissionQueue", self.settings.tick_interval_seconds, self.tick)
            self._stopped = False
        self.restore_snapshot()
        self._task.start()
        self.events.publish(
            MonitoringStarted(component=self.events.source, interval=self.settings.tick_interval_seconds)
        )

    def stop(self) -> int:
        """Snapshot and cancel every queued item, then stop the tick.

        Returns the number of queued items cancelled.
        """
        self.save_snapshot()
        with self._lock:
            pending: List[GovernorEvent] = [
                self._cancel_locked(request, CancelReason.SHUTDOWN)
                for request in list(self._queued)
            ]
            task, self._task = self._task, None
            self._stopped = True
            executor, self._executor = self._executor, None
        self._emit(pending)

        if task is not None:
            task.cancel()
            self.events.publish(MonitoringStopped(component=self.events.source))
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        return len(pending)

    # ------------------------------------------------------------- snapshot

    def save_snapshot(self) -> Optional[Path]:
        path = self.settings.snapshot_path
        if path is None:
            return None
        with self._lock:
            entries = []
            for request in self._queued:
                entry = request.to_snapshot()
                try:
                    json.dumps(entry)
                except (TypeError, ValueError):
                    logger.warning("Request %s payload is not JSON-serializable, not snapshotted", request.id)
                    continue
                entries.append(entry)
        return write_json_atomic(
            path, {"version": SNAPSHOT_VERSION, "saved_at": self._wall_clock(), "requests": entries}
        )

    def restore_snapshot(self) -> int:
        """Resubmit requests saved by the previous ``stop``; returns the count."""
        path = self.settings.snapshot_path
        if path is None or not self.settings.enabled:
            return 0
        data = read_json(path)
        if data is None:
            return 0

        restored = 0
        for entry in data.get("requests", []):
            try:
                self.submit(
                    entry.get("payload"),
                    int(entry.get("priority", 5)),
                    thermal_sensitive=bool(entry.get("thermal_sensitive", False)),
                    memory_intensive=bool(entry.get("memory_intensive", False)),
                    variant=entry.get("variant"),
                    size_hint=entry.get("size_hint"),
                    request_id=entry.get("id"),
                )
                restored += 1
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Skipping snapshot entry: %s", e)
        Path(path).unlink(missing_ok=True)
        logger.info("Restored %d queued requests from %s", restored, path)
        return restored
