"""
Governor orchestrator.

Owns the collector, storage engine, admission queue and an optional thermal
controller. Component buses fan in to one inbox consumed by a single thread;
every event is translated into a ``SystemEvent`` audit record, forwarded on
the external ``events`` bus and run through the feedback rules registered on
a private bus.
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass, field
from queue import Empty, Queue
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import GovernorConfig, ResourceThresholds
from ..events import (
    CleanupTriggered,
    CpuPressure,
    EventBus,
    GovernorEvent,
    MemoryPressure,
    ServiceReductionRequested,
    StoragePressure,
    SystemEmergency,
    SystemEventRecorded,
    ThermalEmergency,
    ThermalRecovery,
    ThermalThrottling,
    WriteOptimized,
)
from ..exceptions import (
    GovernorError,
    InvalidConfigurationError,
    OrchestratorStateError,
    QueueDisabledError,
)
from ..logger import ProductionLogger, get_logger
from ..resources import (
    HardwareProfile,
    MetricsCollector,
    PressureLevel,
    SystemMetrics,
    build_hardware_profile,
)
from ..results import OperationResult
from ..scheduling import AdmissionQueue, AdmissionRequest, QueueStatus
from ..storage import StorageManager, StorageReport, WriteStatistics
from ..thermal import ThermalController, ThermalStatus
from ..timers import PeriodicTask
from .system_events import (
    LOG_LEVELS,
    EventHistory,
    EventIdGenerator,
    Severity,
    SystemEvent,
    SystemEventType,
    plain,
    translate,
)

SOURCE = "orchestrator"
INBOX_POLL_SECONDS = 0.2
MAX_THRESHOLD_REDUCTION = 0.9


@dataclass
class OrchestratorStatus:
    started: bool
    uptime_seconds: float
    components: Dict[str, bool]
    memory_pressure_level: str
    memory_pressure_active: bool
    thresholds: Dict[str, float]
    queue: Dict[str, Any]
    events_recorded: int
    events_retained: int
    last_health_check: Optional[float] = None
    thermal: Optional[Dict[str, Any]] = None
    metrics: Optional[Dict[str, Any]] = None
    errors: List[str] = field(default_factory=list)
    run_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Orchestrator:
    """
    Composes the governor components and closes the feedback loop.

    Components may be injected for testing; otherwise they are built from
    ``config``. Nothing runs until ``start()``. Events published before then
    wait in the inbox and can be drained with ``process_pending_events()``.

    Example:
        >>> orchestrator = Orchestrator(GovernorConfig())
        >>> orchestrator.start()
        >>> orchestrator.get_status().components
        {'collector': True, 'storage': True, 'queue': True}
        >>> orchestrator.stop()
    """

    def __init__(
        self,
        config: Optional[GovernorConfig] = None,
        thermal: Optional[ThermalController] = None,
        *,
        hardware: Optional[HardwareProfile] = None,
        collector: Optional[MetricsCollector] = None,
        storage: Optional[StorageManager] = None,
        queue: Optional[AdmissionQueue] = None,
        queue_handler: Optional[Callable[[Any], Any]] = None,
        logger: Optional[ProductionLogger] = None,
    ):
        self.config = config or GovernorConfig()
        cfg = self.config
        self.hardware = hardware or build_hardware_profile(cfg.hardware.resolved_total_memory_mb())

        self.collector = collector or MetricsCollector(self.hardware, cfg.collector, cfg.thresholds)
        self.storage = storage or StorageManager(cfg.storage, total_memory_mb=self.hardware.total_memory_mb)
        self.queue = queue or AdmissionQueue(
            cfg.queue,
            max_concurrent=cfg.queue.resolved_max_concurrent(self.hardware.total_memory_mb),
            handler=queue_handler,
            metrics_provider=self.collector.get_last_metrics,
        )
        self.thermal = thermal if cfg.thermal.enabled else None
        self.logger = logger or get_logger(
            log_level=cfg.logging.level,
            log_dir=cfg.logging.directory,
            console=cfg.logging.console,
        )

        self.events = EventBus(SOURCE)
        self._feedback = EventBus(f"{SOURCE}_feedback")
        self.history = EventHistory(cfg.orchestrator.event_handling.max_event_history)
        self._ids = EventIdGenerator()
        self._default_thresholds: ResourceThresholds = self.collector.get_thresholds().model_copy()

        self._inbox: "Queue[Tuple[str, GovernorEvent]]" = Queue()
        self._dispatch_lock = threading.RLock()
        self._lock = threading.RLock()
        self._consumer: Optional[threading.Thread] = None
        self._consumer_stop = threading.Event()
        self._health_task: Optional[PeriodicTask] = None
        self._thermal_running = False
        self._started_at: Optional[float] = None
        self._last_health_check: Optional[float] = None

        self._connect_components()
        self._register_feedback_rules()

    # ---------------------------------------------------------------- wiring

    def _connect_components(self) -> None:
        for bus in (self.collector.events, self.storage.events, self.queue.events):
            bus.connect(self._inbox)
        if self.thermal is not None:
            self.thermal.events.connect(self._inbox)

    def _register_feedback_rules(self) -> None:
        rules: List[Tuple[type, Callable[[Any], None]]] = [
            (ThermalThrottling, self._on_thermal_throttling),
            (ThermalRecovery, self._on_thermal_recovery),
            (ThermalEmergency, self._on_thermal_emergency),
            (ServiceReductionRequested, self._on_service_reduction),
            (MemoryPressure, self._on_memory_pressure),
            (CpuPressure, self._on_cpu_pressure),
            (StoragePressure, self._on_storage_pressure),
            (WriteOptimized, self._on_write_optimized),
            (CleanupTriggered, self._on_cleanup_triggered),
        ]
        for event_type, handler in rules:
            self._feedback.subscribe(event_type, handler)

    # ------------------------------------------------------------- event flow

    def process_pending_events(self) -> int:
        """Drain the inbox synchronously; returns the number of events handled."""
        handled = 0
        while True:
            try:
                source, event = self._inbox.get_nowait()
            except Empty:
                return handled
            self._dispatch(source, event)
            handled += 1

    def _consume(self) -> None:
        while not self._consumer_stop.is_set():
            try:
                source, event = self._inbox.get(timeout=INBOX_POLL_SECONDS)
            except Empty:
                continue
            self._dispatch(source, event)

    def _dispatch(self, source: str, event: GovernorEvent) -> None:
        with self._dispatch_lock:
            record = translate(source, event, self._ids)
            if record is not None:
                self._record(record)
            self.events.publish(event)
            self._feedback.publish(event)

    def _record(self, record: SystemEvent) -> None:
        self.history.append(record)
        if self.config.orchestrator.event_handling.log_all_events:
            self.logger.log_event(
                LOG_LEVELS[record.severity],
                record.message,
                event_id=record.id,
                event_type=record.type.value,
                subtype=record.subtype,
                severity=record.severity.value,
                source=record.source,
                data=record.data,
            )
        self.events.publish(SystemEventRecorded(event=record))

    def record_system_event(
        self,
        subtype: str,
        severity: Severity,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        event_type: SystemEventType = SystemEventType.SYSTEM,
    ) -> SystemEvent:
        """Append an orchestrator-originated record to the history."""
        record = SystemEvent(
            id=self._ids.next_id(),
            type=event_type,
            subtype=subtype,
            severity=severity,
            source=SOURCE,
            message=message,
            data=plain(data or {}),
        )
        self._record(record)
        return record

    # --------------------------------------------------------- feedback rules

    def _scale_thresholds(self, reduction: float) -> None:
        reduction = max(0.0, min(reduction, MAX_THRESHOLD_REDUCTION))
        defaults = self._default_thresholds
        try:
            self.collector.set_thresholds(
                cpu_critical=defaults.cpu_critical * (1 - reduction),
                memory_gc=defaults.memory_gc * (1 - reduction * 0.5),
            )
        except InvalidConfigurationError as e:
            self.logger.warning("Threshold reduction rejected", reduction=reduction, error=e.message)

    def _on_thermal_throttling(self, event: ThermalThrottling) -> None:
        reduction = event.reduction_level
        if reduction is None:
            reduction = self.config.orchestrator.default_reduction_factor
        self._scale_thresholds(reduction)
        self.queue.handle_thermal_signal(event.temperature)

    def _on_thermal_recovery(self, event: ThermalRecovery) -> None:
        defaults = self._default_thresholds
        self.collector.set_thresholds(
            cpu_critical=defaults.cpu_critical, memory_gc=defaults.memory_gc
        )
        self.queue.handle_thermal_recovery(event.temperature)

    def _on_thermal_emergency(self, event: ThermalEmergency) -> None:
        self.logger.critical(
            f"Thermal emergency at {event.temperature:.1f}°C, stopping collector polling",
            temperature=event.temperature,
        )
        self.collector.stop_monitoring()
        self._feedback.publish(CleanupTriggered(reason="thermal_emergency", force=True))
        self.queue.handle_thermal_signal(event.temperature)
        self.record_system_event(
            "system_emergency",
            Severity.EMERGENCY,
            f"System emergency: thermal limit reached at {event.temperature:.1f}°C",
            {"reason": "thermal_emergency", "temperature": event.temperature},
        )
        self.events.publish(SystemEmergency(reason="thermal_emergency", temperature=event.temperature))

    def _on_service_reduction(self, event: ServiceReductionRequested) -> None:
        if event.level != "aggressive":
            return
        if self.collector.monitoring_active:
            self.collector.start_monitoring(self.config.orchestrator.slow_polling_interval_seconds)
        self._feedback.publish(CleanupTriggered(reason=event.reason, force=True))

    def _on_memory_pressure(self, event: MemoryPressure) -> None:
        if event.level is PressureLevel.CRITICAL:
            self._feedback.publish(CleanupTriggered(reason="memory_pressure_critical"))
        self.queue.handle_resource_pressure("memory", event.usage)

    def _on_cpu_pressure(self, event: CpuPressure) -> None:
        self.queue.handle_resource_pressure("cpu", event.usage / 100.0)

    def _on_storage_pressure(self, event: StoragePressure) -> None:
        self._feedback.publish(CleanupTriggered(reason="storage_pressure"))

    def _on_write_optimized(self, event: WriteOptimized) -> None:
        self.collector.increment_write_count()

    def _on_cleanup_triggered(self, event: CleanupTriggered) -> None:
        if not self.config.storage.enabled:
            return
        self.storage.cleanup_storage(force=event.force)

    # ---------------------------------------------------------- health check

    def component_status(self) -> Dict[str, bool]:
        """Running state of every enabled component."""
        status: Dict[str, bool] = {}
        if self.config.collector.enabled:
            status["collector"] = self.collector.monitoring_active
        if self.config.storage.enabled:
            status["storage"] = self.storage.monitoring_active
        if self.config.queue.enabled:
            status["queue"] = self.queue.is_running
        if self.thermal is not None:
            status["thermal"] = self._thermal_running
        return status

    def perform_health_check(self) -> List[SystemEvent]:
        """Flag inactive components and sustained critical memory or CPU usage."""
        issues: List[SystemEvent] = []
        for component, active in self.component_status().items():
            if not active:
                issues.append(
                    self.record_system_event(
                        "component_inactive",
                        Severity.WARNING,
                        f"{component} is not active",
                        {"component": component},
                    )
                )

        metrics = self.collector.get_last_metrics() or self.collector.collect()
        critical = self.config.orchestrator.critical_usage_ratio
        memory_ratio = metrics.memory.usage_ratio
        cpu_ratio = metrics.cpu.usage_percent / 100.0
        if memory_ratio >= critical or cpu_ratio >= critical:
            issues.append(
                self.record_system_event(
                    "resource_critical",
                    Severity.CRITICAL,
                    f"Resource usage critical: memory {memory_ratio:.0%}, CPU {cpu_ratio:.0%}",
                    {"memory_usage": memory_ratio, "cpu_usage": cpu_ratio},
                    event_type=SystemEventType.RESOURCE,
                )
            )

        self._last_health_check = time.time()
        return issues

    # ------------------------------------------------------------- lifecycle

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    def start(self) -> None:
        """Start components in dependency order, then the consumer and health check.

        Raises:
            OrchestratorStateError: the orchestrator is disabled in configuration.
        """
        if not self.config.orchestrator.enabled:
            raise OrchestratorStateError("Orchestrator is disabled in configuration")

        with self._lock:
            if self.is_running:
                return
            cfg = self.config

            if cfg.collector.adaptive_scaling:
                self.collector.enable_adaptive_scaling()
            if cfg.collector.enabled:
                self.collector.start_monitoring()

            if cfg.storage.enabled:
                self.storage.initialize()
                self.storage.start_monitoring()

            if cfg.queue.enabled:
                self.queue.start()

            if self.thermal is not None:
                self.thermal.start_monitoring()
                self._thermal_running = True

            self._consumer_stop.clear()
            self._consumer = threading.Thread(
                target=self._consume, name="OrchestratorEvents", daemon=True
            )
            self._consumer.start()

            self._health_task = PeriodicTask(
                "HealthCheck",
                cfg.orchestrator.health_check_interval_seconds,
                self.perform_health_check,
            )
            self._health_task.start()
            self._started_at = time.time()

        self.record_system_event(
            "orchestrator_started",
            Severity.INFO,
            "Orchestrator started",
            {"components": self.component_status()},
        )
        self.logger.info("Orchestrator started", components=sorted(self.component_status()))

    def stop(self) -> int:
        """Drain the queue, stop timers, flush storage state, then drain the inbox.

        Returns the number of queued requests cancelled by the drain.
        """
        with self._lock:
            if not self.is_running:
                return 0

            cancelled = self.queue.stop() if self.config.queue.enabled else 0

            if self._health_task is not None:
                self._health_task.cancel()
                self._health_task = None
            if self.thermal is not None and self._thermal_running:
                self.thermal.stop_monitoring()
                self._thermal_running = False
            self.collector.stop_monitoring()
            self.collector.disable_adaptive_scaling()
            if self.config.storage.enabled:
                self.storage.stop_monitoring()

            self._consumer_stop.set()
            consumer, self._consumer = self._consumer, None
            self._started_at = None

        if consumer is not None:
            consumer.join(timeout=2.0)
        self.process_pending_events()
        self.record_system_event(
            "orchestrator_stopped",
            Severity.INFO,
            "Orchestrator stopped",
            {"cancelled_requests": cancelled},
        )
        self.logger.info("Orchestrator stopped", cancelled_requests=cancelled)
        return cancelled

    # --------------------------------------------------------- query surface

    def get_metrics(self) -> SystemMetrics:
        """Fresh sample without threshold evaluation or events."""
        return self.collector.collect()

    def get_status(self) -> OrchestratorStatus:
        errors: List[str] = []

        metrics: Optional[Dict[str, Any]] = None
        try:
            metrics = plain(self.get_metrics().without_timestamp())
        except Exception as e:
            self.logger.exception("Metrics unavailable for status")
            errors.append(f"metrics: {e}")

        thermal: Optional[Dict[str, Any]] = None
        if self.thermal is not None:
            try:
                thermal = asdict(self.thermal.get_thermal_status())
            except Exception as e:
                self.logger.exception("Thermal status unavailable")
                errors.append(f"thermal: {e}")

        return OrchestratorStatus(
            started=self.is_running,
            uptime_seconds=time.time() - self._started_at if self._started_at else 0.0,
            components=self.component_status(),
            memory_pressure_level=self.collector.get_memory_pressure_level().value,
            memory_pressure_active=self.collector.is_memory_pressure_active(),
            thresholds=self.collector.get_thresholds().model_dump(),
            queue=self.queue.get_queue_status().to_dict(),
            events_recorded=self.history.total_recorded,
            events_retained=len(self.history),
            last_health_check=self._last_health_check,
            thermal=thermal,
            metrics=metrics,
            errors=errors,
            run_id=self.logger.get_run_id(),
        )

    def get_recent_events(self, limit: int = 50) -> List[SystemEvent]:
        return self.history.recent(limit)

    def trigger_optimization(self) -> OperationResult:
        """Run storage optimization, GC when memory is high, and a thermal check."""
        if not self.is_running:
            return OperationResult(False, "Orchestrator is not running")

        details: Dict[str, Any] = {}
        try:
            if self.config.storage.enabled:
                report: StorageReport = self.storage.optimize_storage_now()
                details["storage"] = report.to_dict()

            metrics = self.collector.collect()
            if metrics.memory.usage_ratio > self.config.orchestrator.gc_memory_ratio:
                details["garbage_collection"] = self.collector.force_garbage_collection().payload()

            if self.thermal is not None:
                status: Optional[ThermalStatus] = self.thermal.force_thermal_check()
                if status is not None:
                    details["thermal"] = asdict(status)
        except GovernorError as e:
            self.logger.error("Manual optimization failed", error=e.to_dict())
            return OperationResult(False, f"Optimization failed: {e.message}", {"error": e.to_dict()})

        self.record_system_event(
            "manual_optimization", Severity.INFO, "Manual optimization completed", {"steps": sorted(details)}
        )
        return OperationResult(True, "Optimization completed", details)

    def get_queue_status(self) -> QueueStatus:
        return self.queue.get_queue_status()

    def get_write_statistics(self) -> WriteStatistics:
        return self.storage.get_write_statistics()

    def get_storage_metrics(self) -> StorageReport:
        return self.storage.get_storage_metrics()

    def cancel_execution(self, request_id: str, reason: Optional[str] = None) -> OperationResult:
        if not self.config.queue.enabled:
            return OperationResult(False, QueueDisabledError().message)
        if reason is None:
            return self.queue.cancel(request_id)
        return self.queue.cancel(request_id, reason)

    def submit(self, payload: Any, priority: int = 5, **options: Any) -> AdmissionRequest:
        """Queue work through the admission queue; see ``AdmissionQueue.submit``."""
        return self.queue.submit(payload, priority, **options)
