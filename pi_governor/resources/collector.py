"""
System metrics collection and pressure classification.

Features:
- Periodic sampling of CPU, memory, storage and network state
- Memory pressure state machine with gc/critical hysteresis
- Per-sample CPU, storage, network and hardware-limit checks
- Bounded sample history and last-sample cache
- Optional adaptive scaling that reacts to its own pressure events
"""

from __future__ import annotations

import gc
import logging
import threading
from collections import deque
from typing import Any, Dict, List, Optional

import psutil
from pydantic import ValidationError

from ..config import CollectorSettings, ResourceThresholds
from ..events import (
    CpuPressure,
    EventBus,
    GarbageCollectionTriggered,
    GovernorEvent,
    MemoryLimitExceeded,
    MemoryPressure,
    MetricsSampled,
    MonitoringStarted,
    MonitoringStopped,
    NetworkPressure,
    StoragePressure,
    ThresholdsUpdated,
)
from ..exceptions import InvalidConfigurationError
from ..timers import PeriodicTask
from .adaptive_scaling import AdaptiveScaler
from .data_models import (
    HardwareProfile,
    MemoryLimitUsage,
    PerformanceProfile,
    PressureLevel,
    SystemMetrics,
)
from .sources import MetricsSource

logger = logging.getLogger(__name__)


class MetricsCollector:
    """
    Samples host metrics and publishes pressure events on ``self.events``.

    Memory pressure is a three-level state machine. Crossing ``memory_gc``
    emits ``gc`` once; crossing ``memory_critical`` sets the active flag and
    emits ``critical`` (a jump straight from normal emits both, in order);
    while active the level stays latched at ``critical`` until usage drops
    below ``memory_gc``, which emits a single ``normal``. CPU pressure and the
    hardware-limit check have no hysteresis and fire on every sample.
    """

    def __init__(
        self,
        hardware: HardwareProfile,
        settings: Optional[CollectorSettings] = None,
        thresholds: Optional[ResourceThresholds] = None,
        source: Optional[MetricsSource] = None,
    ):
        self.hardware = hardware
        self.settings = settings or CollectorSettings()
        self._thresholds = thresholds or ResourceThresholds()
        self.source = source or MetricsSource(
            total_memory_bytes=hardware.total_memory_bytes,
            filesystem_root=self.settings.filesystem_root,
            thermal_zone_path=self.settings.thermal_zone_path,
            probe_host=self.settings.latency_probe_host,
            probe_timeout=self.settings.probe_timeout_seconds,
        )
        self.events = EventBus("collector")

        self.history: deque[SystemMetrics] = deque(maxlen=self.settings.history_size)
        self._last_metrics: Optional[SystemMetrics] = None
        self._level = PressureLevel.NORMAL
        self._pressure_active = False
        self._write_count = 0

        self._task: Optional[PeriodicTask] = None
        self._lock = threading.RLock()
        self._scaler = None

    # ------------------------------------------------------------ sampling

    def collect(self) -> SystemMetrics:
        """Read all four metric categories without evaluating thresholds."""
        cpu = self.source.read_cpu(self.settings.cpu_sample_window_seconds)
        memory = self.source.read_memory()
        storage = self.source.read_storage()
        network = self.source.read_network()
        with self._lock:
            storage.write_count = self._write_count
        return SystemMetrics(cpu=cpu, memory=memory, storage=storage, network=network)

    def sample(self) -> SystemMetrics:
        """Collect, record and publish one sample, then evaluate thresholds."""
        metrics = self.collect()
        with self._lock:
            self._last_metrics = metrics
            self.history.append(metrics)

        self.events.publish(MetricsSampled(metrics=metrics))
        for event in self.evaluate_thresholds(metrics):
            self.events.publish(event)
        return metrics

    def evaluate_thresholds(self, metrics: SystemMetrics) -> List[GovernorEvent]:
        """Advance the pressure state machine and return the events to emit."""
        pending: List[GovernorEvent] = []
        with self._lock:
            thresholds = self._thresholds
            pending.extend(self._evaluate_memory(metrics.memory.usage_ratio, thresholds))

        if metrics.memory.used > self.hardware.memory_limit_bytes:
            pending.append(
                MemoryLimitExceeded(
                    used=metrics.memory.used, limit=self.hardware.memory_limit_bytes
                )
            )

        if metrics.cpu.usage_percent / 100.0 >= thresholds.cpu_critical:
            pending.append(CpuPressure(usage=metrics.cpu.usage_percent))

        storage_ratio = metrics.storage.usage_ratio
        if storage_ratio >= thresholds.storage_cleanup:
            pending.append(StoragePressure(usage=storage_ratio))

        if metrics.network.latency_ms >= thresholds.network_latency_ms:
            pending.append(NetworkPressure(latency=metrics.network.latency_ms))

        return pending

    def _evaluate_memory(
        self, ratio: float, thresholds: ResourceThresholds
    ) -> List[GovernorEvent]:
        pending: List[GovernorEvent] = []
        if ratio >= thresholds.memory_gc:
            if self._level == PressureLevel.NORMAL:
                self._level = PressureLevel.GC
                pending.append(MemoryPressure(level=PressureLevel.GC, usage=ratio))
            if ratio >= thresholds.memory_critical and not self._pressure_active:
                self._pressure_active = True
                self._level = PressureLevel.CRITICAL
                pending.append(MemoryPressure(level=PressureLevel.CRITICAL, usage=ratio))
        else:
            if self._pressure_active:
                self._pressure_active = False
                pending.append(MemoryPressure(level=PressureLevel.NORMAL, usage=ratio))
            self._level = PressureLevel.NORMAL
        return pending

    # ----------------------------------------------------------- monitoring

    @property
    def monitoring_active(self) -> bool:
        return self._task is not None and self._task.is_running

    @property
    def monitoring_interval(self) -> Optional[float]:
        return self._task.interval if self._task is not None else None

    def start_monitoring(self, interval: Optional[float] = None) -> None:
        """Start periodic sampling; restarts the timer when the interval changes."""
        interval = interval or self.settings.interval_seconds
        with self._lock:
            previous = self._task
            if previous is not None and previous.is_running and previous.interval == interval:
                return
            task = self._task = PeriodicTask(
                "MetricsCollector", interval, self.sample, run_immediately=True
            )
        if previous is not None:
            previous.cancel()
        task.start()
        logger.info("Metrics collection started (interval=%.1fs)", interval)
        self.events.publish(MonitoringStarted(component="collector", interval=interval))

    def stop_monitoring(self) -> None:
        with self._lock:
            task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        logger.info("Metrics collection stopped")
        self.events.publish(MonitoringStopped(component="collector"))

    # ----------------------------------------------------------- thresholds

    def get_thresholds(self) -> ResourceThresholds:
        with self._lock:
            return self._thresholds

    def set_thresholds(self, **updates: float) -> ResourceThresholds:
        """Replace individual thresholds; the result is validated as a whole."""
        with self._lock:
            merged: Dict[str, Any] = {**self._thresholds.model_dump(), **updates}
            try:
                thresholds = ResourceThresholds(**merged)
            except ValidationError as e:
                raise InvalidConfigurationError(
                    f"Rejected threshold update: {e}", invalid_value=updates
                ) from e
            self._thresholds = thresholds
        self.events.publish(ThresholdsUpdated(thresholds=thresholds.model_dump()))
        return thresholds

    # ---------------------------------------------------- state and queries

    def get_last_metrics(self) -> Optional[SystemMetrics]:
        with self._lock:
            return self._last_metrics

    def get_memory_pressure_level(self) -> PressureLevel:
        with self._lock:
            return self._level

    def is_memory_pressure_active(self) -> bool:
        with self._lock:
            return self._pressure_active

    def increment_write_count(self, count: int = 1) -> int:
        with self._lock:
            self._write_count += count
            return self._write_count

    def get_performance_profile(self, metrics: Optional[SystemMetrics] = None) -> PerformanceProfile:
        metrics = metrics or self.get_last_metrics() or self.collect()
        memory = metrics.memory.usage_ratio
        cpu = metrics.cpu.usage_percent / 100.0
        temperature = metrics.cpu.temperature_c

        if memory > 0.9 or cpu > 0.9 or temperature > 80:
            return PerformanceProfile.CRITICAL
        if memory > 0.7 or cpu > 0.7 or temperature > 75:
            return PerformanceProfile.LOW
        if memory > 0.5 or cpu > 0.5 or temperature > 65:
            return PerformanceProfile.MEDIUM
        return PerformanceProfile.HIGH

    def get_memory_limit_usage(self, metrics: Optional[SystemMetrics] = None) -> MemoryLimitUsage:
        metrics = metrics or self.get_last_metrics() or self.collect()
        used = metrics.memory.used
        limit = self.hardware.memory_limit_bytes
        return MemoryLimitUsage(
            total_usage=metrics.memory.usage_ratio,
            limit_usage=used / limit if limit > 0 else 0.0,
            within_limit=used <= limit,
            available_before_limit=max(0, limit - used),
        )

    # ------------------------------------------------------ memory recovery

    def force_garbage_collection(self) -> GarbageCollectionTriggered:
        """Collect all generations and report the process RSS delta."""
        before = self._process_rss()
        collected = gc.collect()
        for generation in range(3):
            collected += gc.collect(generation)
        after = self._process_rss()

        event = GarbageCollectionTriggered(
            memory_freed=max(0, before - after),
            before_gc=before,
            after_gc=after,
            objects_collected=collected,
        )
        logger.debug("Garbage collection freed %d bytes", event.memory_freed)
        self.events.publish(event)
        return event

    def _process_rss(self) -> int:
        try:
            return int(psutil.Process().memory_info().rss)
        except Exception as e:
            logger.debug("Process RSS unavailable: %s", e)
            return 0

    # ----------------------------------------------------- adaptive scaling

    def enable_adaptive_scaling(self) -> None:
        with self._lock:
            if self._scaler is None:
                self._scaler = AdaptiveScaler(self)
                self._scaler.attach()

    def disable_adaptive_scaling(self) -> None:
        with self._lock:
            scaler, self._scaler = self._scaler, None
        if scaler is not None:
            scaler.detach()

    @property
    def adaptive_scaling_enabled(self) -> bool:
        return self._scaler is not None
