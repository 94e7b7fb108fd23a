"""
Adaptive scaling driven by the collector's own pressure events.

Features:
- Garbage collection on ``gc``-level memory pressure
- Service reduction requests sized against the hardware memory tier
- Restoration request once memory pressure clears
- CPU reduction and storage cleanup requests
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List

from ..events import (
    CpuPressure,
    CpuReductionRequested,
    MemoryLimitExceeded,
    MemoryPressure,
    ServiceReductionRequested,
    ServiceRestorationRequested,
    StorageCleanupRequested,
    StoragePressure,
    Subscription,
)
from .data_models import PressureLevel

if TYPE_CHECKING:
    from .collector import MetricsCollector

logger = logging.getLogger(__name__)

AGGRESSIVE = "aggressive"
MODERATE = "moderate"
LIGHT = "light"


class AdaptiveScaler:
    """Turns pressure events into GC runs and reduction/restoration requests."""

    def __init__(self, collector: "MetricsCollector"):
        self.collector = collector
        self._subscriptions: List[Subscription] = []

    def attach(self) -> None:
        if self._subscriptions:
            return
        bus = self.collector.events
        self._subscriptions = [
            bus.subscribe(MemoryPressure, self._on_memory_pressure, name="adaptive_memory"),
            bus.subscribe(MemoryLimitExceeded, self._on_limit_exceeded, name="adaptive_limit"),
            bus.subscribe(CpuPressure, self._on_cpu_pressure, name="adaptive_cpu"),
            bus.subscribe(StoragePressure, self._on_storage_pressure, name="adaptive_storage"),
        ]

    def detach(self) -> None:
        for subscription in self._subscriptions:
            self.collector.events.unsubscribe(subscription)
        self._subscriptions = []

    def reduction_level(self, usage: float) -> str:
        """Pick a reduction level for a memory usage ratio.

        ``aggressive`` when usage is beyond the hardware tier's share of RAM
        or at 95%, ``moderate`` at 90%, ``light`` otherwise.
        """
        hardware = self.collector.hardware
        limit_ratio = hardware.memory_limit_mb / hardware.total_memory_mb
        if usage > limit_ratio or usage >= 0.95:
            return AGGRESSIVE
        if usage >= 0.9:
            return MODERATE
        return LIGHT

    def _on_memory_pressure(self, event: MemoryPressure) -> None:
        if event.level == PressureLevel.GC:
            self.collector.force_garbage_collection()
        elif event.level == PressureLevel.CRITICAL:
            level = self.reduction_level(event.usage)
            logger.warning("Critical memory pressure (%.0f%%), requesting %s reduction", event.usage * 100, level)
            self.collector.events.publish(
                ServiceReductionRequested(reason="memory_pressure", level=level)
            )
        elif event.level == PressureLevel.NORMAL:
            self.collector.events.publish(
                ServiceRestorationRequested(reason="memory_pressure_resolved")
            )

    def _on_limit_exceeded(self, event: MemoryLimitExceeded) -> None:
        logger.warning(
            "Memory %d MiB over hardware limit %d MiB",
            event.used // (1024 * 1024), event.limit // (1024 * 1024),
        )
        self.collector.force_garbage_collection()
        self.collector.events.publish(
            ServiceReductionRequested(reason="memory_limit_exceeded", level=AGGRESSIVE)
        )

    def _on_cpu_pressure(self, event: CpuPressure) -> None:
        self.collector.events.publish(CpuReductionRequested(usage=event.usage))

    def _on_storage_pressure(self, event: StoragePressure) -> None:
        self.collector.events.publish(StorageCleanupRequested(usage=event.usage))
