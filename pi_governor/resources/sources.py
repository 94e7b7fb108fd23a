"""
Guarded OS metric readers.

Each reader returns a fully populated metrics dataclass. Any unreadable or
unparsable source degrades that one figure to its documented default and is
logged at debug level; nothing here raises to the caller.
"""

from __future__ import annotations

import logging
import re
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional, Tuple

import psutil

from .data_models import (
    DEFAULT_CPU_FREQUENCY_MHZ,
    DEFAULT_CPU_TEMPERATURE_C,
    CpuMetrics,
    MemoryMetrics,
    NetworkMetrics,
    StorageMetrics,
)

logger = logging.getLogger(__name__)

CPU_TIME_FIELDS = ("user", "nice", "system", "idle", "iowait", "irq", "softirq")
THROTTLE_FREQUENCY_RATIO = 0.9

# Latency reported when the probe itself fails; a dead uplink counts as slow.
PROBE_FAILURE_LATENCY_MS = 100.0
PROBE_UNPARSED_LATENCY_MS = 10.0

_ROUTE_DEV_RE = re.compile(r"\bdev\s+(\S+)")
_PING_TIME_RE = re.compile(r"time[=<]([\d.]+)")

Runner = Callable[..., subprocess.CompletedProcess]


def classify_interface(interface: str) -> str:
    """``wifi`` for wireless interface names, ``ethernet`` otherwise."""
    return "wifi" if interface.startswith(("wlan", "wlp")) else "ethernet"


def guess_bandwidth_mbps(interface: str) -> float:
    if interface.startswith("wlan"):
        return 150.0
    if interface.startswith("eth"):
        return 1000.0
    return 100.0


class MetricsSource:
    """Reads CPU, memory, storage and network figures from the host."""

    def __init__(
        self,
        total_memory_bytes: int,
        filesystem_root: str = "/",
        thermal_zone_path: str = "/sys/class/thermal/thermal_zone0/temp",
        probe_host: str = "8.8.8.8",
        probe_timeout: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        runner: Runner = subprocess.run,
    ):
        self.total_memory_bytes = total_memory_bytes
        self.filesystem_root = filesystem_root
        self.thermal_zone_path = Path(thermal_zone_path)
        self.probe_host = probe_host
        self.probe_timeout = probe_timeout
        self._sleep = sleep
        self._run = runner

    # ------------------------------------------------------------------ CPU

    def read_cpu(self, window: float = 0.1) -> CpuMetrics:
        frequency, throttled = self._cpu_frequency()
        return CpuMetrics(
            usage_percent=self._cpu_usage(window),
            temperature_c=self._cpu_temperature(),
            frequency_mhz=frequency,
            throttled=throttled,
        )

    def _cpu_counters(self) -> Optional[Tuple[float, float]]:
        try:
            times = psutil.cpu_times()
        except Exception as e:
            logger.debug("CPU counters unavailable: %s", e)
            return None
        total = sum(getattr(times, name, 0.0) for name in CPU_TIME_FIELDS)
        idle = getattr(times, "idle", 0.0) + getattr(times, "iowait", 0.0)
        return total, idle

    def _cpu_usage(self, window: float) -> float:
        first = self._cpu_counters()
        if first is None:
            return 0.0
        self._sleep(window)
        second = self._cpu_counters()
        if second is None:
            return 0.0

        total_delta = second[0] - first[0]
        idle_delta = second[1] - first[1]
        if total_delta <= 0:
            return 0.0
        usage = (total_delta - idle_delta) / total_delta * 100.0
        return max(0.0, min(100.0, usage))

    def _cpu_temperature(self) -> float:
        try:
            raw = self.thermal_zone_path.read_text().strip()
            return int(raw) / 1000.0
        except (OSError, ValueError) as e:
            logger.debug("Thermal zone unreadable (%s): %s", self.thermal_zone_path, e)
            return DEFAULT_CPU_TEMPERATURE_C

    def _cpu_frequency(self) -> Tuple[float, bool]:
        try:
            freq = psutil.cpu_freq()
        except Exception as e:
            logger.debug("CPU frequency unavailable: %s", e)
            freq = None
        if freq is None or not freq.current:
            return DEFAULT_CPU_FREQUENCY_MHZ, False

        throttled = bool(freq.max) and freq.current < freq.max * THROTTLE_FREQUENCY_RATIO
        return float(freq.current), throttled

    # --------------------------------------------------------------- Memory

    def read_memory(self) -> MemoryMetrics:
        metrics = MemoryMetrics(
            total=self.total_memory_bytes,
            used=0,
            available=self.total_memory_bytes,
        )
        try:
            vm = psutil.virtual_memory()
            total = int(vm.total)
            available = max(0, min(int(vm.available), total))
            metrics = MemoryMetrics(total=total, used=total - available, available=available)
        except Exception as e:
            logger.debug("Memory counters unavailable: %s", e)

        try:
            swap = psutil.swap_memory()
            metrics.swap_used = max(0, int(swap.total) - int(swap.free))
        except Exception as e:
            logger.debug("Swap counters unavailable: %s", e)

        return metrics

    # -------------------------------------------------------------- Storage

    def read_storage(self) -> StorageMetrics:
        try:
            usage = psutil.disk_usage(self.filesystem_root)
        except Exception as e:
            logger.debug("Filesystem usage unavailable for %s: %s", self.filesystem_root, e)
            return StorageMetrics()
        total = int(usage.total)
        used = max(0, min(int(usage.used), total))
        return StorageMetrics(total=total, used=used, available=int(usage.free))

    # -------------------------------------------------------------- Network

    def read_network(self) -> NetworkMetrics:
        try:
            interface = self._route_interface()
            return NetworkMetrics(
                interface=classify_interface(interface),
                bandwidth_mbps=self._interface_speed(interface),
                latency_ms=self._probe_latency(),
                packets_lost=self._packets_lost(interface),
            )
        except Exception as e:
            logger.debug("Network metrics unavailable: %s", e)
            return NetworkMetrics()

    def _route_interface(self) -> str:
        result = self._run(
            ["ip", "route", "get", self.probe_host],
            capture_output=True,
            text=True,
            timeout=self.probe_timeout,
            check=True,
        )
        match = _ROUTE_DEV_RE.search(result.stdout or "")
        return match.group(1) if match else "wlan0"

    def _interface_speed(self, interface: str) -> float:
        try:
            stats = psutil.net_if_stats().get(interface)
        except Exception as e:
            logger.debug("Interface stats unavailable: %s", e)
            stats = None
        if stats is not None and stats.speed > 0:
            return float(stats.speed)
        return guess_bandwidth_mbps(interface)

    def _probe_latency(self) -> float:
        try:
            result = self._run(
                ["ping", "-c", "1", "-W", "1", self.probe_host],
                capture_output=True,
                text=True,
                timeout=self.probe_timeout,
                check=True,
            )
        except (subprocess.SubprocessError, OSError) as e:
            logger.debug("Latency probe to %s failed: %s", self.probe_host, e)
            return PROBE_FAILURE_LATENCY_MS

        match = _PING_TIME_RE.search(result.stdout or "")
        return float(match.group(1)) if match else PROBE_UNPARSED_LATENCY_MS

    def _packets_lost(self, interface: str) -> int:
        try:
            counters = psutil.net_io_counters(pernic=True).get(interface)
        except Exception as e:
            logger.debug("Interface counters unavailable: %s", e)
            return 0
        if counters is None:
            return 0
        return int(counters.dropin) + int(counters.errin)
