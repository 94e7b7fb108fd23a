"""
Data models for resource sampling.

This module contains the dataclasses used throughout the resources package.
It has no internal dependencies to serve as a stable foundation layer.
"""

from dataclasses import dataclass, field
from enum import Enum
import time

MIB = 1024 * 1024
GIB = 1024 * MIB

DEFAULT_CPU_TEMPERATURE_C = 45.0
DEFAULT_CPU_FREQUENCY_MHZ = 1500.0
DEFAULT_STORAGE_TOTAL_BYTES = 32 * GIB
DEFAULT_NETWORK_INTERFACE = "wifi"
DEFAULT_NETWORK_BANDWIDTH_MBPS = 100.0
DEFAULT_NETWORK_LATENCY_MS = 10.0


class PressureLevel(str, Enum):
    """Memory pressure state machine value."""

    NORMAL = "normal"
    GC = "gc"
    CRITICAL = "critical"


class PerformanceProfile(str, Enum):
    """Coarse performance headroom derived from one sample."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    CRITICAL = "critical"


@dataclass
class CpuMetrics:
    usage_percent: float = 0.0
    temperature_c: float = DEFAULT_CPU_TEMPERATURE_C
    frequency_mhz: float = DEFAULT_CPU_FREQUENCY_MHZ
    throttled: bool = False


@dataclass
class MemoryMetrics:
    total: int
    used: int = 0
    available: int = 0
    swap_used: int = 0

    @property
    def usage_ratio(self) -> float:
        return self.used / self.total if self.total > 0 else 0.0


@dataclass
class StorageMetrics:
    total: int = DEFAULT_STORAGE_TOTAL_BYTES
    used: int = 0
    available: int = DEFAULT_STORAGE_TOTAL_BYTES
    write_count: int = 0

    @property
    def usage_ratio(self) -> float:
        return self.used / self.total if self.total > 0 else 0.0


@dataclass
class NetworkMetrics:
    interface: str = DEFAULT_NETWORK_INTERFACE
    bandwidth_mbps: float = DEFAULT_NETWORK_BANDWIDTH_MBPS
    latency_ms: float = DEFAULT_NETWORK_LATENCY_MS
    packets_lost: int = 0


@dataclass
class SystemMetrics:
    """One sampling snapshot. Superseded by the next sample."""

    cpu: CpuMetrics
    memory: MemoryMetrics
    storage: StorageMetrics
    network: NetworkMetrics
    timestamp: float = field(default_factory=time.time)

    def without_timestamp(self) -> dict:
        """Comparable view used to check two samples for equality."""
        return {
            "cpu": self.cpu,
            "memory": self.memory,
            "storage": self.storage,
            "network": self.network,
        }


@dataclass
class HardwareProfile:
    """Installed RAM and the memory cap derived from its tier."""

    total_memory_mb: int
    memory_limit_mb: int

    @property
    def total_memory_bytes(self) -> int:
        return self.total_memory_mb * MIB

    @property
    def memory_limit_bytes(self) -> int:
        return self.memory_limit_mb * MIB


@dataclass
class MemoryLimitUsage:
    """Live memory usage relative to installed RAM and the hardware cap."""

    total_usage: float
    limit_usage: float
    within_limit: bool
    available_before_limit: int


def hardware_memory_limit_mb(total_memory_mb: int) -> int:
    """Memory cap for a RAM tier: 512MiB up to 1GiB, 1GiB up to 2GiB, else 2GiB.

    Never above the installed total.
    """
    if total_memory_mb <= 1024:
        limit = 512
    elif total_memory_mb <= 2048:
        limit = 1024
    else:
        limit = 2048
    return min(limit, total_memory_mb)


def build_hardware_profile(total_memory_mb: int) -> HardwareProfile:
    return HardwareProfile(
        total_memory_mb=total_memory_mb,
        memory_limit_mb=hardware_memory_limit_mb(total_memory_mb),
    )
