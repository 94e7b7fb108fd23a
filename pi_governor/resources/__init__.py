"""
Resource sampling and pressure classification.

This package provides:
- MetricsSource: guarded OS readers backed by psutil
- MetricsCollector: periodic sampling and threshold evaluation
- AdaptiveScaler: GC and service reduction driven by pressure events
- Data models and the hardware memory tier
"""

from .data_models import (
    CpuMetrics,
    HardwareProfile,
    MemoryLimitUsage,
    MemoryMetrics,
    NetworkMetrics,
    PerformanceProfile,
    PressureLevel,
    StorageMetrics,
    SystemMetrics,
    build_hardware_profile,
    hardware_memory_limit_mb,
)
from .sources import MetricsSource
from .collector import MetricsCollector
from .adaptive_scaling import AdaptiveScaler

__all__ = [
    "CpuMetrics",
    "HardwareProfile",
    "MemoryLimitUsage",
    "MemoryMetrics",
    "NetworkMetrics",
    "PerformanceProfile",
    "PressureLevel",
    "StorageMetrics",
    "SystemMetrics",
    "build_hardware_profile",
    "hardware_memory_limit_mb",
    "MetricsSource",
    "MetricsCollector",
    "AdaptiveScaler",
]
