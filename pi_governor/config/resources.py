"""Sampling, threshold and hardware settings.

Collector-side configuration: the policy knobs the pressure classifier
compares each sample against and how often it samples.
"""

from __future__ import annotations

from typing import Optional

import psutil
from pydantic import BaseModel, Field, model_validator


# =============================================================================
# Threshold Settings
# =============================================================================

class ResourceThresholds(BaseModel):
    """Pressure thresholds. Ratios are fractions of total capacity."""
    memory_gc: float = Field(default=0.8, gt=0.0, le=1.0, description="Memory ratio that triggers garbage collection")
    memory_critical: float = Field(default=0.9, gt=0.0, le=1.0, description="Memory ratio that sets the critical pressure flag")
    cpu_critical: float = Field(default=0.85, gt=0.0, le=1.0, description="CPU ratio that emits CPU pressure")
    storage_cleanup: float = Field(default=0.8, gt=0.0, le=1.0, description="Filesystem ratio that emits storage pressure")
    network_latency_ms: float = Field(default=100.0, gt=0.0, description="Round-trip latency that emits network pressure")

    @model_validator(mode="after")
    def check_hysteresis_pair(self) -> "ResourceThresholds":
        if self.memory_gc >= self.memory_critical:
            raise ValueError(
                f"memory_gc ({self.memory_gc}) must be below memory_critical ({self.memory_critical})"
            )
        return self


# =============================================================================
# Collector Settings
# =============================================================================

class CollectorSettings(BaseModel):
    """Metrics collector configuration."""
    enabled: bool = Field(default=True, description="Run the metrics collector")
    interval_seconds: float = Field(default=5.0, ge=0.1, le=3600.0, description="Sampling interval in seconds")
    adaptive_scaling: bool = Field(default=False, description="React to own pressure events with GC and reduction requests")
    cpu_sample_window_seconds: float = Field(default=0.1, ge=0.0, le=5.0, description="Wait between CPU counter snapshots")
    history_size: int = Field(default=100, ge=1, le=10000, description="Number of samples kept in memory")
    filesystem_root: str = Field(default="/", description="Mount point whose usage is reported")
    thermal_zone_path: str = Field(default="/sys/class/thermal/thermal_zone0/temp", description="Millidegree temperature source")
    latency_probe_host: str = Field(default="8.8.8.8", description="Host pinged once per sample")
    probe_timeout_seconds: float = Field(default=2.0, ge=0.1, le=30.0, description="Timeout for route and ping subprocesses")


# =============================================================================
# Hardware Settings
# =============================================================================

class HardwareSettings(BaseModel):
    """Static hardware facts. Detected when left unset."""
    total_memory_mb: Optional[int] = Field(default=None, ge=64, description="Installed RAM in MiB")

    def resolved_total_memory_mb(self) -> int:
        if self.total_memory_mb is not None:
            return self.total_memory_mb
        return int(psutil.virtual_memory().total // (1024 * 1024))
