"""Admission queue settings."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator


def _default_lightweight_variants() -> Dict[str, str]:
    return {
        "gpt-4": "gpt-3.5-turbo",
        "claude-3-opus": "claude-3-haiku",
    }


class QueueSettings(BaseModel):
    """Admission-controlled execution queue configuration."""
    enabled: bool = Field(default=True, description="Accept submissions")
    max_concurrent: Optional[int] = Field(
        default=None, ge=1, le=64,
        description="Concurrent running items. Derived from installed RAM when unset",
    )
    max_queue_size: int = Field(default=50, ge=1, le=10000, description="Queued items before eviction")
    priority_levels: int = Field(default=10, ge=1, le=100, description="Highest accepted priority")
    timeout_ms: int = Field(default=300_000, ge=1, description="Maximum time an item may wait queued")
    tick_interval_seconds: float = Field(default=1.0, ge=0.01, le=60.0, description="Timeout and dispatch tick")

    memory_threshold_percent: float = Field(default=80.0, ge=0.0, le=100.0, description="Memory usage that triggers advisory recommendations")
    cpu_threshold_percent: float = Field(default=85.0, ge=0.0, le=100.0, description="CPU usage that triggers advisory recommendations")
    resource_pressure_ratio: float = Field(default=0.9, gt=0.0, le=1.0, description="Usage that sheds low-priority queued work")

    reduce_temperature_c: float = Field(default=70.0, description="Halve concurrency at or above this temperature")
    pause_temperature_c: float = Field(default=80.0, description="Suspend dispatch at or above this temperature")
    thermal_cooldown_ms: int = Field(default=60_000, ge=0, description="Delay between recovery and resuming dispatch")

    prefer_lightweight: bool = Field(default=True, description="Recommend lighter payload variants under pressure")
    lightweight_variants: Dict[str, str] = Field(default_factory=_default_lightweight_variants, description="Heavy variant to light variant")
    size_reduction_factor: float = Field(default=0.7, gt=0.0, le=1.0, description="Multiplier recommended for size hints under memory pressure")

    snapshot_path: Optional[Path] = Field(default=None, description="JSON snapshot of queued items written on stop")

    @model_validator(mode="after")
    def check_temperatures(self) -> "QueueSettings":
        if self.reduce_temperature_c >= self.pause_temperature_c:
            raise ValueError("reduce_temperature_c must be below pause_temperature_c")
        return self

    def resolved_max_concurrent(self, total_memory_mb: int) -> int:
        if self.max_concurrent is not None:
            return self.max_concurrent
        return 1 if total_memory_mb <= 1024 else 2
