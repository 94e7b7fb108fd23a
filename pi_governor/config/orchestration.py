"""Orchestrator, thermal and logging settings."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ThermalSettings(BaseModel):
    """Thermal collaborator wiring."""
    enabled: bool = Field(default=True, description="Start and subscribe to the thermal controller when one is supplied")


class EventHandlingSettings(BaseModel):
    """System event history configuration."""
    log_all_events: bool = Field(default=True, description="Write every system event to the structured log")
    max_event_history: int = Field(default=500, ge=1, le=100_000, description="Ring buffer capacity")


class OrchestratorSettings(BaseModel):
    """Cross-component feedback and health check configuration."""
    enabled: bool = Field(default=True, description="Allow the orchestrator to start")
    health_check_interval_seconds: float = Field(default=30.0, ge=0.1, le=3600.0, description="Health check period")
    slow_polling_interval_seconds: float = Field(default=10.0, ge=0.1, le=3600.0, description="Collector interval after an aggressive service reduction")
    default_reduction_factor: float = Field(default=0.5, ge=0.0, lt=1.0, description="Threshold scale-down when a throttling event carries none")
    gc_memory_ratio: float = Field(default=0.8, gt=0.0, le=1.0, description="Memory ratio above which trigger_optimization collects garbage")
    critical_usage_ratio: float = Field(default=0.95, gt=0.0, le=1.0, description="Memory or CPU ratio flagged critical by the health check")
    event_handling: EventHandlingSettings = Field(default_factory=EventHandlingSettings)


class LoggingSettings(BaseModel):
    """Structured logger configuration."""
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$", description="Minimum log level")
    directory: Optional[str] = Field(default=None, description="Directory for JSON log files. Console only when unset")
    console: bool = Field(default=True, description="Mirror log lines to the console")
