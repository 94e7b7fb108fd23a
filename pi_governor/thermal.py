"""
Thermal collaborator contract.

The governor does not read thermal sensors for throttling decisions itself;
it consumes a controller that publishes ``ThermalThrottling``,
``ThermalRecovery`` and ``ThermalEmergency`` on its ``events`` bus and
accepts the commands below.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from .events import EventBus

# Canonical throttle actions published by thermal controllers
ACTION_REDUCE_25 = "reduce_25"
ACTION_REDUCE_50 = "reduce_50"
ACTION_PAUSE_SERVICES = "pause_services"


@dataclass
class ThermalStatus:
    current_temperature: float
    active_throttling: bool
    current_action: Optional[str] = None


@runtime_checkable
class ThermalController(Protocol):
    events: EventBus

    def start_monitoring(self) -> None: ...

    def stop_monitoring(self) -> None: ...

    def force_thermal_check(self) -> Optional[ThermalStatus]: ...

    def get_thermal_status(self) -> ThermalStatus: ...
