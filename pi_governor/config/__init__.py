"""Configuration module for pi-governor.

All models and functions are re-exported here.

Submodules:
    - resources: Thresholds, collector and hardware settings
    - storage: Storage engine settings
    - scheduling: Admission queue settings
    - orchestration: Orchestrator, thermal and logging settings
    - loader: GovernorConfig and config loading functions
"""

from .resources import (
    ResourceThresholds,
    CollectorSettings,
    HardwareSettings,
)

from .storage import (
    MIB,
    StorageSettings,
)

from .scheduling import QueueSettings

from .orchestration import (
    ThermalSettings,
    EventHandlingSettings,
    OrchestratorSettings,
    LoggingSettings,
)

from .loader import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_ENV_PREFIX,
    GovernorConfig,
    build_governor_config,
    load_governor_config,
)

__all__ = [
    "ResourceThresholds",
    "CollectorSettings",
    "HardwareSettings",
    "MIB",
    "StorageSettings",
    "QueueSettings",
    "ThermalSettings",
    "EventHandlingSettings",
    "OrchestratorSettings",
    "LoggingSettings",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_ENV_PREFIX",
    "GovernorConfig",
    "build_governor_config",
    "load_governor_config",
]
