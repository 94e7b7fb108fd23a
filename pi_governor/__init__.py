"""
pi-governor core package.

Resource governor for long-running services on single-board computers:
metrics collection and pressure classification, storage optimization,
admission-controlled execution and the orchestrator that couples them.
"""

from _version import __version__, get_full_version, get_version_dict

from .config import GovernorConfig, build_governor_config, load_governor_config
from .events import EventBus, GovernorEvent
from .exceptions import (
    CapacityRejectionError,
    ConfigurationError,
    FeatureDisabledError,
    GovernorError,
    InvalidConfigurationError,
    OrchestratorStateError,
    QueueDisabledError,
    StorageOperationError,
)
from .factory import OrchestratorBuilder, create_orchestrator
from .logger import JSONFormatter, ProductionLogger, get_logger
from .orchestration import Orchestrator, SystemEvent
from .resources import MetricsCollector, PressureLevel, SystemMetrics
from .results import OperationResult
from .scheduling import AdmissionQueue, AdmissionRequest, RequestStatus
from .storage import StorageManager
from .thermal import ThermalController, ThermalStatus

__all__ = [
    "__version__",
    "get_full_version",
    "get_version_dict",
    "GovernorConfig",
    "build_governor_config",
    "load_governor_config",
    "EventBus",
    "GovernorEvent",
    "CapacityRejectionError",
    "ConfigurationError",
    "FeatureDisabledError",
    "GovernorError",
    "InvalidConfigurationError",
    "OrchestratorStateError",
    "QueueDisabledError",
    "StorageOperationError",
    "OrchestratorBuilder",
    "create_orchestrator",
    "JSONFormatter",
    "ProductionLogger",
    "get_logger",
    "Orchestrator",
    "SystemEvent",
    "MetricsCollector",
    "PressureLevel",
    "SystemMetrics",
    "OperationResult",
    "AdmissionQueue",
    "AdmissionRequest",
    "RequestStatus",
    "StorageManager",
    "ThermalController",
    "ThermalStatus",
]
