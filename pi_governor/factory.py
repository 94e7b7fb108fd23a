"""
Orchestrator builder/factory utilities.

Creates a fully wired Orchestrator with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .config import GovernorConfig, build_governor_config, load_governor_config
from .logger import ProductionLogger
from .orchestration import Orchestrator
from .thermal import ThermalController


class OrchestratorBuilder:
    def __init__(self):
        self._config: Optional[GovernorConfig] = None
        self._thermal: Optional[ThermalController] = None
        self._queue_handler: Optional[Callable[[Any], Any]] = None
        self._logger: Optional[ProductionLogger] = None
        self._total_memory_mb: Optional[int] = None

    def with_config(self, path: Path | str) -> "OrchestratorBuilder":
        self._config = load_governor_config(Path(path))
        return self

    def with_config_data(self, data: Dict[str, Any], env_overrides: bool = False) -> "OrchestratorBuilder":
        self._config = build_governor_config(data, env_overrides=env_overrides)
        return self

    def with_thermal(self, controller: ThermalController) -> "OrchestratorBuilder":
        self._thermal = controller
        return self

    def with_queue_handler(self, handler: Callable[[Any], Any]) -> "OrchestratorBuilder":
        self._queue_handler = handler
        return self

    def with_logger(self, logger: ProductionLogger) -> "OrchestratorBuilder":
        self._logger = logger
        return self

    def with_total_memory(self, total_memory_mb: int) -> "OrchestratorBuilder":
        self._total_memory_mb = total_memory_mb
        return self

    def build(self) -> Orchestrator:
        config = self._config or build_governor_config()
        if self._total_memory_mb is not None:
            config = config.model_copy(
                update={
                    "hardware": config.hardware.model_copy(
                        update={"total_memory_mb": self._total_memory_mb}
                    )
                }
            )
        return Orchestrator(
            config,
            self._thermal,
            queue_handler=self._queue_handler,
            logger=self._logger,
        )


def create_orchestrator(
    config_path: Optional[Path | str] = None,
    *,
    thermal: Optional[ThermalController] = None,
    queue_handler: Optional[Callable[[Any], Any]] = None,
    logger: Optional[ProductionLogger] = None,
) -> Orchestrator:
    """Build an orchestrator from a YAML file, or from defaults plus environment."""
    builder = OrchestratorBuilder()
    if config_path is not None:
        builder.with_config(config_path)
    if thermal is not None:
        builder.with_thermal(thermal)
    if queue_handler is not None:
        builder.with_queue_handler(queue_handler)
    if logger is not None:
        builder.with_logger(logger)
    return builder.build()
