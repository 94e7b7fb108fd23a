"""GovernorConfig model and YAML loading with environment overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import InvalidConfigurationError
from .orchestration import LoggingSettings, OrchestratorSettings, ThermalSettings
from .resources import CollectorSettings, HardwareSettings, ResourceThresholds
from .scheduling import QueueSettings
from .storage import StorageSettings

DEFAULT_CONFIG_PATH = Path("config/governor_config.yaml")
DEFAULT_ENV_PREFIX = "PIGOV_"


class GovernorConfig(BaseModel):
    """Top-level configuration. Every section is defaulted."""

    model_config = ConfigDict(extra="forbid")

    hardware: HardwareSettings = Field(default_factory=HardwareSettings)
    thresholds: ResourceThresholds = Field(default_factory=ResourceThresholds)
    collector: CollectorSettings = Field(default_factory=CollectorSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    thermal: ThermalSettings = Field(default_factory=ThermalSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def _lower_keys(d: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize dictionary keys to lowercase."""
    return {k.lower(): v for k, v in d.items()}


def _apply_env_overrides(cfg: Dict[str, Any], env: Dict[str, str], prefix: str) -> None:
    """Apply simple env overrides using DOUBLE-UNDERSCORE path syntax.

    Example: PIGOV_QUEUE__MAX_CONCURRENT=1 overrides queue.max_concurrent
    """
    plen = len(prefix)
    for key, value in env.items():
        if not key.startswith(prefix):
            continue
        path = key[plen:].lower().split("__")
        cur: Any = cfg
        for part in path[:-1]:
            if part not in cur or not isinstance(cur[part], dict):
                cur[part] = {}
            cur = cur[part]
        leaf = path[-1]
        if value.lower() in {"true", "false"}:
            cur[leaf] = value.lower() == "true"
        elif value.startswith("[") or value.startswith("{"):
            cur[leaf] = yaml.safe_load(value)
        else:
            try:
                if "." in value:
                    cur[leaf] = float(value)
                else:
                    cur[leaf] = int(value)
            except ValueError:
                cur[leaf] = value


def build_governor_config(
    data: Optional[Dict[str, Any]] = None,
    *,
    env_overrides: bool = True,
    env: Optional[Dict[str, str]] = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
) -> GovernorConfig:
    """Validate a raw mapping (e.g. parsed YAML) into a `GovernorConfig`."""
    merged = _lower_keys(dict(data or {}))
    if env_overrides:
        _apply_env_overrides(merged, env if env is not None else dict(os.environ), env_prefix)

    try:
        return GovernorConfig(**merged)
    except ValidationError as e:
        raise InvalidConfigurationError(f"Invalid governor configuration: {e}") from e


def load_governor_config(
    path: Path | str = DEFAULT_CONFIG_PATH,
    *,
    env_overrides: bool = True,
    env: Optional[Dict[str, str]] = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
) -> GovernorConfig:
    """Load YAML config and return a typed `GovernorConfig`.

    - Unknown keys are rejected so typos do not silently fall back to defaults
    - Optionally applies environment variable overrides
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {p}")

    with open(p, "r") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise InvalidConfigurationError("Configuration root must be a mapping", config_path=str(p))

    return build_governor_config(
        raw, env_overrides=env_overrides, env=env, env_prefix=env_prefix
    )
