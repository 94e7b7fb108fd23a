"""Storage engine settings."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

MIB = 1024 * 1024


class StorageSettings(BaseModel):
    """Storage optimization engine configuration."""
    enabled: bool = Field(default=True, description="Run the storage engine")
    max_log_size_bytes: int = Field(default=100 * MIB, ge=1, description="Aggregate size bound across all log directories")
    tmpfs_mounts: List[str] = Field(
        default=["/tmp/pi-governor", "/var/tmp/pi-governor"],
        description="RAM-backed mount points; the first one hosts the RAM cache",
    )
    tmpfs_size_ratio: float = Field(default=0.1, gt=0.0, le=0.5, description="tmpfs size as a fraction of installed RAM")
    log_directories: List[str] = Field(default=["/var/log/pi-governor"], description="Directories scanned by log rotation")
    cache_directories: List[str] = Field(default=["/var/cache/pi-governor"], description="On-disk cache roots; the first is primary")
    external_storage_paths: List[str] = Field(default=["/media", "/mnt"], description="Candidate external mount points")
    wear_leveling_enabled: bool = Field(default=True, description="Rotate writes across wear_leveling_paths")
    wear_leveling_paths: List[str] = Field(
        default=[
            "/var/lib/pi-governor/data0",
            "/var/lib/pi-governor/data1",
            "/var/lib/pi-governor/data2",
        ],
        description="Write targets visited round-robin",
    )
    default_write_path: str = Field(default="/var/lib/pi-governor", description="Write target when wear leveling is off")
    monitoring_interval_seconds: float = Field(default=60.0, ge=0.1, le=86400.0, description="Storage monitoring interval")
    filesystem_root: str = Field(default="/", description="Mount point whose usage drives cleanup")
    scan_block_devices: bool = Field(default=True, description="Also look for USB mountpoints via lsblk")
    large_file_handling_enabled: bool = Field(default=True, description="Allow streaming large media through the engine")
    state_file: Optional[Path] = Field(default=None, description="Persist write counter and cursor here across restarts")

    @model_validator(mode="after")
    def check_wear_leveling_paths(self) -> "StorageSettings":
        if self.wear_leveling_enabled and not self.wear_leveling_paths:
            raise ValueError("wear_leveling_paths must be non-empty when wear leveling is enabled")
        return self
