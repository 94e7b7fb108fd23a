"""
Data models for the storage engine.

Plain dataclasses shared by the rotation, wear-leveling, cache and cleanup
modules. No internal dependencies.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class MountStatus(str, Enum):
    MOUNTED = "mounted"
    ALREADY_MOUNTED = "already_mounted"
    FALLBACK = "fallback"


@dataclass
class TmpfsMount:
    path: str
    status: MountStatus
    size_mb: int = 0
    error: Optional[str] = None

    @property
    def ram_backed(self) -> bool:
        return self.status in (MountStatus.MOUNTED, MountStatus.ALREADY_MOUNTED)


@dataclass
class LogFileRecord:
    path: Path
    size_bytes: int
    mtime: float


@dataclass
class LogRotationResult:
    """Observable outcome of one rotation pass. Sizes are exact byte counts."""

    skipped: bool
    max_size: int
    total_size_before: int
    total_size_after: int
    removed_files: List[str] = field(default_factory=list)
    removed_size: int = 0
    rotated_files: List[str] = field(default_factory=list)
    failed_files: List[str] = field(default_factory=list)


@dataclass
class WearLevelCursor:
    index: int = 0
    write_count: int = 0


@dataclass
class WriteStatistics:
    enabled: bool
    write_count: int
    current_index: int
    next_write_path: str
    paths: List[str]
    path_write_counts: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CacheEntryMeta:
    key: str
    size: int
    created_at: float
    expires_at: float
    path: str


@dataclass
class CleanupResult:
    skipped: bool
    usage_percentage_before: float
    usage_percentage_after: float
    cleaned_files: int = 0
    cleaned_size: int = 0
    logs_rotated: bool = False


@dataclass
class StorageReport:
    """Snapshot returned by ``get_storage_metrics``."""

    total_capacity: int
    used_storage: int
    available_storage: int
    current_log_size: int
    write_operations: int
    tmpfs_usage: int
    cache_usage: int
    external_storage_available: bool

    @property
    def usage_ratio(self) -> float:
        return self.used_storage / self.total_capacity if self.total_capacity > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
