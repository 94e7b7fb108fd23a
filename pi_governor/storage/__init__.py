"""
Storage optimization for flash-backed single-board computers.

This package provides:
- StorageManager: engine facade with monitoring and cleanup
- LogRotator: aggregate-size log rotation
- WearLeveler: round-robin write distribution
- TieredCache: RAM/disk/external cache placement
- TmpfsProvisioner and MediaHandler
"""

from .data_models import (
    CacheEntryMeta,
    CleanupResult,
    LogFileRecord,
    LogRotationResult,
    MountStatus,
    StorageReport,
    TmpfsMount,
    WearLevelCursor,
    WriteStatistics,
)
from .log_rotation import LogRotator, collect_log_files, is_log_file
from .wear_leveling import WearLeveler
from .tiered_cache import TieredCache
from .tmpfs import TmpfsProvisioner
from .media import MediaHandler
from .manager import CLEANUP_USAGE_THRESHOLD, StorageManager

__all__ = [
    "CacheEntryMeta",
    "CleanupResult",
    "LogFileRecord",
    "LogRotationResult",
    "MountStatus",
    "StorageReport",
    "TmpfsMount",
    "WearLevelCursor",
    "WriteStatistics",
    "LogRotator",
    "collect_log_files",
    "is_log_file",
    "WearLeveler",
    "TieredCache",
    "TmpfsProvisioner",
    "MediaHandler",
    "CLEANUP_USAGE_THRESHOLD",
    "StorageManager",
]
