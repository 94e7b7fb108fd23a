"""
Storage optimization engine.

Provides a unified interface for:
- tmpfs provisioning for temporary files
- Aggregate log rotation
- Wear-leveling write distribution
- Tiered caching across RAM, disk and external media
- Age-based cleanup under filesystem pressure
- Periodic storage monitoring
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import psutil
from pydantic import ValidationError

from ..config import StorageSettings
from ..events import (
    CachingSetupCompleted,
    CleanupCompleted,
    CleanupSkipped,
    EventBus,
    ExternalStorageDetected,
    LogRotationCompleted,
    LogRotationSkipped,
    MonitoringStarted,
    MonitoringStopped,
    StorageMetricsUpdated,
    StorageOptimizationCompleted,
    TmpfsSetupCompleted,
    WriteOptimized,
)
from ..exceptions import InvalidConfigurationError, StorageOperationError
from ..persistence import read_json, write_json_atomic
from ..resources.data_models import DEFAULT_STORAGE_TOTAL_BYTES
from ..timers import PeriodicTask
from .data_models import CleanupResult, LogRotationResult, StorageReport, TmpfsMount, WriteStatistics
from .filesystem import files_older_than, total_size
from .log_rotation import LogRotator
from .media import MediaHandler
from .tiered_cache import TieredCache
from .tmpfs import TmpfsProvisioner
from .wear_leveling import WearLeveler

logger = logging.getLogger(__name__)

# Fixed policy, independent of the collector's configurable storage threshold
CLEANUP_USAGE_THRESHOLD = 0.8
LOG_ROTATION_TRIGGER_RATIO = 0.8
CACHE_MAX_AGE_SECONDS = 7 * 24 * 3600
TEMP_MAX_AGE_SECONDS = 24 * 3600
RAM_CACHE_DIRNAME = "cache"


class StorageManager:
    """
    Storage engine facade publishing on ``self.events``.

    The lock serializes rotation and cleanup so a monitoring tick and an
    orchestrator-triggered cleanup never scan and delete concurrently.
    """

    def __init__(
        self,
        settings: Optional[StorageSettings] = None,
        total_memory_mb: int = 1024,
        disk_usage: Callable[[str], Any] = psutil.disk_usage,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or StorageSettings()
        self.total_memory_mb = total_memory_mb
        self.events = EventBus("storage")
        self._disk_usage = disk_usage
        self._runner = runner
        self._clock = clock

        self._lock = threading.RLock()
        self._task: Optional[PeriodicTask] = None
        self._build_components()
        self._load_state()

    def _build_components(self) -> None:
        s = self.settings
        self.tmpfs = TmpfsProvisioner(
            s.tmpfs_mounts, self.total_memory_mb, s.tmpfs_size_ratio, runner=self._runner
        )
        self.log_rotator = LogRotator(s.log_directories, s.max_log_size_bytes)
        self.wear_leveler = WearLeveler(
            s.wear_leveling_paths, s.wear_leveling_enabled, s.default_write_path
        )
        self.cache = TieredCache(
            disk_dirs=s.cache_directories,
            external_candidates=s.external_storage_paths,
            scan_block_devices=s.scan_block_devices,
            runner=self._runner,
            clock=self._clock,
        )
        self.media = MediaHandler(
            self.cache, s.tmpfs_mounts, s.large_file_handling_enabled, publish=self.events.publish
        )

    # ------------------------------------------------------------------ setup

    def initialize(self) -> None:
        self.setup_tmpfs()
        self.setup_intelligent_caching()

    def setup_tmpfs(self) -> List[TmpfsMount]:
        mounts = self.tmpfs.provision()
        primary = self.tmpfs.primary()
        if primary is not None and primary.ram_backed:
            self.cache.ram_dir = Path(primary.path) / RAM_CACHE_DIRNAME
        else:
            self.cache.ram_dir = None
        self.events.publish(
            TmpfsSetupCompleted(
                mounted=tuple(m.path for m in mounts if m.ram_backed),
                fallback=tuple(m.path for m in mounts if not m.ram_backed),
            )
        )
        return mounts

    def is_tmpfs_available(self) -> bool:
        return self.tmpfs.any_ram_backed()

    def setup_intelligent_caching(self) -> List[Path]:
        roots = [self.cache.ram_dir] if self.cache.ram_dir else []
        roots.extend(self.cache.disk_dirs)
        for root in roots:
            try:
                root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("Cannot create cache directory %s: %s", root, e)

        external = self.cache.detect_external_storage()
        if external:
            self.events.publish(ExternalStorageDetected(paths=tuple(str(p) for p in external)))
        self.events.publish(CachingSetupCompleted(cache_roots=tuple(str(r) for r in self.cache.roots())))
        return external

    # ----------------------------------------------------------- log rotation

    def rotate_logs(self) -> LogRotationResult:
        with self._lock:
            result = self.log_rotator.rotate()

        if result.skipped:
            logger.debug("Log rotation skipped at %d bytes", result.total_size_before)
            self.events.publish(
                LogRotationSkipped(total_size=result.total_size_before, max_size=result.max_size)
            )
        else:
            self.events.publish(
                LogRotationCompleted(
                    total_size_before=result.total_size_before,
                    total_size_after=result.total_size_after,
                    removed_files=tuple(result.removed_files),
                    removed_size=result.removed_size,
                    rotated_files=tuple(result.rotated_files),
                )
            )
        return result

    # ------------------------------------------------------------ wear leveling

    def optimize_writes(self) -> str:
        path = self.wear_leveler.optimize_writes()
        if self.wear_leveler.enabled:
            self.events.publish(
                WriteOptimized(write_count=self.wear_leveler.write_count, next_write_path=path)
            )
        return path

    def get_next_write_path(self) -> str:
        return self.wear_leveler.get_next_write_path()

    def get_write_statistics(self) -> WriteStatistics:
        return self.wear_leveler.statistics()

    # ------------------------------------------------------------------- cache

    def get_optimal_cache_path(self, size: int) -> Path:
        return self.cache.get_optimal_cache_path(size)

    def cache_put(self, key: str, data: bytes, ttl_seconds: float = 3600) -> Path:
        return self.cache.put(key, data, ttl_seconds)

    def cache_get(self, key: str) -> Optional[bytes]:
        return self.cache.get(key)

    # ----------------------------------------------------------------- cleanup

    def _filesystem_usage(self) -> Tuple[int, int, int]:
        try:
            usage = self._disk_usage(self.settings.filesystem_root)
            total = int(usage.total)
            return total, max(0, min(int(usage.used), total)), int(usage.free)
        except Exception as e:
            logger.debug("Filesystem usage unavailable: %s", e)
            return DEFAULT_STORAGE_TOTAL_BYTES, 0, DEFAULT_STORAGE_TOTAL_BYTES

    def usage_ratio(self) -> float:
        total, used, _free = self._filesystem_usage()
        return used / total if total > 0 else 0.0

    def cleanup_storage(self, force: bool = False) -> CleanupResult:
        """Age out cache and temp files once filesystem usage reaches 80%.

        Below 80% this only reports the measured usage, unless ``force`` is set
        for orchestrator-driven mitigation.
        """
        with self._lock:
            before = self.usage_ratio()
            if before < CLEANUP_USAGE_THRESHOLD and not force:
                result = CleanupResult(
                    skipped=True,
                    usage_percentage_before=before * 100,
                    usage_percentage_after=before * 100,
                )
            else:
                result = self._run_cleanup(before)

        if result.skipped:
            self.events.publish(CleanupSkipped(usage_percentage=result.usage_percentage_before))
        else:
            self.events.publish(
                CleanupCompleted(
                    cleaned_files=result.cleaned_files,
                    cleaned_size=result.cleaned_size,
                    usage_percentage_before=result.usage_percentage_before,
                    usage_percentage_after=result.usage_percentage_after,
                    logs_rotated=result.logs_rotated,
                )
            )
        return result

    def _run_cleanup(self, before: float) -> CleanupResult:
        now = self._clock()
        cache_roots = list(self.cache.disk_dirs) + self.cache.external_cache_dirs()
        temp_roots = [Path(p) for p in self.settings.tmpfs_mounts]

        candidates = files_older_than(cache_roots, now - CACHE_MAX_AGE_SECONDS)
        candidates += files_older_than(temp_roots, now - TEMP_MAX_AGE_SECONDS)
        candidates.sort(key=lambda item: item[1].st_mtime)

        cleaned_files = 0
        cleaned_size = 0
        seen = set()
        for path, st in candidates:
            if path in seen:
                continue
            seen.add(path)
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Cleanup could not remove %s: %s", path, e)
                continue
            cleaned_files += 1
            cleaned_size += st.st_size

        after = self.usage_ratio()
        logs_rotated = False
        if after >= CLEANUP_USAGE_THRESHOLD:
            self.rotate_logs()
            logs_rotated = True
            after = self.usage_ratio()

        logger.info("Cleanup removed %d files (%d bytes)", cleaned_files, cleaned_size)
        return CleanupResult(
            skipped=False,
            usage_percentage_before=before * 100,
            usage_percentage_after=after * 100,
            cleaned_files=cleaned_files,
            cleaned_size=cleaned_size,
            logs_rotated=logs_rotated,
        )

    # ----------------------------------------------------------------- metrics

    def get_storage_metrics(self) -> StorageReport:
        total, used, free = self._filesystem_usage()
        return StorageReport(
            total_capacity=total,
            used_storage=used,
            available_storage=free,
            current_log_size=self.log_rotator.current_size(),
            write_operations=self.wear_leveler.write_count,
            tmpfs_usage=total_size(Path(p) for p in self.settings.tmpfs_mounts),
            cache_usage=self.cache.usage(),
            external_storage_available=bool(self.cache.external_paths),
        )

    def optimize_storage_now(self) -> StorageReport:
        """Run every optimization pass once, synchronously."""
        if not self.tmpfs.provisioned:
            self.setup_tmpfs()
        self.setup_intelligent_caching()
        self.rotate_logs()
        try:
            self.optimize_writes()
        except StorageOperationError as e:
            logger.error("Write optimization failed: %s", e.message)
        if self.usage_ratio() >= CLEANUP_USAGE_THRESHOLD:
            self.cleanup_storage()

        report = self.get_storage_metrics()
        self.events.publish(StorageOptimizationCompleted(report=report))
        return report

    # -------------------------------------------------------------- monitoring

    @property
    def monitoring_active(self) -> bool:
        return self._task is not None and self._task.is_running

    def start_monitoring(self, interval: Optional[float] = None) -> None:
        interval = interval or self.settings.monitoring_interval_seconds
        with self._lock:
            if self.monitoring_active:
                return
            self._task = PeriodicTask("StorageMonitor", interval, self._monitor_tick)
            self._task.start()
        logger.info("Storage monitoring started (interval=%.0fs)", interval)
        self.events.publish(MonitoringStarted(component="storage", interval=interval))

    def stop_monitoring(self) -> None:
        with self._lock:
            task, self._task = self._task, None
        if task is not None:
            task.cancel()
            self.events.publish(MonitoringStopped(component="storage"))
        self.flush_state()

    def _monitor_tick(self) -> None:
        report = self.get_storage_metrics()
        self.events.publish(StorageMetricsUpdated(report=report))
        if report.usage_ratio >= CLEANUP_USAGE_THRESHOLD:
            self.cleanup_storage()
        if report.current_log_size >= self.settings.max_log_size_bytes * LOG_ROTATION_TRIGGER_RATIO:
            self.rotate_logs()

    # ----------------------------------------------------------- configuration

    def get_configuration(self) -> StorageSettings:
        return self.settings.model_copy(deep=True)

    def update_configuration(self, **updates: Any) -> StorageSettings:
        """Apply validated setting changes; wear-leveling progress is kept."""
        merged: Dict[str, Any] = {**self.settings.model_dump(), **updates}
        try:
            settings = StorageSettings(**merged)
        except ValidationError as e:
            raise InvalidConfigurationError(
                f"Rejected storage configuration: {e}", invalid_value=updates
            ) from e

        with self._lock:
            state = self.wear_leveler.export_state()
            ram_dir = self.cache.ram_dir
            external = self.cache.external_paths
            self.settings = settings
            self._build_components()
            self.wear_leveler.restore_state(state)
            self.cache.ram_dir = ram_dir
            self.cache.external_paths = external
        return self.get_configuration()

    # ------------------------------------------------------------- persistence

    def flush_state(self) -> bool:
        if self.settings.state_file is None:
            return False
        write_json_atomic(
            self.settings.state_file,
            {"saved_at": self._clock(), "wear_leveling": self.wear_leveler.export_state()},
        )
        return True

    def _load_state(self) -> None:
        if self.settings.state_file is None:
            return
        data = read_json(self.settings.state_file)
        if data and self.wear_leveler.restore_state(data.get("wear_leveling")):
            logger.info("Restored wear-leveling state from %s", self.settings.state_file)
