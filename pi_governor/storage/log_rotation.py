"""
Aggregate-size log rotation.

All matching files across every configured directory share one size bound.
Over the bound, the oldest files are deleted until the total fits; surviving
files larger than a tenth of the bound are renamed with a timestamp suffix so
the writer starts a fresh file without losing content.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Sequence

from .data_models import LogFileRecord, LogRotationResult

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".log"
LOG_MARKER = "log"
SINGLE_FILE_RATIO = 0.1


def is_log_file(name: str) -> bool:
    return name.endswith(LOG_SUFFIX) or LOG_MARKER in name


def rotation_stamp(moment: datetime) -> str:
    """ISO-8601 UTC timestamp made filename-safe."""
    iso = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def rotated_name(path: Path, stamp: str) -> Path:
    if path.suffix:
        return path.with_name(f"{path.stem}.{stamp}{path.suffix}")
    return path.with_name(f"{path.name}.{stamp}")


def collect_log_files(directories: Sequence[Path]) -> List[LogFileRecord]:
    """Matching files in directory order, then name order within a directory."""
    records: List[LogFileRecord] = []
    for directory in directories:
        if not directory.is_dir():
            continue
        for entry in sorted(directory.iterdir()):
            if not is_log_file(entry.name):
                continue
            try:
                if not entry.is_file():
                    continue
                st = entry.stat()
            except OSError as e:
                logger.debug("Skipping unreadable log %s: %s", entry, e)
                continue
            records.append(LogFileRecord(path=entry, size_bytes=st.st_size, mtime=st.st_mtime))
    return records


class LogRotator:
    """Keeps the combined size of all log files at or under ``max_size``."""

    def __init__(
        self,
        directories: Sequence[str],
        max_size: int,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.directories = [Path(d) for d in directories]
        self.max_size = max_size
        self._clock = clock

    def current_size(self) -> int:
        return sum(r.size_bytes for r in collect_log_files(self.directories))

    def rotate(self) -> LogRotationResult:
        records = collect_log_files(self.directories)
        total = sum(r.size_bytes for r in records)
        if total <= self.max_size:
            return LogRotationResult(
                skipped=True,
                max_size=self.max_size,
                total_size_before=total,
                total_size_after=total,
            )

        result = LogRotationResult(
            skipped=False,
            max_size=self.max_size,
            total_size_before=total,
            total_size_after=total,
        )

        # sorted() is stable, so equal mtimes keep scan order
        survivors: List[LogFileRecord] = []
        remaining = total
        for record in sorted(records, key=lambda r: r.mtime):
            if remaining <= self.max_size:
                survivors.append(record)
                continue
            try:
                record.path.unlink()
            except OSError as e:
                logger.warning("Failed to delete log %s: %s", record.path, e)
                result.failed_files.append(str(record.path))
                survivors.append(record)
                continue
            remaining -= record.size_bytes
            result.removed_files.append(str(record.path))
            result.removed_size += record.size_bytes

        result.total_size_after = remaining

        stamp = rotation_stamp(self._clock())
        single_file_limit = self.max_size * SINGLE_FILE_RATIO
        for record in survivors:
            if record.size_bytes <= single_file_limit:
                continue
            target = rotated_name(record.path, stamp)
            try:
                record.path.rename(target)
            except OSError as e:
                logger.warning("Failed to rotate log %s: %s", record.path, e)
                result.failed_files.append(str(record.path))
                continue
            result.rotated_files.append(str(target))

        logger.info(
            "Log rotation removed %d files (%d bytes), rotated %d",
            len(result.removed_files), result.removed_size, len(result.rotated_files),
        )
        return result
