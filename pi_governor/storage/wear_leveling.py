"""Round-robin write distribution across storage locations."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from ..exceptions import DirectoryCreationError
from .data_models import WearLevelCursor, WriteStatistics

logger = logging.getLogger(__name__)


class WearLeveler:
    """Cursor over the configured write paths.

    Only ``optimize_writes`` mutates the cursor and counters;
    ``get_next_write_path`` is a pure read. When disabled nothing is created
    or counted and every read returns ``default_path``.
    """

    def __init__(
        self,
        paths: Sequence[str],
        enabled: bool = True,
        default_path: str = "/var/lib/pi-governor",
    ):
        self.paths = list(paths)
        self.enabled = enabled and bool(self.paths)
        self.default_path = default_path
        self._cursor = WearLevelCursor()
        self._path_counts: Dict[str, int] = {p: 0 for p in self.paths}
        self._prepared = False
        self._lock = threading.Lock()

    def optimize_writes(self) -> str:
        """Count one write and advance the cursor; returns the next write path.

        Raises:
            DirectoryCreationError: a write path could not be created. The
                cursor and counter are left untouched.
        """
        if not self.enabled:
            return self.default_path

        with self._lock:
            if not self._prepared:
                self._create_directories()
                self._prepared = True
            self._cursor.write_count += 1
            self._cursor.index = (self._cursor.index + 1) % len(self.paths)
            path = self.paths[self._cursor.index]
            self._path_counts[path] += 1
            return path

    def _create_directories(self) -> None:
        for path in self.paths:
            try:
                Path(path).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error("Cannot create write path %s: %s", path, e)
                raise DirectoryCreationError(str(path), original_exception=e) from e

    def get_next_write_path(self) -> str:
        if not self.enabled:
            return self.default_path
        with self._lock:
            return self.paths[self._cursor.index]

    @property
    def write_count(self) -> int:
        with self._lock:
            return self._cursor.write_count

    def statistics(self) -> WriteStatistics:
        with self._lock:
            return WriteStatistics(
                enabled=self.enabled,
                write_count=self._cursor.write_count,
                current_index=self._cursor.index,
                next_write_path=self.paths[self._cursor.index] if self.enabled else self.default_path,
                paths=list(self.paths),
                path_write_counts=dict(self._path_counts),
            )

    def export_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "index": self._cursor.index,
                "write_count": self._cursor.write_count,
                "paths": list(self.paths),
                "path_write_counts": dict(self._path_counts),
            }

    def restore_state(self, state: Optional[Dict[str, Any]]) -> bool:
        """Resume from an exported state; ignored when the path list changed."""
        if not state or not self.paths or state.get("paths") != self.paths:
            return False
        try:
            index = int(state.get("index", 0))
            write_count = int(state.get("write_count", 0))
            counts = {p: int(c) for p, c in state.get("path_write_counts", {}).items() if p in self._path_counts}
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring malformed wear-leveling state: %s", e)
            return False
        with self._lock:
            self._cursor = WearLevelCursor(index=index % len(self.paths), write_count=max(0, write_count))
            self._path_counts.update(counts)
        return True
