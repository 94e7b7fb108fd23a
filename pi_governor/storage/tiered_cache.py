"""
Size-tiered cache across RAM, disk and external media.

Entries are ``<key>.cache`` / ``<key>.meta`` pairs. Small entries go to the
tmpfs-backed RAM directory when one is mounted, large ones to detected
external storage, everything else to the primary on-disk cache directory.
Reads check RAM, then disk, then external roots and honour the expiry
recorded in the metadata.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Sequence

from ..exceptions import StorageOperationError
from .data_models import CacheEntryMeta
from .filesystem import directory_size, is_writable_directory

logger = logging.getLogger(__name__)

MIB = 1024 * 1024
SMALL_ENTRY_BYTES = 1 * MIB
LARGE_ENTRY_BYTES = 50 * MIB
DEFAULT_TTL_SECONDS = 3600

DATA_SUFFIX = ".cache"
META_SUFFIX = ".meta"
EXTERNAL_CACHE_DIRNAME = "pi-governor-cache"
PROBE_FILENAME = ".pi-governor-probe"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_key(key: str) -> str:
    if not key:
        raise ValueError("cache key must be non-empty")
    return _UNSAFE_KEY_CHARS.sub("_", key)


def _walk_mountpoints(devices: Iterable[Any]) -> Iterable[str]:
    for device in devices or []:
        if not isinstance(device, dict):
            continue
        mountpoint = device.get("mountpoint")
        if mountpoint:
            yield mountpoint
        for mp in device.get("mountpoints") or []:
            if mp:
                yield mp
        yield from _walk_mountpoints(device.get("children"))


class TieredCache:
    """RAM → disk → external cache placement and lookup."""

    def __init__(
        self,
        disk_dirs: Sequence[str],
        external_candidates: Sequence[str] = (),
        ram_dir: Optional[str] = None,
        scan_block_devices: bool = True,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        clock: Callable[[], float] = time.time,
    ):
        if not disk_dirs:
            raise ValueError("at least one on-disk cache directory is required")
        self.disk_dirs = [Path(d) for d in disk_dirs]
        self.external_candidates = list(external_candidates)
        self.ram_dir = Path(ram_dir) if ram_dir else None
        self.scan_block_devices = scan_block_devices
        self._run = runner
        self._clock = clock
        self.external_paths: List[Path] = []

    # --------------------------------------------------------- external media

    def detect_external_storage(self) -> List[Path]:
        """Accept candidate mounts where a probe file can be written and removed."""
        candidates = list(self.external_candidates)
        if self.scan_block_devices:
            candidates.extend(self._usb_mountpoints())

        accepted: List[Path] = []
        for candidate in dict.fromkeys(candidates):
            path = Path(candidate)
            if path.is_dir() and is_writable_directory(path, PROBE_FILENAME):
                accepted.append(path)
        self.external_paths = accepted
        if accepted:
            logger.info("External storage available: %s", ", ".join(map(str, accepted)))
        return accepted

    def _usb_mountpoints(self) -> List[str]:
        try:
            result = self._run(
                ["lsblk", "-J", "-o", "NAME,MOUNTPOINT"],
                capture_output=True,
                text=True,
                timeout=5,
                check=True,
            )
            listing = json.loads(result.stdout or "{}")
        except (subprocess.SubprocessError, OSError, ValueError) as e:
            logger.debug("Block device listing unavailable: %s", e)
            return []
        return [mp for mp in _walk_mountpoints(listing.get("blockdevices")) if "usb" in mp]

    # -------------------------------------------------------------- placement

    @property
    def primary_dir(self) -> Path:
        return self.disk_dirs[0]

    def external_cache_dirs(self) -> List[Path]:
        return [path / EXTERNAL_CACHE_DIRNAME for path in self.external_paths]

    def roots(self) -> List[Path]:
        """Lookup order: RAM, disk, external."""
        roots: List[Path] = []
        if self.ram_dir is not None:
            roots.append(self.ram_dir)
        roots.extend(self.disk_dirs)
        roots.extend(self.external_cache_dirs())
        return roots

    def get_optimal_cache_path(self, size: int) -> Path:
        if size < SMALL_ENTRY_BYTES and self.ram_dir is not None:
            return self.ram_dir
        if size > LARGE_ENTRY_BYTES and self.external_paths:
            return self.external_cache_dirs()[0]
        return self.primary_dir

    # ------------------------------------------------------------ read/write

    def put(self, key: str, data: bytes, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> Path:
        """Store ``data``; a failing RAM or external tier falls back to disk."""
        root = self.get_optimal_cache_path(len(data))
        try:
            return self._replace_entry(root, key, data, ttl_seconds)
        except OSError as e:
            if root == self.primary_dir:
                raise StorageOperationError(
                    f"Cache write failed: {e}", path=str(root), original_exception=e
                ) from e
            logger.warning("Cache tier %s unwritable (%s), falling back to disk", root, e)

        try:
            return self._replace_entry(self.primary_dir, key, data, ttl_seconds)
        except OSError as e:
            raise StorageOperationError(
                f"Cache write failed: {e}", path=str(self.primary_dir), original_exception=e
            ) from e

    def _replace_entry(self, root: Path, key: str, data: bytes, ttl_seconds: float) -> Path:
        """Write into ``root`` and drop copies of ``key`` held by other tiers."""
        path = self._write_entry(root, key, data, ttl_seconds)
        name = safe_key(key)
        for other in self.roots():
            if other != root and other.is_dir():
                self._remove_pair(other / f"{name}{DATA_SUFFIX}", other / f"{name}{META_SUFFIX}")
        return path

    def _write_entry(self, root: Path, key: str, data: bytes, ttl_seconds: float) -> Path:
        name = safe_key(key)
        root.mkdir(parents=True, exist_ok=True)
        data_path = root / f"{name}{DATA_SUFFIX}"
        now = self._clock()
        meta = CacheEntryMeta(
            key=key,
            size=len(data),
            created_at=now,
            expires_at=now + ttl_seconds,
            path=str(data_path),
        )
        data_path.write_bytes(data)
        (root / f"{name}{META_SUFFIX}").write_text(json.dumps(asdict(meta)))
        return data_path

    def get(self, key: str) -> Optional[bytes]:
        name = safe_key(key)
        now = self._clock()
        for root in self.roots():
            meta_path = root / f"{name}{META_SUFFIX}"
            data_path = root / f"{name}{DATA_SUFFIX}"
            if not meta_path.exists():
                continue
            meta = self._read_meta(meta_path)
            if meta is None or meta.expires_at <= now:
                self._remove_pair(data_path, meta_path)
                continue
            try:
                return data_path.read_bytes()
            except OSError as e:
                logger.debug("Cache data missing for %s in %s: %s", key, root, e)
                continue
        return None

    def delete(self, key: str) -> int:
        name = safe_key(key)
        removed = 0
        for root in self.roots():
            removed += self._remove_pair(root / f"{name}{DATA_SUFFIX}", root / f"{name}{META_SUFFIX}")
        return removed

    def purge_expired(self) -> int:
        now = self._clock()
        purged = 0
        for root in self.roots():
            if not root.is_dir():
                continue
            for meta_path in sorted(root.glob(f"*{META_SUFFIX}")):
                meta = self._read_meta(meta_path)
                if meta is None or meta.expires_at <= now:
                    data_path = meta_path.with_suffix(DATA_SUFFIX)
                    purged += self._remove_pair(data_path, meta_path)
        return purged

    def usage(self) -> int:
        return sum(directory_size(root) for root in self.roots())

    def _read_meta(self, meta_path: Path) -> Optional[CacheEntryMeta]:
        try:
            return CacheEntryMeta(**json.loads(meta_path.read_text()))
        except (OSError, ValueError, TypeError) as e:
            logger.debug("Unreadable cache metadata %s: %s", meta_path, e)
            return None

    def _remove_pair(self, data_path: Path, meta_path: Path) -> int:
        removed = 0
        for path in (data_path, meta_path):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Failed to remove cache file %s: %s", path, e)
        return removed
