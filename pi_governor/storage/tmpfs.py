"""RAM-backed mount provisioning with plain-directory fallback."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import psutil

from .data_models import MountStatus, TmpfsMount

logger = logging.getLogger(__name__)


class TmpfsProvisioner:
    """Mount tmpfs at each configured point, or leave a plain directory.

    Mounting needs privileges most service users lack; a failed mount is
    logged at info level and the directory is used as-is.
    """

    def __init__(
        self,
        mount_points: Sequence[str],
        total_memory_mb: int,
        size_ratio: float = 0.1,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.mount_points = list(mount_points)
        self.size_mb = max(1, int(total_memory_mb * size_ratio))
        self._run = runner
        self.mounts: List[TmpfsMount] = []

    def mounted_fstype(self, mount_point: str) -> Optional[str]:
        """Filesystem type mounted exactly at ``mount_point``, or None."""
        target = str(Path(mount_point).resolve())
        try:
            partitions = psutil.disk_partitions(all=True)
        except Exception as e:
            logger.debug("Mount table unavailable: %s", e)
            return None
        # Later entries shadow earlier ones at the same point
        fstypes = [p.fstype for p in partitions if p.mountpoint == target]
        return fstypes[-1] if fstypes else None

    def provision(self) -> List[TmpfsMount]:
        self.mounts = [self._provision_one(mount_point) for mount_point in self.mount_points]
        return self.mounts

    def _provision_one(self, mount_point: str) -> TmpfsMount:
        try:
            Path(mount_point).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Cannot create tmpfs mount point %s: %s", mount_point, e)
            return TmpfsMount(mount_point, MountStatus.FALLBACK, error=str(e))

        fstype = self.mounted_fstype(mount_point)
        if fstype == "tmpfs":
            logger.debug("tmpfs already mounted at %s", mount_point)
            return TmpfsMount(mount_point, MountStatus.ALREADY_MOUNTED, size_mb=self.size_mb)
        if fstype is not None:
            logger.info("%s already holds a %s mount, using it as a plain directory", mount_point, fstype)
            return TmpfsMount(mount_point, MountStatus.FALLBACK, error=f"{fstype} mounted at {mount_point}")

        try:
            self._run(
                [
                    "mount", "-t", "tmpfs",
                    "-o", f"size={self.size_mb}M,noatime,mode=1777",
                    "tmpfs", mount_point,
                ],
                capture_output=True,
                text=True,
                timeout=10,
                check=True,
            )
        except (subprocess.SubprocessError, OSError) as e:
            logger.info("tmpfs mount failed at %s, using plain directory: %s", mount_point, e)
            return TmpfsMount(mount_point, MountStatus.FALLBACK, error=str(e))

        logger.info("Mounted %dM tmpfs at %s", self.size_mb, mount_point)
        return TmpfsMount(mount_point, MountStatus.MOUNTED, size_mb=self.size_mb)

    @property
    def provisioned(self) -> bool:
        return bool(self.mounts)

    def primary(self) -> Optional[TmpfsMount]:
        return self.mounts[0] if self.mounts else None

    def any_ram_backed(self) -> bool:
        return any(m.ram_backed for m in self.mounts)
