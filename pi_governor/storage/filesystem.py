"""Filesystem helpers shared by the storage modules."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple

logger = logging.getLogger(__name__)


def iter_files(root: Path) -> Iterator[Tuple[Path, os.stat_result]]:
    """Yield ``(path, stat)`` for every regular file under ``root``.

    Unreadable entries are skipped; a vanished root yields nothing.
    """
    if not root.is_dir():
        return
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            try:
                st = path.stat()
            except OSError:
                continue
            if path.is_file():
                yield path, st


def directory_size(root: Path) -> int:
    return sum(st.st_size for _path, st in iter_files(root))


def total_size(roots: Iterable[Path]) -> int:
    return sum(directory_size(root) for root in roots)


def files_older_than(roots: Iterable[Path], cutoff: float) -> List[Tuple[Path, os.stat_result]]:
    """Files with mtime before ``cutoff``, oldest first."""
    candidates = [
        (path, st)
        for root in roots
        for path, st in iter_files(root)
        if st.st_mtime < cutoff
    ]
    candidates.sort(key=lambda item: item[1].st_mtime)
    return candidates


def is_writable_directory(path: Path, probe_name: str) -> bool:
    """True when a probe file can be created and removed inside ``path``."""
    probe = path / probe_name
    try:
        probe.write_bytes(b"probe")
        probe.unlink()
        return True
    except OSError as e:
        logger.debug("Not writable: %s (%s)", path, e)
        return False
