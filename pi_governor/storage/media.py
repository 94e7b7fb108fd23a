"""Streaming large media files through the storage tiers."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from ..events import GovernorEvent, MediaProcessingProgress
from ..exceptions import FeatureDisabledError, StorageOperationError
from .filesystem import iter_files
from .tiered_cache import TieredCache

logger = logging.getLogger(__name__)

MIB = 1024 * 1024
LARGE_FILE_BYTES = 50 * MIB
STREAM_CHUNK_BYTES = 64 * 1024
PROCESS_CHUNK_BYTES = 1 * MIB
PROGRESS_EVERY_CHUNKS = 10

MEDIA_DIRNAME = "pi-governor-media"
TEMP_PREFIXES = ("processed_", "chunked_", "temp_media_")

PathLike = Union[str, Path]


class MediaHandler:
    """Copies and chunk-processes media without loading whole files in RAM."""

    def __init__(
        self,
        cache: TieredCache,
        temp_dirs: Sequence[str],
        enabled: bool = True,
        publish: Optional[Callable[[GovernorEvent], object]] = None,
    ):
        self.cache = cache
        self.temp_dirs = [Path(d) for d in temp_dirs]
        self.enabled = enabled
        self._publish = publish

    def _require_enabled(self) -> None:
        if not self.enabled:
            raise FeatureDisabledError("large_file_handling")

    def process_large_file(self, source: PathLike, destination: Optional[PathLike] = None) -> Path:
        """Copy ``source`` into the cache tier chosen by its size.

        Files over 50MiB are streamed in 64KiB chunks.
        """
        self._require_enabled()
        src = Path(source)
        try:
            size = src.stat().st_size
            dest = Path(destination) if destination else (
                self.cache.get_optimal_cache_path(size) / f"processed_{src.name}"
            )
            dest.parent.mkdir(parents=True, exist_ok=True)
            if size > LARGE_FILE_BYTES:
                with open(src, "rb") as fsrc, open(dest, "wb") as fdst:
                    shutil.copyfileobj(fsrc, fdst, STREAM_CHUNK_BYTES)
            else:
                shutil.copy2(src, dest)
        except OSError as e:
            raise StorageOperationError(
                f"Failed to process media file: {e}", path=str(src), original_exception=e
            ) from e
        logger.debug("Processed %s (%d bytes) into %s", src, size, dest)
        return dest

    def copy_large_media_to_external(self, source: PathLike) -> Optional[Path]:
        """Stream ``source`` onto the first detected external drive, if any."""
        self._require_enabled()
        if not self.cache.external_paths:
            logger.info("No external storage for %s, leaving it in place", source)
            return None
        src = Path(source)
        dest = self.cache.external_paths[0] / MEDIA_DIRNAME / src.name
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with open(src, "rb") as fsrc, open(dest, "wb") as fdst:
                shutil.copyfileobj(fsrc, fdst, STREAM_CHUNK_BYTES)
        except OSError as e:
            raise StorageOperationError(
                f"External media copy failed: {e}", path=str(dest), original_exception=e
            ) from e
        return dest

    def process_media_in_chunks(
        self,
        source: PathLike,
        processor: Callable[[bytes], None],
        chunk_size: int = PROCESS_CHUNK_BYTES,
    ) -> int:
        """Feed ``source`` to ``processor`` chunk by chunk; returns the chunk count."""
        self._require_enabled()
        src = Path(source)
        try:
            total = src.stat().st_size
            chunks = 0
            processed = 0
            with open(src, "rb") as fh:
                while True:
                    chunk = fh.read(chunk_size)
                    if not chunk:
                        break
                    processor(chunk)
                    chunks += 1
                    processed += len(chunk)
                    if chunks % PROGRESS_EVERY_CHUNKS == 0 and self._publish is not None:
                        self._publish(
                            MediaProcessingProgress(
                                path=str(src),
                                chunks_processed=chunks,
                                bytes_processed=processed,
                                total_bytes=total,
                            )
                        )
        except OSError as e:
            raise StorageOperationError(
                f"Chunked media read failed: {e}", path=str(src), original_exception=e
            ) from e
        return chunks

    def cleanup_large_media_temp_files(self) -> int:
        """Remove intermediate media files left in the temp directories."""
        removed = 0
        for root in self.temp_dirs:
            for path, _st in list(iter_files(root)):
                if not path.name.startswith(TEMP_PREFIXES):
                    continue
                try:
                    path.unlink()
                    removed += 1
                except OSError as e:
                    logger.warning("Failed to remove media temp file %s: %s", path, e)
        return removed
