"""Small JSON snapshot files written atomically."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .exceptions import ExecutionContext, StorageOperationError

logger = logging.getLogger(__name__)


def write_json_atomic(path: Union[str, Path], data: Dict[str, Any]) -> Path:
    """Write ``data`` to a temporary sibling and rename it over ``path``."""
    final_path = Path(path)
    temp_path = final_path.with_name(final_path.name + ".tmp")
    try:
        final_path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w") as f:
            json.dump(data, f, indent=2, default=str)
        temp_path.replace(final_path)
    except OSError as e:
        if temp_path.exists():
            temp_path.unlink()
        raise StorageOperationError(
            f"Failed to write snapshot: {e}",
            path=str(final_path),
            context=ExecutionContext(component="persistence", operation="write_json_atomic"),
            original_exception=e,
        ) from e
    logger.debug("Snapshot written: %s", final_path)
    return final_path


def read_json(path: Union[str, Path]) -> Optional[Dict[str, Any]]:
    """Read a snapshot; a missing or corrupt file reads as ``None``."""
    p = Path(path)
    if not p.exists():
        return None
    try:
        with open(p, "r") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable snapshot %s: %s", p, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring snapshot %s: root is not an object", p)
        return None
    return data
