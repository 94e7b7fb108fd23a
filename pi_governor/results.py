"""Result type returned by administrative commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class OperationResult:
    """Outcome of a command that reports expected failures instead of raising.

    Not-found, already-terminal and feature-disabled cases come back as
    ``success=False`` with a human-readable message.
    """

    success: bool
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.success

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message, **self.details}
