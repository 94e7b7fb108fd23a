"""
Structured exception hierarchy with execution context for pi-governor.

All exceptions include:
- correlation_id: Trace an error back to the component tick that raised it
- execution_context: Component, operation, path
- resolution_hints: Actionable suggestions for common issues
- severity: ERROR, WARNING, RECOVERABLE

Degraded sensor reads never raise. These types cover operation failures
that have no local fallback and capacity rejections.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class ErrorSeverity(str, Enum):
    """Error severity levels for triage and alerting"""
    CRITICAL = "critical"      # Governor cannot continue in its current mode
    ERROR = "error"            # Requested operation failed
    RECOVERABLE = "recoverable"  # Transient failure, retry possible
    WARNING = "warning"        # Request refused, nothing broken


class ErrorCategory(str, Enum):
    """Error categories for diagnostics and resolution routing"""
    CONFIGURATION = "configuration"    # Invalid config, missing parameters
    RESOURCE = "resource"              # Memory, CPU, disk exhaustion
    STORAGE = "storage"                # Mounts, directories, rotation, cache
    CAPACITY = "capacity"              # Queue full, feature disabled
    THERMAL = "thermal"                # Thermal collaborator failures
    STATE = "state"                    # Lifecycle misuse, snapshot corruption


@dataclass
class ExecutionContext:
    """Execution context attached to every governor error"""

    component: Optional[str] = None
    operation: Optional[str] = None
    path: Optional[str] = None

    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    memory_mb: Optional[float] = None
    temperature_c: Optional[float] = None

    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            k: v for k, v in self.__dict__.items()
            if v is not None and not k.startswith('_')
        }

    def format_summary(self) -> str:
        """Human-readable one-line summary"""
        parts = []
        if self.component:
            parts.append(f"component={self.component}")
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.path:
            parts.append(f"path={self.path}")
        if self.correlation_id:
            parts.append(f"correlation_id={self.correlation_id}")
        return " | ".join(parts)


@dataclass
class ResolutionHint:
    """Actionable resolution guidance for common error patterns"""

    title: str
    description: str
    steps: List[str]
    documentation_url: Optional[str] = None
    automation_available: bool = False
    estimated_resolution_time: Optional[str] = None


class GovernorError(Exception):
    """
    Base exception for pi-governor with structured context.

    All governor exceptions inherit from this class so callers can catch one
    type and still get category, severity and hints for the log line.
    """

    def __init__(
        self,
        message: str,
        *,
        context: Optional[ExecutionContext] = None,
        category: ErrorCategory = ErrorCategory.RESOURCE,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        resolution_hints: Optional[List[ResolutionHint]] = None,
        original_exception: Optional[Exception] = None,
        **kwargs
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ExecutionContext()
        self.category = category
        self.severity = severity
        self.resolution_hints = resolution_hints or []
        self.original_exception = original_exception
        self.additional_data = kwargs

    def format_diagnostic_message(self) -> str:
        """
        Format comprehensive diagnostic message for logs and user display.

        Returns multi-line formatted error with:
        - Error message and severity
        - Execution context
        - Resolution hints
        - Original exception (if available)
        """
        lines = [
            f"{'='*80}",
            f"ERROR: {self.message}",
            f"Severity: {self.severity.value.upper()} | Category: {self.category.value}",
            f"{'='*80}",
            "",
            "EXECUTION CONTEXT:",
        ]

        context_dict = self.context.to_dict()
        for key, value in context_dict.items():
            if key == 'metadata' and isinstance(value, dict):
                for meta_key, meta_value in value.items():
                    lines.append(f"  {meta_key}: {meta_value}")
            else:
                lines.append(f"  {key}: {value}")

        if self.resolution_hints:
            lines.append("")
            lines.append("RESOLUTION HINTS:")
            for i, hint in enumerate(self.resolution_hints, 1):
                lines.append(f"\n{i}. {hint.title}")
                lines.append(f"   {hint.description}")
                if hint.steps:
                    lines.append("   Steps:")
                    for step in hint.steps:
                        lines.append(f"     - {step}")
                if hint.documentation_url:
                    lines.append(f"   Docs: {hint.documentation_url}")
                if hint.estimated_resolution_time:
                    lines.append(f"   Est. Time: {hint.estimated_resolution_time}")

        if self.original_exception:
            lines.append("")
            lines.append("ORIGINAL EXCEPTION:")
            lines.append(f"  {type(self.original_exception).__name__}: {str(self.original_exception)}")

        lines.append("")
        lines.append(f"{'='*80}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for structured logging"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "context": self.context.to_dict(),
            "resolution_hints": [
                {
                    "title": hint.title,
                    "description": hint.description,
                    "steps": hint.steps,
                    "documentation_url": hint.documentation_url,
                    "estimated_time": hint.estimated_resolution_time
                }
                for hint in self.resolution_hints
            ],
            "original_exception": str(self.original_exception) if self.original_exception else None,
            **self.additional_data
        }


# Configuration Errors
class ConfigurationError(GovernorError):
    """Configuration-related errors"""
    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.CONFIGURATION, **kwargs)


class InvalidConfigurationError(ConfigurationError):
    """Invalid configuration parameter or structure"""
    def __init__(
        self,
        message: str,
        config_path: Optional[str] = None,
        invalid_value: Optional[Any] = None,
        **kwargs
    ):
        if config_path:
            message = f"{message} (config_path: {config_path})"
        if invalid_value is not None:
            message = f"{message} (value: {invalid_value})"
        super().__init__(message, severity=ErrorSeverity.ERROR, **kwargs)


# Storage Errors
class StorageOperationError(GovernorError):
    """A requested storage action failed with no local fallback"""
    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        if path:
            context = kwargs.get("context") or ExecutionContext(component="storage")
            context.path = str(path)
            kwargs["context"] = context
        super().__init__(message, category=ErrorCategory.STORAGE, **kwargs)


class DirectoryCreationError(StorageOperationError):
    """Write-distribution directory could not be created"""
    def __init__(self, path: str, **kwargs):
        if "resolution_hints" not in kwargs:
            kwargs["resolution_hints"] = [
                ResolutionHint(
                    title="Check Write Path Permissions",
                    description="Wear-leveling paths must be creatable by the service user",
                    steps=[
                        f"Verify the parent of {path} exists and is writable",
                        "Check the mount is not read-only: mount | grep ' ro,'",
                        "Or disable wear leveling: storage.wear_leveling_enabled: false",
                    ],
                    estimated_resolution_time="5 minutes",
                )
            ]
        super().__init__(
            f"Failed to create write directory: {path}",
            path=path,
            severity=ErrorSeverity.ERROR,
            **kwargs,
        )


# Capacity Errors
class CapacityRejectionError(GovernorError):
    """Request refused by policy (full, disabled); nothing failed"""
    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.WARNING)
        super().__init__(message, category=ErrorCategory.CAPACITY, **kwargs)


class QueueDisabledError(CapacityRejectionError):
    """Submission to an admission queue whose management is disabled"""
    def __init__(self, message: str = "Admission queue management is disabled", **kwargs):
        if "resolution_hints" not in kwargs:
            kwargs["resolution_hints"] = [
                ResolutionHint(
                    title="Enable Queue Management",
                    description="The queue refuses work while disabled",
                    steps=["Set queue.enabled: true (or PIGOV_QUEUE__ENABLED=true)"],
                    estimated_resolution_time="1 minute",
                )
            ]
        super().__init__(message, **kwargs)


class FeatureDisabledError(CapacityRejectionError):
    """An optional feature was invoked while switched off in configuration"""
    def __init__(self, feature: str, **kwargs):
        super().__init__(f"Feature disabled: {feature}", feature=feature, **kwargs)


# State Errors
class OrchestratorStateError(GovernorError):
    """Operation invalid in the orchestrator's current lifecycle state"""
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message, category=ErrorCategory.STATE, severity=ErrorSeverity.WARNING, **kwargs
        )
