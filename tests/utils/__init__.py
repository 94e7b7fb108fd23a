"""Test utilities and shared components."""

from .fixtures import *
from .factories import *
from .fakes import *
from .assertions import *

__all__ = [
    # Fixtures
    "governor_config",
    "hardware",
    "fake_source",
    "collector",
    "disk_usage",
    "storage_manager",
    "fake_thermal",
    "quiet_logger",
    "orchestrator",

    # Factories
    "ConfigFactory",
    "make_metrics",
    "storage_section",

    # Fakes
    "FakeMetricsSource",
    "FakeDiskUsage",
    "FakeThermalController",
    "FakeClock",
    "RecordingRunner",
    "failing_runner",

    # Assertions
    "EventRecorder",
    "assert_event_names",
    "assert_no_events",
]
