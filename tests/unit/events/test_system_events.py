"""Tests for audit-record translation and the bounded event history."""

import pytest

from pi_governor.events import (
    CpuPressure,
    MemoryPressure,
    MetricsSampled,
    RequestFailed,
    ServiceReductionRequested,
    ThermalEmergency,
    ThermalThrottling,
    WriteOptimized,
)
from pi_governor.orchestration import (
    EventHistory,
    EventIdGenerator,
    Severity,
    SystemEvent,
    SystemEventType,
    translate,
)
from pi_governor.resources import PressureLevel
from pi_governor.thermal import ACTION_PAUSE_SERVICES, ACTION_REDUCE_25

from tests.utils import FakeClock, make_metrics


@pytest.fixture
def ids():
    return EventIdGenerator(FakeClock(1700000000.5))


def record(i):
    return SystemEvent(
        id=str(i), type=SystemEventType.SYSTEM, subtype="test", severity=Severity.INFO,
        source="test", message=f"event {i}",
    )


class TestEventIdGenerator:

    def test_ids_are_unique_and_ordered(self, ids):
        assert [ids.next_id() for _ in range(3)] == [
            "1700000000500-1",
            "1700000000500-2",
            "1700000000500-3",
        ]


class TestTranslate:

    @pytest.mark.parametrize(
        "level, severity",
        [(PressureLevel.GC, Severity.WARNING), (PressureLevel.CRITICAL, Severity.CRITICAL), (PressureLevel.NORMAL, Severity.INFO)],
    )
    def test_memory_pressure_severity(self, ids, level, severity):
        event = translate("collector", MemoryPressure(level=level, usage=0.91), ids)

        assert event.type == SystemEventType.RESOURCE
        assert event.subtype == "memory_pressure"
        assert event.severity == severity
        assert event.data == {"level": level.value, "usage": 0.91}
        assert event.message == f"Memory pressure {level.value} at 91%"

    def test_throttling_severity_depends_on_action(self, ids):
        reduce = translate("thermal", ThermalThrottling(temperature=72.0, threshold=70.0, action=ACTION_REDUCE_25), ids)
        pause = translate("thermal", ThermalThrottling(temperature=82.0, threshold=80.0, action=ACTION_PAUSE_SERVICES), ids)

        assert reduce.severity == Severity.WARNING
        assert pause.severity == Severity.CRITICAL
        assert pause.type == SystemEventType.THERMAL

    def test_emergency(self, ids):
        event = translate("thermal", ThermalEmergency(temperature=90.0, emergency_level=85.0), ids)
        assert event.severity == Severity.EMERGENCY
        assert event.message == "Thermal emergency at 90.0°C"

    def test_aggressive_reduction_is_critical(self, ids):
        event = translate("collector", ServiceReductionRequested(reason="memory_limit_exceeded", level="aggressive"), ids)
        assert event.severity == Severity.CRITICAL

    def test_queue_failure(self, ids):
        event = translate("queue", RequestFailed(request_id="r1", error="boom", execution_ms=5.0), ids)
        assert event.type == SystemEventType.INTEGRATION
        assert event.severity == Severity.WARNING
        assert event.message == "Request r1 failed: boom"

    def test_keeps_source_and_timestamp(self, ids):
        raw = CpuPressure(usage=92.5, timestamp=1234.0)
        event = translate("collector", raw, ids)
        assert event.source == "collector"
        assert event.timestamp == 1234.0
        assert event.to_dict()["severity"] == "warning"

    @pytest.mark.parametrize(
        "raw",
        [MetricsSampled(metrics=make_metrics()), WriteOptimized(write_count=1, next_write_path="/data1")],
    )
    def test_high_frequency_events_not_recorded(self, ids, raw):
        assert translate("collector", raw, ids) is None


class TestEventHistory:

    def test_ring_drops_oldest(self):
        history = EventHistory(capacity=3)
        for i in range(5):
            history.append(record(i))

        assert len(history) == 3
        assert history.total_recorded == 5
        assert [e.id for e in history.recent()] == ["2", "3", "4"]

    def test_recent_limit(self):
        history = EventHistory()
        for i in range(10):
            history.append(record(i))
        assert [e.id for e in history.recent(2)] == ["8", "9"]
        assert history.recent(0) == []

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            EventHistory(capacity=0)
