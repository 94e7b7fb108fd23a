"""
Tests for the MetricsCollector class.

Covers the memory pressure state machine, per-sample CPU/storage/network
checks, the hardware limit, threshold updates and periodic monitoring.
"""

import threading

import pytest

from pi_governor.events import MetricsSampled, MonitoringStarted
from pi_governor.exceptions import InvalidConfigurationError
from pi_governor.resources import (
    MetricsCollector,
    PerformanceProfile,
    PressureLevel,
    build_hardware_profile,
    hardware_memory_limit_mb,
)

from tests.utils import EventRecorder, FakeMetricsSource, assert_event_names, make_metrics


def memory_levels(recorder):
    return [e.level for e in recorder.of("memory_pressure")]


class TestHardwareMemoryTier:

    @pytest.mark.parametrize(
        "total_mb, expected",
        [(256, 256), (512, 512), (1024, 512), (1536, 1024), (2048, 1024), (4096, 2048), (8192, 2048)],
    )
    def test_limit_by_tier(self, total_mb, expected):
        assert hardware_memory_limit_mb(total_mb) == expected

    def test_profile_bytes(self):
        profile = build_hardware_profile(2048)
        assert profile.memory_limit_bytes == 1024 * 1024 * 1024
        assert profile.total_memory_bytes == 2 * 1024 ** 3


class TestMemoryPressureStateMachine:

    def test_hysteresis_sequence(self, collector, fake_source):
        """0.79 → 0.80 → 0.90 → 0.95 → 0.60 emits gc, critical, normal exactly once each."""
        recorder = EventRecorder(collector.events)
        emitted = []
        for ratio in (0.79, 0.80, 0.90, 0.95, 0.60):
            fake_source.set_memory_ratio(ratio)
            recorder.clear()
            collector.sample()
            emitted.append(memory_levels(recorder))

        assert emitted == [
            [],
            [PressureLevel.GC],
            [PressureLevel.CRITICAL],
            [],
            [PressureLevel.NORMAL],
        ]
        assert collector.get_memory_pressure_level() == PressureLevel.NORMAL
        assert not collector.is_memory_pressure_active()

    def test_jump_to_critical_emits_gc_then_critical(self, collector, fake_source):
        recorder = EventRecorder(collector.events)
        fake_source.set_memory_ratio(0.93)
        collector.sample()

        assert memory_levels(recorder) == [PressureLevel.GC, PressureLevel.CRITICAL]
        assert collector.is_memory_pressure_active()
        assert collector.get_memory_pressure_level() == PressureLevel.CRITICAL

    def test_level_latched_between_thresholds_while_active(self, collector, fake_source):
        fake_source.set_memory_ratio(0.92)
        collector.sample()
        recorder = EventRecorder(collector.events)

        fake_source.set_memory_ratio(0.85)
        collector.sample()

        assert memory_levels(recorder) == []
        assert collector.get_memory_pressure_level() == PressureLevel.CRITICAL

    def test_gc_only_does_not_emit_normal_on_drop(self, collector, fake_source):
        """normal is only emitted when the critical flag was set."""
        fake_source.set_memory_ratio(0.82)
        collector.sample()
        recorder = EventRecorder(collector.events)

        fake_source.set_memory_ratio(0.5)
        collector.sample()

        assert memory_levels(recorder) == []
        assert collector.get_memory_pressure_level() == PressureLevel.NORMAL

    def test_gc_reemitted_after_returning_to_normal(self, collector, fake_source):
        recorder = EventRecorder(collector.events)
        for ratio in (0.82, 0.5, 0.82):
            fake_source.set_memory_ratio(ratio)
            collector.sample()
        assert memory_levels(recorder) == [PressureLevel.GC, PressureLevel.GC]


class TestPerSampleChecks:

    def test_cpu_pressure_every_sample(self, collector, fake_source):
        recorder = EventRecorder(collector.events)
        fake_source.set_cpu(90.0)
        for _ in range(3):
            collector.sample()
        assert [e.usage for e in recorder.of("cpu_pressure")] == [90.0, 90.0, 90.0]

    def test_cpu_below_threshold_silent(self, collector, fake_source):
        recorder = EventRecorder(collector.events)
        fake_source.set_cpu(84.0)
        collector.sample()
        assert recorder.of("cpu_pressure") == []

    def test_memory_limit_exceeded_every_sample(self, collector, fake_source):
        # 1 GiB board: limit 512 MiB, 60% used is above it
        recorder = EventRecorder(collector.events)
        fake_source.set_memory_ratio(0.6)
        collector.sample()
        collector.sample()

        exceeded = recorder.of("memory_limit_exceeded")
        assert len(exceeded) == 2
        assert exceeded[0].limit == 512 * 1024 * 1024

    def test_storage_and_network_pressure(self, collector, fake_source):
        recorder = EventRecorder(collector.events)
        fake_source.set_storage_ratio(0.85)
        fake_source.set_latency(150.0)
        collector.sample()

        assert recorder.of("storage_pressure")[0].usage == pytest.approx(0.85, abs=1e-6)
        assert recorder.of("network_pressure")[0].latency == 150.0

    def test_metrics_event_precedes_threshold_events(self, collector, fake_source):
        recorder = EventRecorder(collector.events)
        fake_source.set_cpu(95.0)
        collector.sample()
        assert recorder.names()[0] == MetricsSampled.name
        assert "cpu_pressure" in recorder.names()

    def test_collect_has_no_side_effects(self, collector, fake_source):
        recorder = EventRecorder(collector.events)
        fake_source.set_memory_ratio(0.95)
        metrics = collector.collect()

        assert metrics.memory.usage_ratio == pytest.approx(0.95, abs=1e-6)
        assert recorder.events == []
        assert collector.get_last_metrics() is None
        assert collector.get_memory_pressure_level() == PressureLevel.NORMAL


class TestThresholds:

    def test_set_thresholds_publishes_update(self, collector):
        recorder = EventRecorder(collector.events)
        updated = collector.set_thresholds(cpu_critical=0.5)

        assert updated.cpu_critical == 0.5
        assert collector.get_thresholds().cpu_critical == 0.5
        assert recorder.of("thresholds_updated")[0].thresholds["cpu_critical"] == 0.5

    def test_gc_must_stay_below_critical(self, collector):
        with pytest.raises(InvalidConfigurationError):
            collector.set_thresholds(memory_gc=0.95)
        assert collector.get_thresholds().memory_gc == 0.8

    def test_lowered_cpu_threshold_applies_to_next_sample(self, collector, fake_source):
        fake_source.set_cpu(60.0)
        collector.set_thresholds(cpu_critical=0.5)
        recorder = EventRecorder(collector.events)
        collector.sample()
        assert len(recorder.of("cpu_pressure")) == 1


class TestQueries:

    def test_write_count_reported_in_storage_metrics(self, collector):
        collector.increment_write_count()
        collector.increment_write_count(2)
        assert collector.collect().storage.write_count == 3

    @pytest.mark.parametrize(
        "memory, cpu, temperature, expected",
        [
            (0.3, 10.0, 45.0, PerformanceProfile.HIGH),
            (0.6, 10.0, 45.0, PerformanceProfile.MEDIUM),
            (0.3, 75.0, 45.0, PerformanceProfile.LOW),
            (0.3, 10.0, 81.0, PerformanceProfile.CRITICAL),
        ],
    )
    def test_performance_profile(self, collector, memory, cpu, temperature, expected):
        metrics = make_metrics(memory_ratio=memory, cpu_percent=cpu, temperature_c=temperature)
        assert collector.get_performance_profile(metrics) == expected

    def test_memory_limit_usage(self, collector):
        usage = collector.get_memory_limit_usage(make_metrics(memory_ratio=0.25))
        assert usage.within_limit
        assert usage.limit_usage == pytest.approx(0.5)
        assert usage.available_before_limit == 256 * 1024 * 1024

    def test_history_bounded(self, hardware, governor_config):
        settings = governor_config.collector.model_copy(update={"history_size": 3})
        collector = MetricsCollector(hardware, settings, source=FakeMetricsSource())
        for _ in range(5):
            collector.sample()
        assert len(collector.history) == 3

    def test_force_garbage_collection(self, collector):
        recorder = EventRecorder(collector.events)
        event = collector.force_garbage_collection()
        assert event.memory_freed >= 0
        assert event.before_gc >= 0 and event.after_gc >= 0
        assert recorder.names() == ["garbage_collection_triggered"]


class TestMonitoring:

    @pytest.mark.slow
    def test_start_samples_immediately_and_stop(self, collector):
        sampled = threading.Event()
        collector.events.subscribe(MetricsSampled, lambda e: sampled.set())
        recorder = EventRecorder(collector.events)

        collector.start_monitoring(0.05)
        assert sampled.wait(2.0)
        assert collector.monitoring_active
        assert collector.monitoring_interval == 0.05

        collector.stop_monitoring()
        assert not collector.monitoring_active
        assert recorder.of(MonitoringStarted.name)[0].interval == 0.05
        assert "monitoring_stopped" in recorder.names()

    def test_restart_with_new_interval(self, collector):
        collector.start_monitoring(30.0)
        collector.start_monitoring(10.0)
        try:
            assert collector.monitoring_interval == 10.0
            assert collector.monitoring_active
        finally:
            collector.stop_monitoring()

    def test_stop_when_idle_is_noop(self, collector):
        recorder = EventRecorder(collector.events)
        collector.stop_monitoring()
        assert recorder.events == []
