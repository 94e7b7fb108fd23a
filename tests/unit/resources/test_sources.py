"""
Tests for MetricsSource.

Every OS read is patched; each failure must degrade to its default value
without raising.
"""

import subprocess
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from pi_governor.resources.sources import (
    PROBE_FAILURE_LATENCY_MS,
    PROBE_UNPARSED_LATENCY_MS,
    MetricsSource,
    classify_interface,
    guess_bandwidth_mbps,
)

from tests.utils import RecordingRunner

GIB = 1024 ** 3


def cpu_times(busy, idle, iowait=0.0):
    return SimpleNamespace(user=busy, nice=0.0, system=0.0, idle=idle, iowait=iowait, irq=0.0, softirq=0.0)


@pytest.fixture
def source(tmp_path):
    zone = tmp_path / "temp"
    zone.write_text("52300\n")
    return MetricsSource(
        total_memory_bytes=GIB,
        thermal_zone_path=str(zone),
        sleep=lambda _s: None,
        runner=RecordingRunner(
            {
                "ip": "8.8.8.8 via 192.168.1.1 dev wlan0 src 192.168.1.20 uid 1000",
                "ping": "64 bytes from 8.8.8.8: icmp_seq=1 ttl=117 time=23.4 ms",
            }
        ),
    )


class TestCpu:

    @patch("psutil.cpu_freq")
    @patch("psutil.cpu_times")
    def test_usage_from_counter_deltas(self, mock_times, mock_freq, source):
        mock_times.side_effect = [cpu_times(100.0, 300.0), cpu_times(130.0, 370.0)]
        mock_freq.return_value = SimpleNamespace(current=1500.0, min=600.0, max=1500.0)

        cpu = source.read_cpu()

        assert cpu.usage_percent == pytest.approx(30.0)
        assert cpu.temperature_c == pytest.approx(52.3)
        assert cpu.frequency_mhz == 1500.0
        assert not cpu.throttled

    @patch("psutil.cpu_freq")
    @patch("psutil.cpu_times")
    def test_iowait_counts_as_idle(self, mock_times, mock_freq, source):
        mock_times.side_effect = [cpu_times(0.0, 0.0, 0.0), cpu_times(50.0, 25.0, 25.0)]
        mock_freq.return_value = None
        assert source.read_cpu().usage_percent == pytest.approx(50.0)

    @patch("psutil.cpu_freq")
    @patch("psutil.cpu_times")
    def test_zero_delta_is_zero_usage(self, mock_times, mock_freq, source):
        mock_times.return_value = cpu_times(10.0, 10.0)
        mock_freq.return_value = None
        assert source.read_cpu().usage_percent == 0.0

    @patch("psutil.cpu_freq")
    @patch("psutil.cpu_times")
    def test_throttled_below_ninety_percent_of_max(self, mock_times, mock_freq, source):
        mock_times.return_value = cpu_times(10.0, 10.0)
        mock_freq.return_value = SimpleNamespace(current=1200.0, min=600.0, max=1500.0)
        assert source.read_cpu().throttled

    @patch("psutil.cpu_freq", side_effect=RuntimeError("no cpufreq"))
    @patch("psutil.cpu_times", side_effect=RuntimeError("no /proc"))
    def test_defaults_when_unreadable(self, _times, _freq):
        source = MetricsSource(total_memory_bytes=GIB, thermal_zone_path="/nonexistent/temp")
        cpu = source.read_cpu(0.0)
        assert cpu.usage_percent == 0.0
        assert cpu.temperature_c == 45.0
        assert cpu.frequency_mhz == 1500.0
        assert not cpu.throttled


class TestMemoryAndStorage:

    @patch("psutil.swap_memory")
    @patch("psutil.virtual_memory")
    def test_used_is_total_minus_available(self, mock_vm, mock_swap, source):
        mock_vm.return_value = SimpleNamespace(total=4 * GIB, available=GIB)
        mock_swap.return_value = SimpleNamespace(total=GIB, free=GIB // 4)

        memory = source.read_memory()

        assert memory.total == 4 * GIB
        assert memory.used == 3 * GIB
        assert memory.swap_used == 3 * GIB // 4

    @patch("psutil.swap_memory", side_effect=RuntimeError)
    @patch("psutil.virtual_memory", side_effect=RuntimeError)
    def test_memory_defaults_to_configured_total(self, _vm, _swap, source):
        memory = source.read_memory()
        assert memory.total == GIB
        assert memory.used == 0

    @patch("psutil.disk_usage", side_effect=OSError("gone"))
    def test_storage_defaults(self, _usage, source):
        storage = source.read_storage()
        assert storage.total == 32 * GIB
        assert storage.used == 0

    @patch("psutil.disk_usage")
    def test_storage_used_never_exceeds_total(self, mock_usage, source):
        mock_usage.return_value = SimpleNamespace(total=100, used=150, free=0)
        storage = source.read_storage()
        assert storage.used == 100


class TestNetwork:

    @patch("psutil.net_io_counters")
    @patch("psutil.net_if_stats")
    def test_route_ping_and_counters(self, mock_stats, mock_counters, source):
        mock_stats.return_value = {"wlan0": SimpleNamespace(speed=0)}
        mock_counters.return_value = {"wlan0": SimpleNamespace(dropin=3, errin=2)}

        network = source.read_network()

        assert network.interface == "wifi"
        assert network.bandwidth_mbps == 150.0
        assert network.latency_ms == pytest.approx(23.4)
        assert network.packets_lost == 5

    @patch("psutil.net_io_counters", return_value={})
    @patch("psutil.net_if_stats", return_value={"eth0": SimpleNamespace(speed=100)})
    def test_ethernet_speed_from_stats(self, _stats, _counters):
        runner = RecordingRunner({"ip": "1.1.1.1 via 10.0.0.1 dev eth0 src 10.0.0.2", "ping": "no reply"})
        source = MetricsSource(total_memory_bytes=GIB, runner=runner)

        network = source.read_network()

        assert network.interface == "ethernet"
        assert network.bandwidth_mbps == 100.0
        assert network.latency_ms == PROBE_UNPARSED_LATENCY_MS

    @patch("psutil.net_io_counters", return_value={})
    @patch("psutil.net_if_stats", return_value={})
    def test_failed_probe_reports_slow_link(self, _stats, _counters):
        def runner(cmd, **kwargs):
            if cmd[0] == "ping":
                raise subprocess.TimeoutExpired(cmd, 2)
            return subprocess.CompletedProcess(cmd, 0, stdout="dev eth0", stderr="")

        network = MetricsSource(total_memory_bytes=GIB, runner=runner).read_network()
        assert network.latency_ms == PROBE_FAILURE_LATENCY_MS

    def test_route_failure_falls_back_to_defaults(self):
        network = MetricsSource(total_memory_bytes=GIB, runner=RecordingRunner(fail=True)).read_network()
        assert network.interface == "wifi"
        assert network.bandwidth_mbps == 100.0
        assert network.latency_ms == 10.0

    @pytest.mark.parametrize(
        "name, kind, speed",
        [("wlan0", "wifi", 150.0), ("wlp2s0", "wifi", 100.0), ("eth0", "ethernet", 1000.0), ("enp3s0", "ethernet", 100.0)],
    )
    def test_interface_helpers(self, name, kind, speed):
        assert classify_interface(name) == kind
        assert guess_bandwidth_mbps(name) == speed
