"""Tests for the pigov command line."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from pi_governor.resources import MetricsCollector, build_hardware_profile
from pi_governor_cli import __version__
from pi_governor_cli.main import app

from tests.utils import FakeMetricsSource, storage_section

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "governor.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "hardware": {"total_memory_mb": 1024},
                "storage": storage_section(tmp_path, max_log_size_bytes=2048),
                "logging": {"console": False, "directory": str(tmp_path / "governor-logs")},
            }
        )
    )
    return path


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestValidate:

    def test_valid_config(self, config_file):
        result = runner.invoke(app, ["validate", "--config", str(config_file), "--verbose"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "storage" in result.output

    def test_invalid_config_exits_1(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"thresholds": {"memory_gc": 0.95, "memory_critical": 0.9}}))

        result = runner.invoke(app, ["validate", "--config", str(path)])

        assert result.exit_code == 1
        assert "Invalid governor configuration" in result.output

    def test_missing_config_exits_1(self, tmp_path):
        result = runner.invoke(app, ["validate", "--config", str(tmp_path / "absent.yaml")])
        assert result.exit_code == 1


class TestStatus:

    @pytest.fixture
    def fake_collector(self):
        source = FakeMetricsSource()
        source.set_memory_ratio(0.85)

        def build(cfg):
            hardware = build_hardware_profile(cfg.hardware.resolved_total_memory_mb())
            return MetricsCollector(hardware, cfg.collector, cfg.thresholds, source=source)

        with patch("pi_governor_cli.commands.status.build_collector", side_effect=build):
            yield source

    def test_json_snapshot(self, config_file, fake_collector):
        result = runner.invoke(app, ["status", "--config", str(config_file), "--json"])

        assert result.exit_code == 0
        snapshot = json.loads(result.stdout)
        assert snapshot["memory_pressure_level"] == "gc"
        assert snapshot["hardware"] == {
            "total_memory_mb": 1024,
            "memory_limit_mb": 512,
            "within_limit": False,
        }
        assert snapshot["metrics"]["network"]["interface"] == "ethernet"
        assert snapshot["thresholds"]["memory_gc"] == 0.8

    def test_table(self, config_file, fake_collector):
        result = runner.invoke(app, ["status", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Memory pressure" in result.output
        assert "Performance profile" in result.output


class TestStorageCommands:

    def test_rotate_logs_nothing_to_do(self, config_file):
        result = runner.invoke(app, ["rotate-logs", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "nothing to rotate" in result.output

    def test_rotate_logs_removes_oldest(self, config_file, tmp_path):
        logs = tmp_path / "logs"
        logs.mkdir()
        for i, name in enumerate(["old.log", "mid.log", "new.log"]):
            path = logs / name
            path.write_bytes(b"x" * 1024)
            os.utime(path, (1_000 + i, 1_000 + i))

        result = runner.invoke(app, ["rotate-logs", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Logs reduced" in result.output
        assert not (logs / "old.log").exists()

    def test_forced_cleanup_json(self, config_file, tmp_path):
        stale = tmp_path / "cache" / "stale.bin"
        stale.parent.mkdir()
        stale.write_bytes(b"x" * 10)
        os.utime(stale, (0, 0))

        result = runner.invoke(app, ["cleanup", "--config", str(config_file), "--force", "--json"])

        assert result.exit_code == 0
        report = json.loads(result.stdout)
        assert report["skipped"] is False
        assert report["cleaned_files"] == 1
        assert report["cleaned_size"] == 10
        assert not stale.exists()

    def test_cache_stats(self, config_file):
        result = runner.invoke(app, ["cache-stats", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Total cache usage" in result.output
