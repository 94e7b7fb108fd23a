"""Shared test fixtures."""

from typing import Generator

import pytest

from pi_governor.config import GovernorConfig
from pi_governor.logger import ProductionLogger
from pi_governor.orchestration import Orchestrator
from pi_governor.resources import HardwareProfile, MetricsCollector, build_hardware_profile
from pi_governor.storage import StorageManager

from .factories import ConfigFactory
from .fakes import FakeDiskUsage, FakeMetricsSource, FakeThermalController, failing_runner


@pytest.fixture
def governor_config(tmp_path) -> GovernorConfig:
    """Default configuration with every path under tmp_path."""
    return ConfigFactory.create(tmp_path)


@pytest.fixture
def hardware() -> HardwareProfile:
    return build_hardware_profile(1024)


@pytest.fixture
def fake_source() -> FakeMetricsSource:
    return FakeMetricsSource()


@pytest.fixture
def collector(hardware, fake_source, governor_config) -> Generator[MetricsCollector, None, None]:
    collector = MetricsCollector(
        hardware, governor_config.collector, governor_config.thresholds, source=fake_source
    )
    yield collector
    collector.stop_monitoring()


@pytest.fixture
def disk_usage() -> FakeDiskUsage:
    return FakeDiskUsage(ratio=0.5)


@pytest.fixture
def storage_manager(governor_config, disk_usage) -> Generator[StorageManager, None, None]:
    manager = StorageManager(
        governor_config.storage,
        total_memory_mb=1024,
        disk_usage=disk_usage,
        runner=failing_runner,
    )
    yield manager
    manager.stop_monitoring()


@pytest.fixture
def fake_thermal() -> FakeThermalController:
    return FakeThermalController()


@pytest.fixture
def quiet_logger() -> Generator[ProductionLogger, None, None]:
    logger = ProductionLogger(console=False)
    yield logger
    logger.close()


@pytest.fixture
def orchestrator(
    governor_config, hardware, collector, storage_manager, fake_thermal, quiet_logger
) -> Generator[Orchestrator, None, None]:
    """Orchestrator over fakes; not started."""
    orchestrator = Orchestrator(
        governor_config,
        fake_thermal,
        hardware=hardware,
        collector=collector,
        storage=storage_manager,
        logger=quiet_logger,
    )
    yield orchestrator
    orchestrator.stop()
