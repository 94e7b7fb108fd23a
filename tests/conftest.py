"""
Pytest Configuration for pi-governor Testing
============================================

Root conftest.py - delegates to tests/utils/ for reusable components.
"""

import gc
import warnings

import pytest

# Import shared utilities
from tests.utils import *


def pytest_configure(config):
    """Configure pytest with custom markers."""
    # Markers are defined in pyproject.toml
    pass


def pytest_collection_modifyitems(config, items):
    """Automatically add markers based on test location."""
    for item in items:
        if "/unit/" in item.nodeid:
            item.add_marker(pytest.mark.unit)
            item.add_marker(pytest.mark.fast)  # Unit tests are fast by default

        # Add feature area markers
        if "/resources/" in item.nodeid:
            item.add_marker(pytest.mark.resources)
        if "/storage/" in item.nodeid:
            item.add_marker(pytest.mark.storage)
        if "/scheduling/" in item.nodeid:
            item.add_marker(pytest.mark.scheduling)
        if "/events/" in item.nodeid:
            item.add_marker(pytest.mark.events)
        if "/orchestrator/" in item.nodeid:
            item.add_marker(pytest.mark.orchestrator)
        if "/cli/" in item.nodeid:
            item.add_marker(pytest.mark.cli)
        if "config" in item.nodeid.lower():
            item.add_marker(pytest.mark.config)


def pytest_runtest_setup(item):
    """Setup for each test run."""
    warnings.filterwarnings("ignore", category=DeprecationWarning)


def pytest_runtest_teardown(item):
    """Teardown after each test run."""
    gc.collect()
