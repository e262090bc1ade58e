"""
Shared pytest fixtures and configuration.

Test layout:
- a_unit/: harness logic against the in-memory store (fast, no database)
- b_integration/: PostgreSQL, skipped unless COUNTER_TEST_DSN is set
"""

from pathlib import Path

import pytest

from counter_race import console
from fakes import MemoryStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no database)")
    config.addinivalue_line("markers", "integration: Integration tests (with PostgreSQL)")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on directory."""
    for item in items:
        parts = Path(item.fspath).parts
        if "a_unit" in parts:
            item.add_marker(pytest.mark.unit)
        elif "b_integration" in parts:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def quiet_console():
    console.set_quiet(True)
    yield
    console.set_quiet(False)


@pytest.fixture
def store():
    return MemoryStore()
