"""
Pytest fixtures for the kapan tracker test suite.

Provides:
- Structured log capture
- Deterministic clock and id factory
- In-memory collection store and the default plant settings
- A fully wired ``KapanPlant`` over the in-memory store
"""

import json
import logging
from io import StringIO

import pytest

from kapan_config import get_active_settings
from kapan_kernel.domain.clock import DeterministicClock
from kapan_kernel.domain.records import Stage
from kapan_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from kapan_kernel.store import MemoryCollectionStore
from kapan_services import KapanPlant


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture kapan_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, plant):
            plant.stages.create_laser_lot(...)
            logs = captured_logs()
            assert any(r["message"] == "lot_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("kapan_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def id_factory():
    """Sequential ids: rec-1, rec-2, ..."""
    counter = {"n": 0}

    def _next() -> str:
        counter["n"] += 1
        return f"rec-{counter['n']}"

    return _next


@pytest.fixture(scope="session")
def settings():
    return get_active_settings()


@pytest.fixture
def store():
    return MemoryCollectionStore()


@pytest.fixture
def plant(store, settings, clock, id_factory):
    return KapanPlant(store, settings, clock, id_factory)


@pytest.fixture
def returned_laser_lot(plant):
    """Factory: create and return a laser lot so sarin entry is allowed."""

    def _make(kapan_id: str = "77", lot_number: str = "10", packets: int = 5):
        lot = plant.stages.create_laser_lot(kapan_id, lot_number, packets, machine="L1").unwrap()
        return plant.stages.return_lot(Stage.LASER, lot.record_id, "Ramesh").unwrap()

    return _make


@pytest.fixture
def returned_sarin_lot(plant, returned_laser_lot):
    """Factory: laser then sarin lot, both returned, ready for finishing."""

    def _make(kapan_id: str = "77", lot_number: str = "10", packets: int = 5, jiram: int = 0):
        returned_laser_lot(kapan_id, lot_number, packets)
        lot = plant.stages.create_sarin_lot(
            kapan_id, lot_number, "Suresh", "S1", 2, packets, jiram_count=jiram
        ).unwrap()
        return plant.stages.return_lot(Stage.SARIN, lot.record_id, "Suresh").unwrap()

    return _make
