"""Shared test fixtures."""

import random

import pytest

from config import Settings
from config.context import SessionContext
from simulator.schemas import CleaningStatus, Sample, Switch, Zone
from storage.backend import MemoryBackend

NOW_MS = 1_700_000_000_000.0


class FakeClock:
    """Settable wall clock returning seconds."""

    def __init__(self, now_ms: float = NOW_MS):
        self.now = now_ms / 1000

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def settings():
    """Test settings on the in-memory backend."""
    return Settings(
        backend="memory",
        redis_url="redis://localhost:6379/1",
        order_probability=0.0,
        rare_event_probability=0.0,
    )


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def context(settings, backend):
    return SessionContext.create(settings, backend, session_id="test")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def make_sample():
    """Factory for valid samples; keyword overrides replace the defaults."""

    def _make(**overrides) -> Sample:
        fields = dict(
            zone=Zone.ZONE01,
            floor=1,
            timestamp=NOW_MS,
            temperature=24.0,
            humidity=55.0,
            co2_level=450.0,
            light_level=500.0,
            occupancy_count=10,
            motion_detected=True,
            power_status=Switch.ON,
            air_purifier_status=Switch.ON,
            energy_consumed_kwh=10.0,
            battery_backup_level=80.0,
            cleaning_status=CleaningStatus.DONE,
        )
        fields.update(overrides)
        return Sample(**fields)

    return _make
