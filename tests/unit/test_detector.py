"""Tests for change, spike and popularity detection."""

import datetime

import pytest

from processor.detector import (
    HOUR_MS,
    ChangeDetector,
    ConsumptionSpikeDetector,
    PopularityTracker,
    load_orders,
    order_event,
)
from processor.events import EventKind, Severity
from simulator.schemas import FoodOrder, Zone
from storage.backend import BackendError, MemoryBackend, Table


class FailingBackend(MemoryBackend):
    def select_recent(self, table, since=None, until=None, limit=100):
        raise BackendError("connection refused")


class TestChangeDetector:
    def test_first_sample_is_baseline(self, make_sample):
        detector = ChangeDetector()
        assert detector.check(make_sample(temperature=20.0)) == []
        assert detector.tracked_zones == [Zone.ZONE01]

    def test_sharp_temperature_rise(self, make_sample):
        detector = ChangeDetector()
        detector.check(make_sample(temperature=20.0))
        events = detector.check(make_sample(temperature=24.0))
        assert len(events) == 1
        event = events[0]
        assert event.kind == EventKind.THRESHOLD_CHANGE
        assert event.severity == Severity.WARNING
        assert event.metric == "temperature"
        assert event.identity == "threshold_change:Zone01:temperature"
        assert "rose" in event.message

    def test_change_at_threshold_not_reported(self, make_sample):
        detector = ChangeDetector()
        detector.check(make_sample(humidity=50.0))
        assert detector.check(make_sample(humidity=60.0)) == []

    def test_zones_have_separate_baselines(self, make_sample):
        detector = ChangeDetector()
        detector.check(make_sample(zone=Zone.ZONE01, co2_level=400.0))
        assert detector.check(make_sample(zone=Zone.ZONE02, co2_level=900.0)) == []
        events = detector.check(make_sample(zone=Zone.ZONE01, co2_level=900.0))
        assert [e.metric for e in events] == ["co2_level"]

    def test_baseline_replaced_after_check(self, make_sample):
        detector = ChangeDetector()
        detector.check(make_sample(temperature=20.0))
        detector.check(make_sample(temperature=30.0))
        assert detector.check(make_sample(temperature=30.5)) == []

    def test_prime_sets_baseline_silently(self, make_sample):
        detector = ChangeDetector()
        detector.prime(make_sample(temperature=20.0, fire_alarm_triggered=True))
        events = detector.check(make_sample(temperature=24.0))
        assert [e.metric for e in events] == ["temperature"]

    def test_zero_baseline_skipped(self, make_sample):
        detector = ChangeDetector()
        detector.check(make_sample(occupancy_count=0))
        assert detector.check(make_sample(occupancy_count=20)) == []

    def test_fire_and_gas_are_critical(self, make_sample):
        detector = ChangeDetector()
        s = make_sample(fire_alarm_triggered=True, gas_leak_detected=True)
        events = detector.check(s)
        assert {e.kind for e in events} == {EventKind.FIRE_ALARM, EventKind.GAS_LEAK}
        assert all(e.severity == Severity.CRITICAL for e in events)
        assert all(e.is_safety_critical for e in events)
        assert events[0].identity == f"fire_alarm:Zone01:{s.id}"
        assert "Kitchen01" in events[0].message


class TestConsumptionSpike:
    def _order(self, backend, timestamp, consumed):
        backend.insert(
            Table.FOOD_HISTORY,
            FoodOrder(dish_name="Soup", timestamp=timestamp, quantity_consumed=consumed).model_dump(),
        )

    def test_spike_detected(self):
        backend = MemoryBackend()
        now = 10 * HOUR_MS
        self._order(backend, now - 1.5 * HOUR_MS, 10)
        self._order(backend, now - 0.5 * HOUR_MS, 16)
        detector = ConsumptionSpikeDetector(backend, backend.log)
        event = detector.check(now)
        assert event is not None
        assert event.kind == EventKind.CONSUMPTION_SPIKE
        assert event.identity == "consumption_spike"
        assert "60%" in event.message

    def test_exactly_ratio_is_not_a_spike(self):
        backend = MemoryBackend()
        now = 10 * HOUR_MS
        self._order(backend, now - 1.5 * HOUR_MS, 10)
        self._order(backend, now - 0.5 * HOUR_MS, 15)
        assert ConsumptionSpikeDetector(backend, backend.log).check(now) is None

    def test_no_prior_consumption(self):
        backend = MemoryBackend()
        now = 10 * HOUR_MS
        self._order(backend, now - 0.5 * HOUR_MS, 50)
        assert ConsumptionSpikeDetector(backend, backend.log).check(now) is None

    def test_backend_failure_yields_no_event(self):
        backend = FailingBackend()
        assert ConsumptionSpikeDetector(backend, backend.log).check(HOUR_MS) is None


class TestPopularityTracker:
    def test_first_observation_only_records(self):
        tracker = PopularityTracker(MemoryBackend().log)
        assert tracker.update({"Pizza": 5, "Soup": 2}) is None
        assert tracker.top == "Pizza"

    def test_change_of_leader(self):
        tracker = PopularityTracker(MemoryBackend().log)
        tracker.update({"Pizza": 5, "Soup": 2})
        assert tracker.update({"Pizza": 5, "Soup": 3}) is None
        event = tracker.update({"Pizza": 5, "Soup": 8}, now=42.0)
        assert event is not None
        assert event.message == "Most popular dish changed from Pizza to Soup"
        assert event.identity == "popularity_change:Soup"
        assert event.timestamp == 42.0

    def test_empty_leaderboard(self):
        tracker = PopularityTracker(MemoryBackend().log)
        assert tracker.update({}) is None
        assert tracker.top is None

    def test_check_reads_todays_orders(self):
        backend = MemoryBackend()
        noon = datetime.datetime(2024, 3, 5, 12, 0).timestamp() * 1000
        backend.insert(Table.FOOD_HISTORY, {"dish_name": "Soup", "timestamp": noon - 1000, "quantity_consumed": 3})
        tracker = PopularityTracker(backend.log)
        assert tracker.check(backend, noon) is None
        assert tracker.top == "Soup"

    def test_check_backend_failure(self):
        backend = FailingBackend()
        assert PopularityTracker(backend.log).check(backend, HOUR_MS) is None


class TestLoadOrders:
    def test_invalid_rows_skipped(self):
        backend = MemoryBackend()
        backend.insert(Table.FOOD_HISTORY, {"dish_name": "Soup", "timestamp": 5.0})
        backend.insert(Table.FOOD_HISTORY, {"timestamp": 6.0})
        orders = load_orders(backend, 0.0, 10.0, backend.log)
        assert [o.dish_name for o in orders] == ["Soup"]


def test_order_event():
    event = order_event(FoodOrder(id="o1", dish_name="Soup", timestamp=1.0))
    assert event.kind == EventKind.ORDER_RECEIVED
    assert event.identity == "order_received:o1"
    assert event.severity == Severity.INFO
    assert event.message == "New order: Soup"


@pytest.mark.parametrize("severity,other,expected", [
    (Severity.CRITICAL, Severity.WARNING, True),
    (Severity.WARNING, Severity.WARNING, True),
    (Severity.INFO, Severity.WARNING, False),
])
def test_severity_ordering(severity, other, expected):
    assert severity.at_least(other) is expected


def test_severity_parse_unknown():
    assert Severity.parse("warning") is Severity.WARNING
    assert Severity.parse("urgent") is None
    assert Severity.parse(None) is None
