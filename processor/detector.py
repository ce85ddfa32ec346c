"""Change and threshold detection over samples and food history."""

from datetime import datetime, time as dt_time
from typing import Mapping

import structlog
from pydantic import ValidationError

from processor.aggregator import dish_popularity
from processor.events import Event, EventKind, Severity
from simulator.schemas import FoodOrder, Sample, Zone
from storage.backend import BackendError, DataBackend, Table

# Relative change between consecutive samples of a zone that counts as sharp.
SHARP_CHANGE_THRESHOLDS = {
    "temperature": 0.15,
    "humidity": 0.20,
    "co2_level": 0.25,
    "occupancy_count": 0.30,
    "energy_consumed_kwh": 0.20,
}

METRIC_LABELS = {
    "temperature": "Temperature",
    "humidity": "Humidity",
    "co2_level": "CO2 level",
    "occupancy_count": "Occupancy",
    "energy_consumed_kwh": "Energy consumption",
}

HOUR_MS = 3_600_000


class ChangeDetector:
    """
    Per-zone single-step lookback detector.

    The first sample of a zone only becomes its baseline. Every later sample of
    that zone is compared with the baseline, then replaces it. Fire alarms and
    gas leaks fire on every sample that carries them, baseline or not.
    """

    def __init__(self, thresholds: Mapping[str, float] | None = None):
        self._thresholds = dict(thresholds or SHARP_CHANGE_THRESHOLDS)
        self._baselines: dict[Zone, Sample] = {}

    def check(self, sample: Sample) -> list[Event]:
        events = self._safety_events(sample)

        baseline = self._baselines.get(sample.zone)
        if baseline is not None:
            events.extend(self._sharp_changes(baseline, sample))
        self._baselines[sample.zone] = sample
        return events

    def prime(self, sample: Sample):
        """Record ``sample`` as its zone's baseline without reporting anything."""
        self._baselines[sample.zone] = sample

    def _safety_events(self, sample: Sample) -> list[Event]:
        where = f"{sample.zone.label} (floor {sample.floor})"
        events = []
        if sample.fire_alarm_triggered:
            events.append(
                Event(
                    kind=EventKind.FIRE_ALARM,
                    identity=f"fire_alarm:{sample.zone.value}:{sample.id}",
                    title="Fire alarm triggered",
                    message=f"Fire alarm triggered in {where}",
                    timestamp=sample.timestamp,
                    severity=Severity.CRITICAL,
                    zone=sample.zone.value,
                )
            )
        if sample.gas_leak_detected:
            events.append(
                Event(
                    kind=EventKind.GAS_LEAK,
                    identity=f"gas_leak:{sample.zone.value}:{sample.id}",
                    title="Gas leak detected",
                    message=f"Gas leak detected in {where}",
                    timestamp=sample.timestamp,
                    severity=Severity.CRITICAL,
                    zone=sample.zone.value,
                )
            )
        return events

    def _sharp_changes(self, old: Sample, new: Sample) -> list[Event]:
        events = []
        for metric, threshold in self._thresholds.items():
            before = old.metric(metric)
            after = new.metric(metric)
            if before <= 0:
                continue
            change = abs(after - before) / before
            if change <= threshold:
                continue
            direction = "rose" if after > before else "fell"
            events.append(
                Event(
                    kind=EventKind.THRESHOLD_CHANGE,
                    identity=f"threshold_change:{new.zone.value}:{metric}",
                    title=f"Sharp {METRIC_LABELS.get(metric, metric).lower()} change",
                    message=(
                        f"{METRIC_LABELS.get(metric, metric)} {direction} {change:.0%} in "
                        f"{new.zone.label} (from {before:g} to {after:g})"
                    ),
                    timestamp=new.timestamp,
                    severity=Severity.WARNING,
                    zone=new.zone.value,
                    metric=metric,
                )
            )
        return events

    @property
    def tracked_zones(self) -> list[Zone]:
        return list(self._baselines.keys())


def load_orders(backend: DataBackend, since: float, until: float, log: structlog.BoundLogger) -> list[FoodOrder]:
    """Fetch food history in [since, until]; rows that fail validation are skipped."""
    orders = []
    for row in backend.select_recent(Table.FOOD_HISTORY, since=since, until=until, limit=10_000):
        try:
            orders.append(FoodOrder.model_validate(row))
        except ValidationError as e:
            log.warning("invalid_order_row", row_id=row.get("id"), error=str(e))
    return orders


class ConsumptionSpikeDetector:
    """Compares quantity consumed in the trailing window with the window before it."""

    def __init__(
        self,
        backend: DataBackend,
        log: structlog.BoundLogger,
        spike_ratio: float = 0.5,
        window_ms: int = HOUR_MS,
    ):
        self._backend = backend
        self._ratio = spike_ratio
        self._window_ms = window_ms
        self.log = log

    def check(self, now: float) -> Event | None:
        """Best-effort: backend failures are logged and yield no event."""
        try:
            orders = load_orders(self._backend, now - 2 * self._window_ms, now, self.log)
        except BackendError as e:
            self.log.error("spike_lookback_failed", error=str(e))
            return None

        boundary = now - self._window_ms
        current = sum(o.quantity_consumed for o in orders if o.timestamp >= boundary)
        prior = sum(o.quantity_consumed for o in orders if o.timestamp < boundary)
        if prior <= 0 or current <= prior * (1 + self._ratio):
            return None

        increase = (current - prior) / prior
        return Event(
            kind=EventKind.CONSUMPTION_SPIKE,
            identity=EventKind.CONSUMPTION_SPIKE.value,
            title="Consumption spike",
            message=f"Food consumed in the last hour rose {increase:.0%} ({prior} to {current} portions)",
            timestamp=now,
            severity=Severity.WARNING,
        )


class PopularityTracker:
    """Remembers the current most popular item and reports when another overtakes it."""

    def __init__(self, log: structlog.BoundLogger):
        self._top: str | None = None
        self.log = log

    @property
    def top(self) -> str | None:
        return self._top

    def update(self, leaderboard: Mapping[str, float], now: float = 0.0) -> Event | None:
        if not leaderboard:
            return None
        current = max(leaderboard.items(), key=lambda item: item[1])[0]
        previous, self._top = self._top, current
        if previous is None or previous == current:
            return None
        return Event(
            kind=EventKind.POPULARITY_CHANGE,
            identity=f"{EventKind.POPULARITY_CHANGE.value}:{current}",
            title="Popularity change",
            message=f"Most popular dish changed from {previous} to {current}",
            timestamp=now,
            severity=Severity.INFO,
        )

    def check(self, backend: DataBackend, now: float) -> Event | None:
        """Rank today's dishes from the backend. Backend failures yield no event."""
        day = datetime.fromtimestamp(now / 1000).date()
        start_of_day = datetime.combine(day, dt_time.min).timestamp() * 1000
        try:
            orders = load_orders(backend, start_of_day, now, self.log)
        except BackendError as e:
            self.log.error("popularity_lookup_failed", error=str(e))
            return None
        return self.update(dict(dish_popularity(orders, day)), now)


def order_event(order: FoodOrder) -> Event:
    return Event(
        kind=EventKind.ORDER_RECEIVED,
        identity=f"{EventKind.ORDER_RECEIVED.value}:{order.id}",
        title="New order",
        message=f"New order: {order.dish_name}",
        timestamp=order.timestamp,
        severity=Severity.INFO,
    )
