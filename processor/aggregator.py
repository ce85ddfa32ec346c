"""Aggregation over store snapshots: averages, per-zone and per-hour groupings, dish popularity.

Everything here is a pure function of the samples passed in and is recomputed
on every call. Empty inputs aggregate to 0, never NaN.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Sequence

from simulator.schemas import FoodOrder, Sample, Switch, Zone

METRICS = (
    "temperature",
    "humidity",
    "co2_level",
    "light_level",
    "occupancy_count",
    "energy_consumed_kwh",
    "battery_backup_level",
)

HOUR_MS = 3_600_000

LOW_BATTERY_LEVEL = 20.0
HIGH_TEMPERATURE = 35.0


@dataclass
class AggregateResult:
    key: str
    count: int
    total: float
    avg: float
    min_val: float
    max_val: float


@dataclass
class ZoneAggregate:
    zone: Zone
    count: int
    averages: dict[str, float]
    latest: Sample | None = None


@dataclass
class HourBucket:
    start: float
    end: float
    count: int
    averages: dict[str, float] = field(default_factory=dict)
    totals: dict[str, float] = field(default_factory=dict)


def _check_metric(metric: str):
    if metric not in METRICS:
        raise ValueError(f"Unknown metric: {metric}")


def average_of(samples: Sequence[Sample], metric: str) -> float:
    """Arithmetic mean of ``metric``; 0.0 for an empty subset."""
    _check_metric(metric)
    if not samples:
        return 0.0
    return sum(s.metric(metric) for s in samples) / len(samples)


def summarize(samples: Sequence[Sample], metric: str, key: str | None = None) -> AggregateResult:
    _check_metric(metric)
    values = [s.metric(metric) for s in samples]
    if not values:
        return AggregateResult(key or metric, 0, 0.0, 0.0, 0.0, 0.0)
    total = sum(values)
    return AggregateResult(
        key=key or metric,
        count=len(values),
        total=total,
        avg=total / len(values),
        min_val=min(values),
        max_val=max(values),
    )


def _averages(samples: Sequence[Sample]) -> dict[str, float]:
    return {metric: average_of(samples, metric) for metric in METRICS}


def group_by_zone(samples: Sequence[Sample]) -> list[ZoneAggregate]:
    """One record per zone of the enumeration, including zones without samples."""
    by_zone: dict[Zone, list[Sample]] = {zone: [] for zone in Zone}
    for s in samples:
        by_zone[s.zone].append(s)

    results = []
    for zone, members in by_zone.items():
        latest = max(members, key=lambda s: s.timestamp) if members else None
        results.append(ZoneAggregate(zone=zone, count=len(members), averages=_averages(members), latest=latest))
    return results


def group_by_hour(samples: Sequence[Sample], window_hours: int, now: float) -> list[HourBucket]:
    """
    Bucket samples into ``window_hours`` one-hour trailing buckets ending at ``now``.

    Buckets are returned oldest first; bucket i covers
    [now - (window_hours - i) h, now - (window_hours - i - 1) h). The newest
    bucket also includes samples stamped exactly ``now``. Samples outside the
    window are ignored.
    """
    if window_hours < 1:
        raise ValueError("window_hours must be >= 1")

    window_start = now - window_hours * HOUR_MS
    members: list[list[Sample]] = [[] for _ in range(window_hours)]
    for s in samples:
        if s.timestamp < window_start or s.timestamp > now:
            continue
        index = min(int((s.timestamp - window_start) // HOUR_MS), window_hours - 1)
        members[index].append(s)

    buckets = []
    for i, bucket in enumerate(members):
        start = window_start + i * HOUR_MS
        buckets.append(
            HourBucket(
                start=start,
                end=start + HOUR_MS,
                count=len(bucket),
                averages=_averages(bucket),
                totals={metric: sum(s.metric(metric) for s in bucket) for metric in METRICS},
            )
        )
    return buckets


def status_alerts(samples: Iterable[Sample]) -> int:
    """Count samples in an alerting state (alarm, low battery, overheating, power loss)."""
    return sum(
        1
        for s in samples
        if s.fire_alarm_triggered
        or s.gas_leak_detected
        or s.battery_backup_level < LOW_BATTERY_LEVEL
        or s.temperature > HIGH_TEMPERATURE
        or s.power_status == Switch.OFF
    )


def latest_summary(samples: Sequence[Sample], limit: int = 10) -> dict:
    """Headline figures: the newest reading plus averages over the ``limit`` most recent."""
    recent = list(samples[:limit])
    return {
        "latest": recent[0].model_dump(mode="json") if recent else None,
        "sample_count": len(samples),
        "averages": _averages(recent),
        "total_occupancy": sum(s.occupancy_count for s in recent),
        "alert_count": status_alerts(recent),
    }


def zone_distribution(samples: Iterable[Sample]) -> dict[str, int]:
    counts = Counter(s.zone.value for s in samples)
    return {zone.value: counts.get(zone.value, 0) for zone in Zone}


def power_distribution(samples: Iterable[Sample]) -> dict[str, int]:
    counts = Counter(s.power_status.value for s in samples)
    return {status.value: counts.get(status.value, 0) for status in Switch}


def dish_popularity(orders: Iterable[FoodOrder], day: date | None = None) -> list[tuple[str, int]]:
    """Summed quantity consumed per dish on ``day`` (local calendar), most popular first."""
    totals: dict[str, int] = {}
    for order in orders:
        if day is not None and datetime.fromtimestamp(order.timestamp / 1000).date() != day:
            continue
        totals[order.dish_name] = totals.get(order.dish_name, 0) + order.quantity_consumed
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)
