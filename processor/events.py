"""Detected events: what the detectors emit and the dispatcher forwards."""

from dataclasses import asdict, dataclass
from enum import Enum


class EventKind(str, Enum):
    FIRE_ALARM = "fire_alarm"
    GAS_LEAK = "gas_leak"
    THRESHOLD_CHANGE = "threshold_change"
    CONSUMPTION_SPIKE = "consumption_spike"
    ORDER_RECEIVED = "order_received"
    POPULARITY_CHANGE = "popularity_change"
    ANOMALY_PREDICTED = "anomaly_predicted"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value) -> "Severity | None":
        """Severity for a stored value, or None when it is not one we know."""
        try:
            return cls(value)
        except ValueError:
            return None

    def at_least(self, other: "Severity") -> bool:
        return self.rank >= other.rank


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}

# Safety-critical kinds: never deduplicated, never muted by preferences.
SAFETY_KINDS = frozenset({EventKind.FIRE_ALARM, EventKind.GAS_LEAK})


@dataclass(frozen=True)
class Event:
    kind: EventKind
    identity: str
    title: str
    message: str
    timestamp: float
    severity: Severity
    zone: str | None = None
    metric: str | None = None

    @property
    def is_safety_critical(self) -> bool:
        return self.kind in SAFETY_KINDS

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["severity"] = self.severity.value
        return data
