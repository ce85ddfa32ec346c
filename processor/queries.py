"""Read-only dashboard queries keyed by a closed set of intents.

A caller (for instance a chat front end that asks an LLM to pick a label)
resolves its label with ``QueryIntent.from_label``; anything outside the set
becomes ``UNSUPPORTED`` instead of falling through to ad-hoc handling.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable

from processor.aggregator import dish_popularity, group_by_zone
from processor.classifier import unique_predictions
from processor.detector import load_orders
from storage.backend import BackendError, Table

if TYPE_CHECKING:
    from processor.pipeline import TelemetryPipeline

MODIFICATION_KEYWORDS = ("insert", "update", "delete", "drop", "create", "alter", "truncate")

READ_ONLY_MESSAGE = "I can only fetch data. For modifications, please update the database manually."
UNSUPPORTED_MESSAGE = "Sorry, I cannot find that information in the available data."
NO_DATA_MESSAGE = "No data found for your query."
BACKEND_ERROR_MESSAGE = "Sorry, there was an error fetching that data. Please try again."

MAX_DISPLAY_ROWS = 10


class QueryIntent(str, Enum):
    LATEST_READINGS = "latest_readings"
    ZONE_AVERAGES = "zone_averages"
    ACTIVE_ALERTS = "active_alerts"
    POPULAR_DISHES = "popular_dishes"
    RECENT_ORDERS = "recent_orders"
    ANOMALIES = "anomalies"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_label(cls, label: str | None) -> "QueryIntent":
        if not label:
            return cls.UNSUPPORTED
        normalized = re.sub(r"[\s\-]+", "_", label.strip().lower())
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNSUPPORTED

    @property
    def reads_backend(self) -> bool:
        """True when answering needs a (blocking) backend read rather than session state."""
        return self in BACKEND_INTENTS


BACKEND_INTENTS = frozenset({QueryIntent.POPULAR_DISHES, QueryIntent.RECENT_ORDERS, QueryIntent.ANOMALIES})


@dataclass
class QueryResult:
    intent: QueryIntent
    message: str
    rows: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"intent": self.intent.value, "message": self.message, "rows": self.rows}


def is_modification(text: str | None) -> bool:
    if not text:
        return False
    words = set(re.findall(r"[a-z]+", text.lower()))
    return any(keyword in words for keyword in MODIFICATION_KEYWORDS)


def format_rows(rows: list[dict], limit: int = MAX_DISPLAY_ROWS) -> str:
    """Numbered ``key: value`` lines for the first ``limit`` rows."""
    if not rows:
        return NO_DATA_MESSAGE
    lines = ["Here's what I found:", ""]
    for index, row in enumerate(rows[:limit], start=1):
        lines.append(f"{index}. " + ", ".join(f"{k}: {v}" for k, v in row.items()))
    if len(rows) > limit:
        lines.append("")
        lines.append(f"... and {len(rows) - limit} more results")
    return "\n".join(lines)


class QueryRunner:
    def __init__(self, pipeline: TelemetryPipeline):
        self._pipeline = pipeline
        self._handlers: dict[QueryIntent, Callable[[int], list[dict]]] = {
            QueryIntent.LATEST_READINGS: self._latest_readings,
            QueryIntent.ZONE_AVERAGES: self._zone_averages,
            QueryIntent.ACTIVE_ALERTS: self._active_alerts,
            QueryIntent.POPULAR_DISHES: self._popular_dishes,
            QueryIntent.RECENT_ORDERS: self._recent_orders,
            QueryIntent.ANOMALIES: self._anomalies,
        }

    def run(self, label: str | None, question: str | None = None, limit: int = 50) -> QueryResult:
        if is_modification(question):
            return QueryResult(QueryIntent.UNSUPPORTED, READ_ONLY_MESSAGE)

        intent = QueryIntent.from_label(label)
        handler = self._handlers.get(intent)
        if handler is None:
            return QueryResult(intent, UNSUPPORTED_MESSAGE)
        try:
            rows = handler(limit)
        except BackendError as e:
            self._pipeline.log.error("query_failed", intent=intent.value, error=str(e))
            return QueryResult(intent, BACKEND_ERROR_MESSAGE)
        return QueryResult(intent, format_rows(rows), rows)

    def _latest_readings(self, limit: int) -> list[dict]:
        return [s.model_dump(mode="json") for s in self._pipeline.store.current()[:limit]]

    def _zone_averages(self, limit: int) -> list[dict]:
        return [
            {
                "zone": z.zone.value,
                "samples": z.count,
                **{metric: round(value, 2) for metric, value in z.averages.items()},
            }
            for z in group_by_zone(self._pipeline.store.current())
        ][:limit]

    def _active_alerts(self, limit: int) -> list[dict]:
        return [n.to_dict() for n in self._pipeline.dispatcher.notifications][:limit]

    def _popular_dishes(self, limit: int) -> list[dict]:
        now = self._pipeline.clock() * 1000
        day = datetime.fromtimestamp(now / 1000).date()
        start = datetime.combine(day, datetime.min.time()).timestamp() * 1000
        orders = load_orders(self._pipeline.backend, start, now, self._pipeline.log)
        return [
            {"dish_name": dish, "quantity_consumed": quantity}
            for dish, quantity in dish_popularity(orders, day)[:limit]
        ]

    def _recent_orders(self, limit: int) -> list[dict]:
        return self._pipeline.backend.select_recent(Table.FOOD_HISTORY, limit=limit)

    def _anomalies(self, limit: int) -> list[dict]:
        rows = self._pipeline.backend.select_recent(Table.ANOMALY_DETECTIONS, limit=limit)
        return [p.model_dump(mode="json") for p in unique_predictions(rows)]
