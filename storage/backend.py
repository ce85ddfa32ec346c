"""Persistent data backend: table-like collections of timestamped rows with insert notifications.

Rows are plain JSON-compatible dicts carrying an ``id`` and a ``timestamp``
(epoch ms). Two implementations share the contract:

* ``RedisBackend`` stores each table in a sorted set (score = timestamp),
  trims rows beyond the retention period and publishes every insert on
  ``channel:insert:<table>``.
* ``MemoryBackend`` keeps rows in process memory (demo mode, tests).

Both fan inserts out to in-process ``on_insert`` listeners.
"""

import json
import time
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from enum import Enum
from typing import Any, Callable

import redis
import structlog

from config import Settings, configure_logging
from storage.redis_client import CircuitOpenError, RedisClient


class Table(str, Enum):
    IOT_DATA = "iot_data"
    FOOD_HISTORY = "food_history"
    ANOMALY_DETECTIONS = "anomaly_detections"
    DETECTED_EVENTS = "detected_events"


class BackendError(Exception):
    """A backend read or write failed (connection, timeout, open circuit)."""


InsertCallback = Callable[[dict], None]


def _table_name(table: Table | str) -> str:
    return table.value if isinstance(table, Table) else str(table)


class DataBackend(ABC):
    def __init__(self, log: structlog.BoundLogger):
        self.log = log
        self._listeners: dict[str, list[InsertCallback]] = defaultdict(list)

    @abstractmethod
    def _write(self, table: str, record: dict): ...

    @abstractmethod
    def select_recent(
        self,
        table: Table | str,
        since: float | None = None,
        until: float | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Rows with since <= timestamp <= until, newest first, at most ``limit``."""

    @abstractmethod
    def load_hash(self, key: str) -> dict[str, str]: ...

    @abstractmethod
    def save_hash(self, key: str, mapping: dict[str, str]): ...

    @abstractmethod
    def ping(self) -> bool: ...

    def insert(self, table: Table | str, record: dict) -> dict:
        """Persist a row, then notify listeners. Raises BackendError if the write fails."""
        name = _table_name(table)
        row = dict(record)
        row.setdefault("id", uuid.uuid4().hex)
        row.setdefault("timestamp", time.time() * 1000)
        self._write(name, row)
        self._notify(name, row)
        return row

    def on_insert(self, table: Table | str, callback: InsertCallback) -> Callable[[], None]:
        """Register an insert listener. Returns a function that removes it."""
        name = _table_name(table)
        self._listeners[name].append(callback)

        def _unsubscribe():
            if callback in self._listeners[name]:
                self._listeners[name].remove(callback)

        return _unsubscribe

    def _notify(self, table: str, row: dict):
        for callback in list(self._listeners[table]):
            try:
                callback(row)
            except Exception as e:
                self.log.error("insert_listener_error", table=table, error=str(e))

    def close(self):
        pass


class MemoryBackend(DataBackend):
    def __init__(self, log: structlog.BoundLogger | None = None):
        super().__init__(log or configure_logging("memory-backend"))
        self._tables: dict[str, list[dict]] = defaultdict(list)
        self._hashes: dict[str, dict[str, str]] = {}

    def _write(self, table: str, record: dict):
        self._tables[table].append(record)

    def select_recent(self, table, since=None, until=None, limit=100):
        rows = [
            dict(row)
            for row in self._tables[_table_name(table)]
            if (since is None or row["timestamp"] >= since)
            and (until is None or row["timestamp"] <= until)
        ]
        rows.sort(key=lambda row: row["timestamp"], reverse=True)
        return rows[:limit]

    def load_hash(self, key):
        return dict(self._hashes.get(key, {}))

    def save_hash(self, key, mapping):
        self._hashes.setdefault(key, {}).update(mapping)

    def ping(self):
        return True


class RedisBackend(DataBackend):
    """Sorted-set tables on Redis, written through the circuit-breaking client."""

    def __init__(self, client: RedisClient, retention_ms: int = 7 * 86_400_000):
        super().__init__(client.log)
        self._client = client
        self._retention_ms = retention_ms

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisBackend":
        return cls(RedisClient(settings), retention_ms=settings.redis_retention_ms)

    @staticmethod
    def _key(table: str) -> str:
        return f"table:{table}"

    def _execute(self, func: Callable[[redis.Redis], Any]) -> Any:
        try:
            return self._client.execute_with_retry(func)
        except (redis.RedisError, CircuitOpenError) as e:
            raise BackendError(str(e)) from e

    def _write(self, table: str, record: dict):
        key = self._key(table)
        payload = json.dumps(record, sort_keys=True)
        timestamp = record["timestamp"]
        cutoff = timestamp - self._retention_ms

        def _op(r):
            pipe = r.pipeline()
            pipe.zadd(key, {payload: timestamp})
            pipe.zremrangebyscore(key, "-inf", cutoff)
            pipe.publish(f"channel:insert:{table}", payload)
            pipe.execute()

        self._execute(_op)

    def select_recent(self, table, since=None, until=None, limit=100):
        key = self._key(_table_name(table))
        low = "-inf" if since is None else since
        high = "+inf" if until is None else until

        def _op(r):
            raw = r.zrevrangebyscore(key, high, low, start=0, num=limit)
            return [json.loads(item) for item in raw]

        return self._execute(_op)

    def load_hash(self, key):
        return self._execute(lambda r: r.hgetall(key))

    def save_hash(self, key, mapping):
        if mapping:
            self._execute(lambda r: r.hset(key, mapping=mapping))

    def ping(self):
        return self._client.ping()

    @property
    def circuit_state(self) -> str:
        return self._client.circuit_state

    def close(self):
        self._client.close()


def create_backend(settings: Settings) -> DataBackend:
    if settings.backend == "memory":
        return MemoryBackend(configure_logging("memory-backend", settings.log_level, settings.log_format))
    if settings.backend == "redis":
        return RedisBackend.from_settings(settings)
    raise ValueError(f"Unknown backend: {settings.backend!r}")
