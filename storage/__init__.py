from .redis_client import RedisClient
from .backend import BackendError, DataBackend, MemoryBackend, RedisBackend, Table, create_backend
from .telemetry_store import TelemetryStore

__all__ = [
    "RedisClient",
    "BackendError",
    "DataBackend",
    "MemoryBackend",
    "RedisBackend",
    "Table",
    "create_backend",
    "TelemetryStore",
]
