"""Redis access for the telemetry tables: pooled connections, bounded retries, a circuit breaker."""

import time
from typing import Any, Callable

import redis
import structlog

from config import Settings, configure_logging

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"

# Connection-level failures worth retrying; anything else is a bug in the operation.
TRANSIENT_ERRORS = (redis.ConnectionError, redis.TimeoutError)


class CircuitBreaker:
    """
    Stops hammering an unreachable Redis.

    ``failure_threshold`` consecutive failures open the circuit. While open,
    calls are refused until ``recovery_timeout`` seconds have passed; the next
    call is then let through as a trial (half-open). A failed trial reopens the
    circuit immediately, a success closes it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        log: structlog.BoundLogger | None = None,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.state = CLOSED
        self.failure_count = 0
        self.opened_at = 0.0
        self._clock = clock
        self._log = log

    def _move_to(self, state: str):
        if state == self.state:
            return
        if self._log is not None:
            self._log.warning("redis_circuit_state", previous=self.state, state=state, failures=self.failure_count)
        self.state = state

    def can_execute(self) -> bool:
        if self.state != OPEN:
            return True
        if self._clock() - self.opened_at < self.recovery_timeout:
            return False
        self._move_to(HALF_OPEN)
        return True

    def record_success(self):
        self.failure_count = 0
        self._move_to(CLOSED)

    def record_failure(self):
        self.failure_count += 1
        if self.state == HALF_OPEN or self.failure_count >= self.failure_threshold:
            self.opened_at = self._clock()
            self._move_to(OPEN)


class CircuitOpenError(Exception):
    """Raised without touching Redis while the circuit is open."""


class RedisClient:
    def __init__(self, settings: Settings, circuit: CircuitBreaker | None = None):
        self.log = configure_logging("redis-client", settings.log_level, settings.log_format)
        self._pool = redis.ConnectionPool.from_url(
            settings.redis_url,
            max_connections=settings.redis_pool_size,
            decode_responses=True,
        )
        self._max_retries = settings.redis_max_retries
        self._backoff_sec = settings.redis_retry_backoff_sec
        self._circuit = circuit or CircuitBreaker(
            failure_threshold=settings.redis_failure_threshold,
            recovery_timeout=settings.redis_recovery_sec,
            log=self.log,
        )
        self.log.info("redis_pool_created", url=settings.redis_url, pool_size=settings.redis_pool_size)

    def get_client(self) -> redis.Redis:
        return redis.Redis(connection_pool=self._pool)

    def execute_with_retry(self, func: Callable[[redis.Redis], Any], max_retries: int | None = None) -> Any:
        """Run ``func`` against a pooled connection.

        Transient failures are retried with doubling backoff, but never past an
        open circuit. The last transient error is re-raised.
        """
        if not self._circuit.can_execute():
            raise CircuitOpenError(f"Redis unavailable, circuit {self._circuit.state}")

        attempts = max_retries if max_retries is not None else self._max_retries
        for attempt in range(1, attempts + 1):
            try:
                result = func(self.get_client())
            except TRANSIENT_ERRORS as e:
                self._circuit.record_failure()
                if attempt == attempts or not self._circuit.can_execute():
                    self.log.error("redis_gave_up", attempts=attempt, circuit=self._circuit.state, error=str(e))
                    raise
                delay = self._backoff_sec * 2 ** (attempt - 1)
                self.log.warning("redis_retry", attempt=attempt, delay=delay, error=str(e))
                time.sleep(delay)
            else:
                self._circuit.record_success()
                return result

    def ping(self) -> bool:
        try:
            return bool(self.execute_with_retry(lambda r: r.ping(), max_retries=1))
        except (redis.RedisError, CircuitOpenError):
            return False

    def close(self):
        self._pool.disconnect()
        self.log.info("redis_pool_closed")

    @property
    def circuit_state(self) -> str:
        return self._circuit.state
