"""Realtime ticker: drives an async callback at a fixed, switchable interval on the event loop."""

import asyncio
from typing import Awaitable, Callable

import structlog


class RealtimeTicker:
    """
    Cancellable periodic timer.

    Each start or interval change bumps a generation counter and spawns a new
    loop task; a loop only ticks while its generation is current, so no tick
    from an old interval fires after the new interval takes effect.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        interval_sec: float,
        allowed_intervals: tuple[int, ...],
        log: structlog.BoundLogger,
    ):
        self._callback = callback
        self._allowed = tuple(allowed_intervals)
        self._check_interval(interval_sec)
        self._interval = interval_sec
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._tick_count = 0
        self._error_count = 0
        self.log = log

    def _check_interval(self, seconds: float):
        if seconds not in self._allowed:
            raise ValueError(f"interval must be one of {self._allowed}, got {seconds}")

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def start(self):
        """Start ticking. Must be called from inside a running event loop."""
        self._cancel()
        self._generation += 1
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation))
        self.log.info("ticker_started", interval=self._interval)

    def stop(self):
        if self._task is None:
            return
        self._cancel()
        self._generation += 1
        self.log.info("ticker_stopped", ticks=self._tick_count, errors=self._error_count)

    def set_interval(self, seconds: float):
        self._check_interval(seconds)
        self._interval = seconds
        if self.is_running:
            self.start()
        self.log.info("ticker_interval_updated", interval=seconds)

    def _cancel(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, generation: int):
        while generation == self._generation:
            await asyncio.sleep(self._interval)
            if generation != self._generation:
                break
            try:
                await self._callback()
                self._tick_count += 1
            except Exception as e:
                self._error_count += 1
                self.log.error("tick_error", error=str(e))
