"""Telemetry pipeline: orchestrates generator, store, detectors and dispatcher for one session."""

import asyncio
import random
import time
from collections import OrderedDict
from typing import Callable, Coroutine

from pydantic import ValidationError

from config import configure_logging
from config.context import SessionContext
from processor.classifier import AnomalyClassifier, ClassifierError, prediction_event
from processor.detector import ChangeDetector, ConsumptionSpikeDetector, PopularityTracker, order_event
from processor.dispatcher import NotificationDispatcher, PlatformNotifier
from processor.events import Event
from simulator.generator import ReadingGenerator
from simulator.orders import OrderGenerator
from simulator.schemas import FoodOrder, Sample
from simulator.ticker import RealtimeTicker
from storage.backend import BackendError, Table
from storage.telemetry_store import TelemetryStore

MAX_TRACKED_ORDERS = 1000


class TelemetryPipeline:
    """
    Wires together: Ticker → Generator → Backend → ingest → Store → Detector → Dispatcher.

    ``ingest`` is the only way samples reach the store. It is registered as the
    backend's insert listener (push) and is also fed by ``refresh`` (poll), so a
    sample delivered twice lands once. Backend and classifier calls run through
    ``asyncio.to_thread``; insert notifications raised on a worker thread are
    handed back to the event loop, which is the only thread touching the store.
    """

    def __init__(
        self,
        context: SessionContext,
        rng: random.Random | None = None,
        classifier: AnomalyClassifier | None = None,
        platform_notifier: PlatformNotifier | None = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = context.settings
        self.context = context
        self.settings = settings
        self.backend = context.backend
        self.clock = clock
        self.log = configure_logging(
            "telemetry-pipeline", settings.log_level, settings.log_format, session=context.session_id
        )

        self._rng = rng or random.Random()
        self.store = TelemetryStore(settings.store_capacity)
        self._generator = ReadingGenerator(self._rng, settings.rare_event_probability)
        self._orders = OrderGenerator(self._rng)

        # Detection
        self._detector = ChangeDetector()
        self._spike = ConsumptionSpikeDetector(
            self.backend,
            self.log,
            spike_ratio=settings.spike_ratio,
            window_ms=settings.spike_window_sec * 1000,
        )
        self._popularity = PopularityTracker(self.log)
        self._classifier = classifier

        self.dispatcher = NotificationDispatcher(
            context.preferences,
            self.log,
            platform_notifier=platform_notifier or self._log_platform_notification,
            cooldown_sec=settings.dedup_cooldown_sec,
            visible_limit=settings.visible_notifications,
            clock=clock,
        )
        self.dispatcher.subscribe(self._persist_event)

        interval = context.preferences.tick_interval_sec
        if interval not in settings.allowed_tick_intervals:
            interval = settings.tick_interval_sec
        self.ticker = RealtimeTicker(self.tick, interval, settings.allowed_tick_intervals, self.log)

        self._seen_orders: OrderedDict[str, None] = OrderedDict()
        self._background: set[asyncio.Task] = set()
        self._poll_task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._unsubscribe = [
            self.backend.on_insert(Table.IOT_DATA, self._on_sample_row),
            self.backend.on_insert(Table.FOOD_HISTORY, self._on_order_row),
        ]

    # ─── Ingestion ──────────────────────────────────────────────────

    def ingest(self, record: Sample | dict, detect: bool = True) -> bool:
        """Add a sample to the store and run detection on it. False if it was already seen.

        With ``detect=False`` (history backfill) the sample only becomes its
        zone's baseline: nothing is dispatched or classified.
        """
        if isinstance(record, Sample):
            sample = record
        else:
            try:
                sample = Sample.model_validate(record)
            except ValidationError as e:
                self.log.warning("invalid_sample_row", row_id=record.get("id"), error=str(e))
                return False

        if not self.store.append(sample):
            return False

        if not detect:
            self._detector.prime(sample)
            return True

        for event in self._detector.check(sample):
            self.dispatcher.dispatch(event)

        if self._classifier is not None:
            self._spawn(self._classify(sample))
        return True

    def ingest_order(self, record: FoodOrder | dict) -> bool:
        if isinstance(record, FoodOrder):
            order = record
        else:
            try:
                order = FoodOrder.model_validate(record)
            except ValidationError as e:
                self.log.warning("invalid_order_row", row_id=record.get("id"), error=str(e))
                return False

        if order.id in self._seen_orders:
            return False
        self._seen_orders[order.id] = None
        if len(self._seen_orders) > MAX_TRACKED_ORDERS:
            self._seen_orders.popitem(last=False)

        self.dispatcher.dispatch(order_event(order))
        return True

    def _on_sample_row(self, row: dict):
        self._deliver(self.ingest, row)

    def _on_order_row(self, row: dict):
        self._deliver(self.ingest_order, row)

    def _deliver(self, handler: Callable[[dict], bool], row: dict):
        loop = self._loop
        if loop is None or loop.is_closed():
            handler(row)
        else:
            loop.call_soon_threadsafe(handler, row)

    async def refresh(self, detect: bool = True) -> int:
        """Poll the backend for recent samples and ingest them. Returns how many were new."""
        try:
            rows = await asyncio.to_thread(
                self.backend.select_recent, Table.IOT_DATA, None, None, self.store.capacity
            )
        except BackendError as e:
            self.log.error("refresh_failed", error=str(e))
            return 0
        added = sum(1 for row in reversed(rows) if self.ingest(row, detect=detect))
        if added:
            self.log.info("refresh_ingested", added=added, detect=detect, store_size=len(self.store))
        return added

    # ─── Simulation ─────────────────────────────────────────────────

    async def tick(self):
        """Generate the next sample (and maybe an order) and write it through the backend."""
        self._loop = asyncio.get_running_loop()
        now = self.clock() * 1000
        sample = self._generator.next_sample(self.store.head, now)
        row = await self._insert(Table.IOT_DATA, sample.model_dump(mode="json"))
        if row is None:
            return
        self.ingest(row)

        if self._rng.random() < self.settings.order_probability:
            order = self._orders.next_order(now)
            row = await self._insert(Table.FOOD_HISTORY, order.model_dump(mode="json"))
            if row is not None:
                self.ingest_order(row)

    async def _insert(self, table: Table, record: dict) -> dict | None:
        try:
            return await asyncio.to_thread(self.backend.insert, table, record)
        except BackendError as e:
            self.log.error("backend_insert_failed", table=table.value, error=str(e))
            return None

    def toggle_realtime(self, enabled: bool):
        if enabled and not self.ticker.is_running:
            self.ticker.start()
        elif not enabled and self.ticker.is_running:
            self.ticker.stop()
        self.log.info("realtime_toggled", enabled=enabled, interval=self.ticker.interval)

    def set_interval(self, seconds: int):
        """Switch the tick interval; raises ValueError for intervals outside the allowed set."""
        self.ticker.set_interval(seconds)
        self.context.preferences.tick_interval_sec = seconds
        try:
            self.context.save()
        except BackendError as e:
            self.log.warning("preferences_save_failed", error=str(e))

    # ─── Windowed detection ─────────────────────────────────────────

    async def check_orders(self, now: float | None = None) -> list[Event]:
        """Run consumption-spike and popularity detection over the food history."""
        now = now if now is not None else self.clock() * 1000
        spike = await asyncio.to_thread(self._spike.check, now)
        popularity = await asyncio.to_thread(self._popularity.check, self.backend, now)
        events = [e for e in (spike, popularity) if e is not None]
        for event in events:
            self.dispatcher.dispatch(event)
        return events

    async def _classify(self, sample: Sample):
        try:
            prediction = await asyncio.to_thread(self._classifier.classify, sample)
        except ClassifierError as e:
            self.log.warning("classification_failed", sample_id=sample.id, error=str(e))
            return
        await self._insert(Table.ANOMALY_DETECTIONS, prediction.model_dump(mode="json"))
        event = prediction_event(prediction)
        if event is not None:
            self.dispatcher.dispatch(event)

    def _spawn(self, coro: Coroutine):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            self.log.debug("background_task_skipped", reason="no running event loop")
            return
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ─── Event fan-out ──────────────────────────────────────────────

    def _persist_event(self, event: Event):
        # Outside a running loop (e.g. direct sync use) events stay in memory only.
        self._spawn(self._insert(Table.DETECTED_EVENTS, event.to_dict()))

    def _log_platform_notification(self, title: str, body: str):
        self.log.warning("platform_notification", title=title, body=body)

    # ─── Lifecycle ──────────────────────────────────────────────────

    async def _poll_loop(self):
        """Periodically re-fetch samples and re-rank food history."""
        while True:
            await asyncio.sleep(self.settings.popularity_poll_sec)
            try:
                await self.refresh()
                await self.check_orders()
            except Exception as e:
                self.log.error("poll_error", error=str(e))

    async def start(self):
        self.log.info("pipeline_starting", capacity=self.store.capacity)
        self._loop = asyncio.get_running_loop()
        # Stored history was alerted on when it arrived; backfill it silently.
        await self.refresh(detect=False)
        await self.check_orders()
        self._poll_task = self._loop.create_task(self._poll_loop())
        if self.settings.realtime_enabled:
            self.toggle_realtime(True)

    async def stop(self):
        self.ticker.stop()
        tasks = list(self._background)
        if self._poll_task is not None:
            tasks.append(self._poll_task)
            self._poll_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        self.log.info("pipeline_stopped", store_size=len(self.store), **self.dispatcher.stats)

    def status(self) -> dict:
        return {
            "enabled": self.ticker.is_running,
            "interval": self.ticker.interval,
            "allowed_intervals": list(self.settings.allowed_tick_intervals),
            "store_size": len(self.store),
            "capacity": self.store.capacity,
            "ticks": self.ticker.tick_count,
        }
