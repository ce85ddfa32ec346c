"""Tests for the session pipeline: ingestion, ticking and windowed detection."""

import asyncio
from unittest.mock import MagicMock

import pytest

from config.context import SessionContext
from processor.classifier import AnomalyClassifier, ClassifierError
from processor.detector import HOUR_MS
from processor.events import EventKind
from processor.pipeline import TelemetryPipeline
from simulator.schemas import AnomalyPrediction
from storage.backend import BackendError, MemoryBackend, Table


@pytest.fixture
def pipeline(context, clock, rng):
    return TelemetryPipeline(context, rng=rng, clock=clock)


class BrokenBackend(MemoryBackend):
    def _write(self, table, record):
        raise BackendError("write refused")

    def select_recent(self, table, since=None, until=None, limit=100):
        raise BackendError("read refused")


class TestIngest:
    def test_push_and_poll_deliver_once(self, pipeline, make_sample):
        sample = make_sample()
        pipeline.backend.insert(Table.IOT_DATA, sample.model_dump(mode="json"))
        assert len(pipeline.store) == 1

        added = asyncio.run(pipeline.refresh())
        assert added == 0
        assert len(pipeline.store) == 1

    def test_refresh_ingests_unseen_rows(self, context, clock, make_sample):
        # Rows written before the pipeline subscribed are only reachable by polling.
        for i in range(3):
            context.backend.insert(Table.IOT_DATA, make_sample(timestamp=float(i)).model_dump(mode="json"))
        pipeline = TelemetryPipeline(context, clock=clock)
        assert len(pipeline.store) == 0
        assert asyncio.run(pipeline.refresh()) == 3
        assert [s.timestamp for s in pipeline.store.current()] == [2.0, 1.0, 0.0]

    def test_invalid_row_rejected(self, pipeline):
        assert pipeline.ingest({"zone": "Zone01", "temperature": 500}) is False
        assert len(pipeline.store) == 0

    def test_fire_sample_dispatched(self, pipeline, make_sample):
        pipeline.ingest(make_sample(fire_alarm_triggered=True))
        kinds = [n.event.kind for n in pipeline.dispatcher.notifications]
        assert kinds == [EventKind.FIRE_ALARM]

    def test_sharp_change_dispatched_once(self, pipeline, make_sample):
        pipeline.ingest(make_sample(timestamp=1.0, temperature=20.0))
        pipeline.ingest(make_sample(timestamp=2.0, temperature=25.0))
        pipeline.ingest(make_sample(timestamp=3.0, temperature=20.0))
        changes = [n for n in pipeline.dispatcher.notifications if n.event.kind == EventKind.THRESHOLD_CHANGE]
        assert len(changes) == 1
        assert pipeline.dispatcher.stats["suppressed"] == 1

    def test_orders_deduplicated_by_id(self, pipeline):
        row = {"id": "o1", "dish_name": "Soup", "timestamp": 1.0}
        assert pipeline.ingest_order(row) is True
        assert pipeline.ingest_order(row) is False
        assert [n.event.identity for n in pipeline.dispatcher.notifications] == ["order_received:o1"]


class TestTick:
    def test_tick_from_store_head(self, pipeline, make_sample, clock):
        pipeline.store.append(make_sample(timestamp=clock() * 1000 - 1000, energy_consumed_kwh=10.0))
        asyncio.run(pipeline.tick())
        assert len(pipeline.store) == 2
        head = pipeline.store.head
        assert head.timestamp == clock() * 1000
        assert 9.0 <= head.energy_consumed_kwh <= 11.0
        assert len(pipeline.backend.select_recent(Table.IOT_DATA)) == 1

    def test_tick_on_empty_store_uses_seed(self, pipeline):
        asyncio.run(pipeline.tick())
        assert len(pipeline.store) == 1

    def test_tick_respects_capacity(self, settings, backend, clock, rng):
        settings.store_capacity = 3
        pipeline = TelemetryPipeline(SessionContext.create(settings, backend), rng=rng, clock=clock)

        async def run_ticks():
            for _ in range(5):
                clock.advance(5)
                await pipeline.tick()

        asyncio.run(run_ticks())
        assert len(pipeline.store) == 3

    def test_backend_failure_is_noop(self, settings, clock, rng):
        pipeline = TelemetryPipeline(SessionContext.create(settings, BrokenBackend()), rng=rng, clock=clock)
        asyncio.run(pipeline.tick())
        assert len(pipeline.store) == 0
        assert asyncio.run(pipeline.refresh()) == 0

    def test_tick_simulates_orders(self, settings, backend, clock, rng):
        settings.order_probability = 1.0
        pipeline = TelemetryPipeline(SessionContext.create(settings, backend), rng=rng, clock=clock)
        asyncio.run(pipeline.tick())
        assert len(backend.select_recent(Table.FOOD_HISTORY)) == 1
        kinds = [n.event.kind for n in pipeline.dispatcher.notifications]
        assert EventKind.ORDER_RECEIVED in kinds


class TestRealtimeControl:
    def test_toggle_and_interval(self, pipeline):
        async def scenario():
            pipeline.toggle_realtime(True)
            assert pipeline.ticker.is_running
            pipeline.set_interval(5)
            assert pipeline.ticker.interval == 5
            assert pipeline.context.preferences.tick_interval_sec == 5
            pipeline.toggle_realtime(False)
            assert not pipeline.ticker.is_running

        asyncio.run(scenario())

    def test_invalid_interval_rejected(self, pipeline):
        with pytest.raises(ValueError):
            pipeline.set_interval(7)

    def test_interval_persisted(self, pipeline, context):
        pipeline.set_interval(60)
        assert context.load_preferences().tick_interval_sec == 60

    def test_status(self, pipeline):
        status = pipeline.status()
        assert status["enabled"] is False
        assert status["interval"] == 30
        assert status["capacity"] == 100


class TestCheckOrders:
    def test_spike_and_popularity(self, pipeline, clock):
        now = clock() * 1000
        backend = pipeline.backend
        backend.insert(Table.FOOD_HISTORY, {"dish_name": "Soup", "timestamp": now - 1.5 * HOUR_MS, "quantity_consumed": 2})
        asyncio.run(pipeline.check_orders(now))

        backend.insert(Table.FOOD_HISTORY, {"dish_name": "Pizza", "timestamp": now - 0.5 * HOUR_MS, "quantity_consumed": 9})
        events = asyncio.run(pipeline.check_orders(now))
        kinds = {e.kind for e in events}
        assert EventKind.CONSUMPTION_SPIKE in kinds


class TestClassification:
    def _classifier(self, result):
        classifier = MagicMock(spec=AnomalyClassifier)
        if isinstance(result, Exception):
            classifier.classify.side_effect = result
        else:
            classifier.classify.return_value = result
        return classifier

    def test_anomaly_stored_and_dispatched(self, context, clock, make_sample):
        sample = make_sample()
        prediction = AnomalyPrediction(
            iot_data_id=sample.id, zone="Kitchen01", prediction="Anomaly", risk_level="High", api_timestamp="t"
        )
        pipeline = TelemetryPipeline(context, classifier=self._classifier(prediction), clock=clock)

        async def scenario():
            pipeline.ingest(sample)
            await asyncio.gather(*pipeline._background)

        asyncio.run(scenario())
        assert len(context.backend.select_recent(Table.ANOMALY_DETECTIONS)) == 1
        kinds = [n.event.kind for n in pipeline.dispatcher.notifications]
        assert kinds == [EventKind.ANOMALY_PREDICTED]

    def test_classifier_failure_is_silent(self, context, clock, make_sample):
        pipeline = TelemetryPipeline(context, classifier=self._classifier(ClassifierError("down")), clock=clock)

        async def scenario():
            pipeline.ingest(make_sample())
            await asyncio.gather(*pipeline._background)

        asyncio.run(scenario())
        assert pipeline.dispatcher.notifications == []
        assert context.backend.select_recent(Table.ANOMALY_DETECTIONS) == []


class TestLifecycle:
    def test_start_and_stop(self, pipeline, make_sample):
        pipeline.backend.insert(Table.IOT_DATA, make_sample().model_dump(mode="json"))

        async def scenario():
            await pipeline.start()
            await pipeline.stop()

        asyncio.run(scenario())
        assert len(pipeline.store) == 1
        assert not pipeline.ticker.is_running
        # Listeners are detached after stop.
        pipeline.backend.insert(Table.IOT_DATA, make_sample(timestamp=5.0).model_dump(mode="json"))
        assert len(pipeline.store) == 1

    def test_startup_backfill_raises_no_alerts(self, context, clock, make_sample):
        day_ago = clock() * 1000 - 24 * HOUR_MS
        context.backend.insert(
            Table.IOT_DATA, make_sample(timestamp=day_ago, fire_alarm_triggered=True).model_dump(mode="json")
        )
        context.preferences.push_notifications = False

        fire_alarms, pushes = [], []
        for _ in range(2):
            classifier = MagicMock(spec=AnomalyClassifier)
            pipeline = TelemetryPipeline(
                context,
                classifier=classifier,
                platform_notifier=lambda title, body: pushes.append(title),
                clock=clock,
            )

            async def scenario():
                await pipeline.start()
                await pipeline.stop()

            asyncio.run(scenario())
            assert len(pipeline.store) == 1
            fire_alarms.append(
                sum(1 for n in pipeline.dispatcher.notifications if n.event.kind == EventKind.FIRE_ALARM)
            )
            classifier.classify.assert_not_called()

        assert fire_alarms == [0, 0]
        assert pushes == []

    def test_backfill_primes_change_baselines(self, context, clock, make_sample):
        now = clock() * 1000
        context.backend.insert(Table.IOT_DATA, make_sample(timestamp=now - 2000, temperature=20.0).model_dump(mode="json"))
        context.backend.insert(Table.IOT_DATA, make_sample(timestamp=now - 1000, temperature=30.0).model_dump(mode="json"))
        pipeline = TelemetryPipeline(context, clock=clock)

        async def scenario():
            await pipeline.start()
            # Backfill leaves the newest stored sample as the baseline, so this rise is reported.
            pipeline.ingest(make_sample(timestamp=now, temperature=36.0))
            await pipeline.stop()

        asyncio.run(scenario())
        changes = [n.event for n in pipeline.dispatcher.notifications if n.event.kind == EventKind.THRESHOLD_CHANGE]
        assert [e.metric for e in changes] == ["temperature"]
