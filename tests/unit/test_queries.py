"""Tests for intent-keyed read-only queries."""

import pytest

from processor.events import Event, EventKind, Severity
from processor.pipeline import TelemetryPipeline
from processor.queries import (
    BACKEND_ERROR_MESSAGE,
    NO_DATA_MESSAGE,
    READ_ONLY_MESSAGE,
    UNSUPPORTED_MESSAGE,
    QueryIntent,
    QueryRunner,
    format_rows,
    is_modification,
)
from simulator.schemas import AnomalyPrediction, Zone
from storage.backend import BackendError, Table


@pytest.fixture
def pipeline(context, clock):
    return TelemetryPipeline(context, clock=clock)


@pytest.fixture
def runner(pipeline):
    return QueryRunner(pipeline)


class TestQueryIntent:
    @pytest.mark.parametrize(
        "label,expected",
        [
            ("latest_readings", QueryIntent.LATEST_READINGS),
            ("Zone Averages", QueryIntent.ZONE_AVERAGES),
            ("popular-dishes", QueryIntent.POPULAR_DISHES),
            ("  anomalies ", QueryIntent.ANOMALIES),
            ("weather_forecast", QueryIntent.UNSUPPORTED),
            ("", QueryIntent.UNSUPPORTED),
            (None, QueryIntent.UNSUPPORTED),
        ],
    )
    def test_from_label(self, label, expected):
        assert QueryIntent.from_label(label) is expected

    def test_only_stored_data_reads_backend(self):
        assert {i for i in QueryIntent if i.reads_backend} == {
            QueryIntent.POPULAR_DISHES,
            QueryIntent.RECENT_ORDERS,
            QueryIntent.ANOMALIES,
        }


class TestModificationGuard:
    def test_keywords_detected(self):
        assert is_modification("Please DELETE all orders")
        assert is_modification("drop table iot_data")

    def test_words_containing_keywords_allowed(self):
        assert not is_modification("show the updated readings")
        assert not is_modification("what was created today")
        assert not is_modification(None)

    def test_runner_refuses_modifications(self, runner):
        result = runner.run("latest_readings", question="update the temperature")
        assert result.message == READ_ONLY_MESSAGE
        assert result.rows == []


class TestFormatRows:
    def test_empty(self):
        assert format_rows([]) == NO_DATA_MESSAGE

    def test_truncates_to_ten(self):
        text = format_rows([{"n": i} for i in range(13)])
        assert text.startswith("Here's what I found:")
        assert "10. n: 9" in text
        assert "11. n: 10" not in text
        assert text.endswith("... and 3 more results")


class TestQueryRunner:
    def test_unsupported(self, runner):
        result = runner.run("weather")
        assert result.intent is QueryIntent.UNSUPPORTED
        assert result.message == UNSUPPORTED_MESSAGE

    def test_latest_readings(self, runner, pipeline, make_sample):
        pipeline.store.append(make_sample(timestamp=1.0))
        pipeline.store.append(make_sample(timestamp=2.0, temperature=30.0))
        result = runner.run("latest_readings", limit=1)
        assert len(result.rows) == 1
        assert result.rows[0]["temperature"] == 30.0
        assert result.to_dict()["intent"] == "latest_readings"

    def test_zone_averages(self, runner, pipeline, make_sample):
        pipeline.store.append(make_sample(zone=Zone.ZONE04, temperature=30.0))
        rows = runner.run("zone_averages").rows
        assert len(rows) == 4
        store_row = next(r for r in rows if r["zone"] == "Zone04")
        assert store_row["temperature"] == 30.0
        assert store_row["samples"] == 1

    def test_active_alerts(self, runner, pipeline):
        pipeline.dispatcher.dispatch(
            Event(EventKind.CONSUMPTION_SPIKE, "consumption_spike", "Spike", "msg", 0.0, Severity.WARNING)
        )
        rows = runner.run("active_alerts").rows
        assert rows[0]["identity"] == "consumption_spike"

    def test_popular_dishes(self, runner, pipeline, clock):
        now = clock() * 1000
        pipeline.backend.insert(Table.FOOD_HISTORY, {"dish_name": "Soup", "timestamp": now - 1, "quantity_consumed": 2})
        pipeline.backend.insert(Table.FOOD_HISTORY, {"dish_name": "Pizza", "timestamp": now - 2, "quantity_consumed": 6})
        rows = runner.run("popular_dishes").rows
        assert rows == [
            {"dish_name": "Pizza", "quantity_consumed": 6},
            {"dish_name": "Soup", "quantity_consumed": 2},
        ]

    def test_anomalies_deduplicated(self, runner, pipeline):
        row = AnomalyPrediction(iot_data_id="s1", zone="Kitchen01", prediction="Anomaly", api_timestamp="t").model_dump()
        pipeline.backend.insert(Table.ANOMALY_DETECTIONS, row)
        pipeline.backend.insert(Table.ANOMALY_DETECTIONS, row)
        assert len(runner.run("anomalies").rows) == 1

    def test_backend_error_message(self, runner, pipeline, monkeypatch):
        def fail(*args, **kwargs):
            raise BackendError("timeout")

        monkeypatch.setattr(pipeline.backend, "select_recent", fail)
        result = runner.run("recent_orders")
        assert result.message == BACKEND_ERROR_MESSAGE
