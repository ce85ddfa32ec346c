"""Tests for the structlog configuration helper."""

import pytest
from structlog.testing import capture_logs

from config.logging_config import _active, configure_logging


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    configure_logging("tests", "INFO", "json")


class TestConfigureLogging:
    def test_binds_component_and_context(self):
        log = configure_logging("telemetry-pipeline", "INFO", session="s1")
        with capture_logs() as logs:
            log.info("refresh_ingested", added=2)
        assert logs == [
            {
                "component": "telemetry-pipeline",
                "session": "s1",
                "added": 2,
                "event": "refresh_ingested",
                "log_level": "info",
            }
        ]

    def test_level_filters(self):
        log = configure_logging("redis-client", "WARNING")
        with capture_logs() as logs:
            log.info("redis_pool_created")
            log.warning("redis_retry")
        assert [entry["event"] for entry in logs] == ["redis_retry"]

    def test_loggers_without_settings_keep_active_config(self):
        configure_logging("api", "DEBUG", "console")
        configure_logging("ws-manager")
        assert (_active["level"], _active["format"]) == ("DEBUG", "console")
