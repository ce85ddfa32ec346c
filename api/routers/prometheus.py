"""Prometheus-compatible metrics endpoint."""

import time

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from storage.backend import RedisBackend

router = APIRouter()


def _gauge(name: str, help_text: str, value) -> list[str]:
    return [f"# HELP {name} {help_text}", f"# TYPE {name} gauge", f"{name} {value}", ""]


@router.get("/metrics")
async def prometheus_metrics(request: Request):
    """Expose metrics in Prometheus text exposition format."""
    state = request.app.state
    pipeline = state.pipeline
    stats = pipeline.dispatcher.stats
    uptime = time.time() - state.start_time

    lines = []
    lines += _gauge("websocket_connections_active", "Current WebSocket connections", state.ws_manager.connection_count)
    lines += _gauge("telemetry_store_samples", "Samples held in the session window", len(pipeline.store))
    lines += _gauge("realtime_enabled", "Realtime simulation running (1) or paused (0)", int(pipeline.ticker.is_running))
    lines += _gauge("realtime_ticks_total", "Generation ticks completed", pipeline.ticker.tick_count)
    lines += _gauge("notifications_dispatched_total", "Events forwarded by the dispatcher", stats["dispatched"])
    lines += _gauge("notifications_suppressed_total", "Events dropped as duplicates", stats["suppressed"])
    lines += _gauge("notifications_unread", "Unread visible notifications", pipeline.dispatcher.unread_count)
    lines += _gauge("relay_messages_pending", "WebSocket messages waiting to be broadcast", state.relay.pending)
    lines += _gauge("relay_messages_dropped_total", "WebSocket messages dropped on a full queue", state.relay.dropped)

    backend = state.backend
    if isinstance(backend, RedisBackend):
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        lines += _gauge(
            "redis_circuit_breaker_state",
            "Circuit breaker state (0=closed, 1=open, 2=half_open)",
            state_map.get(backend.circuit_state, 0),
        )

    lines += _gauge("api_uptime_seconds", "Seconds since API start", f"{uptime:.1f}")
    return PlainTextResponse("\n".join(lines), media_type="text/plain; version=0.0.4")
