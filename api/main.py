"""FastAPI application factory with lifespan management."""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, configure_logging
from config.context import SessionContext
from processor.classifier import AnomalyClassifier
from processor.pipeline import TelemetryPipeline
from processor.queries import QueryRunner
from storage.backend import create_backend
from api.ws_manager import WebSocketManager, NotificationRelay
from api.routers import (
    anomalies,
    health,
    notifications,
    orders,
    preferences,
    prometheus,
    query,
    realtime,
    telemetry,
    websocket,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    settings: Settings = app.state.settings
    log = configure_logging("api", settings.log_level, settings.log_format)

    # Backend and per-session context
    backend = create_backend(settings)
    context = SessionContext.create(settings, backend)

    # WebSocket fan-out
    ws_manager = WebSocketManager(throttle_ms=settings.ws_throttle_ms)
    relay = NotificationRelay(ws_manager)
    relay_task = asyncio.create_task(relay.run())

    classifier = None
    if settings.classifier_enabled:
        classifier = AnomalyClassifier(settings.classifier_url, timeout=settings.classifier_timeout_sec)

    pipeline = TelemetryPipeline(context, classifier=classifier, platform_notifier=relay.push)
    pipeline.dispatcher.subscribe(relay.on_event)
    pipeline.store.subscribe(relay.on_sample)
    await pipeline.start()

    # Store in app state for dependency injection
    app.state.backend = backend
    app.state.context = context
    app.state.pipeline = pipeline
    app.state.queries = QueryRunner(pipeline)
    app.state.ws_manager = ws_manager
    app.state.relay = relay
    app.state.start_time = time.time()
    log.info("api_started", backend=settings.backend, realtime=settings.realtime_enabled)

    yield

    # Cleanup
    await pipeline.stop()
    relay_task.cancel()
    if classifier is not None:
        classifier.close()
    backend.close()
    log.info("api_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(
        title="TrizzaOne Facility Telemetry API",
        version="1.0.0",
        description="Simulated facility sensor stream with aggregation, detection and live notifications",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(health.router)
    app.include_router(telemetry.router)
    app.include_router(realtime.router)
    app.include_router(notifications.router)
    app.include_router(orders.router)
    app.include_router(anomalies.router)
    app.include_router(query.router)
    app.include_router(preferences.router)
    app.include_router(websocket.router)
    if settings.enable_prometheus:
        app.include_router(prometheus.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
