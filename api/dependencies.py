"""FastAPI dependency injection."""

from fastapi import Request

from config.context import SessionContext
from processor.pipeline import TelemetryPipeline
from processor.queries import QueryRunner
from storage.backend import DataBackend


def get_backend(request: Request) -> DataBackend:
    return request.app.state.backend


def get_context(request: Request) -> SessionContext:
    return request.app.state.context


def get_pipeline(request: Request) -> TelemetryPipeline:
    return request.app.state.pipeline


def get_queries(request: Request) -> QueryRunner:
    return request.app.state.queries
