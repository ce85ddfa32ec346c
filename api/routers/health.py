"""Health and readiness check endpoints."""

import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_backend
from storage.backend import DataBackend, RedisBackend

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness probe: 200 while the process is alive."""
    return {"status": "ok"}


@router.get("/ready")
async def ready(backend: DataBackend = Depends(get_backend)):
    """Readiness probe: checks backend connectivity."""
    backend_ok = await asyncio.to_thread(backend.ping)
    if not backend_ok:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "backend": "unreachable"},
        )
    body = {"status": "ready", "backend": "connected"}
    if isinstance(backend, RedisBackend):
        body["circuit_breaker"] = backend.circuit_state
    return body
