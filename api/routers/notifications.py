"""Notification list (UI toasts) and persisted alert history."""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_backend, get_pipeline
from processor.events import Severity
from processor.pipeline import TelemetryPipeline
from storage.backend import BackendError, DataBackend, Table

router = APIRouter(prefix="/api/v1")

# Persisted events scanned per alerts request; filtering happens before the limit.
ALERT_SCAN_ROWS = 1000


@router.get("/notifications")
async def get_notifications(pipeline: TelemetryPipeline = Depends(get_pipeline)):
    """The most recent notifications with their read flags."""
    dispatcher = pipeline.dispatcher
    return {
        "unread": dispatcher.unread_count,
        "items": [n.to_dict() for n in dispatcher.notifications],
    }


@router.post("/notifications/{identity:path}/read")
async def mark_read(identity: str, pipeline: TelemetryPipeline = Depends(get_pipeline)):
    if not pipeline.dispatcher.mark_read(identity):
        raise HTTPException(status_code=404, detail=f"No visible notification '{identity}'")
    return {"identity": identity, "read": True, "unread": pipeline.dispatcher.unread_count}


@router.delete("/notifications")
async def clear_notifications(pipeline: TelemetryPipeline = Depends(get_pipeline)):
    pipeline.dispatcher.clear()
    return {"cleared": True}


@router.get("/alerts")
async def get_alerts(
    limit: int = Query(default=50, ge=1, le=500),
    backend: DataBackend = Depends(get_backend),
):
    """Recently persisted events of warning severity or above."""
    try:
        rows = await asyncio.to_thread(
            backend.select_recent, Table.DETECTED_EVENTS, None, None, max(limit, ALERT_SCAN_ROWS)
        )
    except BackendError as e:
        raise HTTPException(status_code=503, detail=f"Backend unavailable: {e}")
    alerts = []
    for row in rows:
        severity = Severity.parse(row.get("severity"))
        if severity is not None and severity.at_least(Severity.WARNING):
            alerts.append(row)
    return alerts[:limit]
