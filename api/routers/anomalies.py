"""Stored verdicts of the remote anomaly classifier."""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_backend
from processor.classifier import unique_predictions
from storage.backend import BackendError, DataBackend, Table

router = APIRouter(prefix="/api/v1")


@router.get("/anomalies")
async def get_anomalies(
    limit: int = Query(default=50, ge=1, le=500),
    only_anomalies: bool = Query(default=False),
    backend: DataBackend = Depends(get_backend),
):
    """Recent predictions, newest first, with repeated verdicts removed."""
    try:
        rows = await asyncio.to_thread(backend.select_recent, Table.ANOMALY_DETECTIONS, None, None, limit)
    except BackendError as e:
        raise HTTPException(status_code=503, detail=f"Backend unavailable: {e}")
    predictions = unique_predictions(rows)
    if only_anomalies:
        predictions = [p for p in predictions if p.is_anomaly]
    return [p.model_dump(mode="json") for p in predictions]
