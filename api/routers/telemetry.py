"""Dashboard endpoints over the in-memory sample window."""

import time

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_pipeline
from processor.aggregator import (
    METRICS,
    group_by_hour,
    group_by_zone,
    latest_summary,
    power_distribution,
    zone_distribution,
)
from processor.pipeline import TelemetryPipeline

router = APIRouter(prefix="/api/v1/telemetry")


@router.get("/samples")
async def get_samples(
    limit: int = Query(default=100, ge=1, le=1000),
    pipeline: TelemetryPipeline = Depends(get_pipeline),
):
    """Most recent samples, newest first."""
    return [s.model_dump(mode="json") for s in pipeline.store.current()[:limit]]


@router.get("/summary")
async def get_summary(pipeline: TelemetryPipeline = Depends(get_pipeline)):
    """Headline cards: latest reading, recent averages, alert count and distributions."""
    samples = pipeline.store.current()
    return {
        **latest_summary(samples),
        "zones": zone_distribution(samples),
        "power": power_distribution(samples),
    }


@router.get("/zones")
async def get_zones(pipeline: TelemetryPipeline = Depends(get_pipeline)):
    return [
        {
            "zone": z.zone.value,
            "label": z.zone.label,
            "count": z.count,
            "averages": z.averages,
            "latest": z.latest.model_dump(mode="json") if z.latest else None,
        }
        for z in group_by_zone(pipeline.store.current())
    ]


@router.get("/hourly")
async def get_hourly(
    metric: str = Query(default="temperature"),
    hours: int = Query(default=24, ge=1, le=168),
    pipeline: TelemetryPipeline = Depends(get_pipeline),
):
    """Per-hour average and total of one metric over the trailing window, oldest first."""
    if metric not in METRICS:
        raise HTTPException(status_code=422, detail=f"Unknown metric '{metric}'. Expected one of {list(METRICS)}")
    buckets = group_by_hour(pipeline.store.current(), hours, time.time() * 1000)
    return [
        {
            "start": b.start,
            "end": b.end,
            "count": b.count,
            "average": b.averages[metric],
            "total": b.totals[metric],
        }
        for b in buckets
    ]


@router.post("/refresh")
async def refresh(pipeline: TelemetryPipeline = Depends(get_pipeline)):
    """Re-fetch recent samples from the backend."""
    added = await pipeline.refresh()
    return {"added": added, "store_size": len(pipeline.store)}
