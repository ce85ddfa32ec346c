"""Realtime simulation toggle and tick interval."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.dependencies import get_pipeline
from processor.pipeline import TelemetryPipeline

router = APIRouter(prefix="/api/v1")


class RealtimeUpdate(BaseModel):
    enabled: bool | None = None
    interval: int | None = None


@router.get("/realtime")
async def get_realtime(pipeline: TelemetryPipeline = Depends(get_pipeline)):
    return pipeline.status()


@router.put("/realtime")
async def update_realtime(update: RealtimeUpdate, pipeline: TelemetryPipeline = Depends(get_pipeline)):
    if update.interval is not None:
        try:
            pipeline.set_interval(update.interval)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
    if update.enabled is not None:
        pipeline.toggle_realtime(update.enabled)
    return pipeline.status()
