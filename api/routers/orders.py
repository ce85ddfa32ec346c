"""Food history endpoints: recent orders and today's dish leaderboard."""

import asyncio
import time
from datetime import datetime, time as dt_time

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_pipeline
from processor.aggregator import dish_popularity
from processor.detector import load_orders
from processor.pipeline import TelemetryPipeline
from storage.backend import BackendError, Table

router = APIRouter(prefix="/api/v1/orders")


@router.get("")
async def get_orders(
    limit: int = Query(default=50, ge=1, le=500),
    pipeline: TelemetryPipeline = Depends(get_pipeline),
):
    try:
        return await asyncio.to_thread(pipeline.backend.select_recent, Table.FOOD_HISTORY, None, None, limit)
    except BackendError as e:
        raise HTTPException(status_code=503, detail=f"Backend unavailable: {e}")


@router.get("/popularity")
async def get_popularity(
    top_n: int = Query(default=10, ge=1, le=50),
    pipeline: TelemetryPipeline = Depends(get_pipeline),
):
    """Dishes ranked by quantity consumed today."""
    now = time.time()
    day = datetime.fromtimestamp(now).date()
    start = datetime.combine(day, dt_time.min).timestamp() * 1000
    try:
        orders = await asyncio.to_thread(load_orders, pipeline.backend, start, now * 1000, pipeline.log)
    except BackendError as e:
        raise HTTPException(status_code=503, detail=f"Backend unavailable: {e}")
    ranking = dish_popularity(orders, day)
    return {
        "day": day.isoformat(),
        "top": ranking[0][0] if ranking else None,
        "dishes": [{"dish_name": dish, "quantity_consumed": qty} for dish, qty in ranking[:top_n]],
    }
