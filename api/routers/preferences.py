"""Session preferences: push notifications, theme, language, realtime interval."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from api.dependencies import get_context, get_pipeline
from config.context import Preferences, SessionContext, Theme
from processor.pipeline import TelemetryPipeline
from storage.backend import BackendError

router = APIRouter(prefix="/api/v1")


class PreferencesUpdate(BaseModel):
    push_notifications: bool | None = None
    theme: Theme | None = None
    language: str | None = None
    tick_interval_sec: int | None = None


@router.get("/preferences")
async def get_preferences(context: SessionContext = Depends(get_context)):
    return context.preferences.model_dump(mode="json")


@router.put("/preferences")
async def update_preferences(
    update: PreferencesUpdate,
    context: SessionContext = Depends(get_context),
    pipeline: TelemetryPipeline = Depends(get_pipeline),
):
    changes = update.model_dump(exclude_none=True)
    try:
        merged = Preferences.model_validate({**context.preferences.model_dump(), **changes})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if merged.tick_interval_sec != pipeline.ticker.interval:
        try:
            pipeline.set_interval(merged.tick_interval_sec)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

    # Updated in place: the dispatcher holds this same Preferences object.
    for name in changes:
        setattr(context.preferences, name, getattr(merged, name))
    try:
        context.save()
    except BackendError as e:
        raise HTTPException(status_code=503, detail=f"Preferences not saved: {e}")
    return context.preferences.model_dump(mode="json")
