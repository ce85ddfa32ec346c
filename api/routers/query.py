"""Read-only data questions resolved through the closed query-intent set."""

import asyncio

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.dependencies import get_queries
from processor.queries import QueryIntent, QueryRunner

router = APIRouter(prefix="/api/v1")


class QueryRequest(BaseModel):
    intent: str | None = Field(default=None, description="One of the query intent labels")
    question: str | None = Field(default=None, description="Original free-text question, if any")
    limit: int = Field(default=50, ge=1, le=500)


@router.get("/query/intents")
async def list_intents():
    return [intent.value for intent in QueryIntent if intent is not QueryIntent.UNSUPPORTED]


@router.post("/query")
async def run_query(request: QueryRequest, queries: QueryRunner = Depends(get_queries)):
    # Session state belongs to the event loop; only backend reads go to a worker thread.
    if QueryIntent.from_label(request.intent).reads_backend:
        result = await asyncio.to_thread(queries.run, request.intent, request.question, request.limit)
    else:
        result = queries.run(request.intent, request.question, request.limit)
    return result.to_dict()
