"""POST /ask -- cached, quota-gated natural-language query endpoint."""
from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from querygate.api.deps import background_writes, get_pipeline
from querygate.api.routers.usage import UsageResponse, usage_response
from querygate.copilot.results import AnalysisResult, DataSourceRef
from querygate.copilot.service import QueryPipeline
from querygate.core.logging import get_logger
from querygate.governance.usage_gate import days_until_reset

logger = get_logger(__name__)
router = APIRouter()


class AskRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=2000, description="Natural-language question")
    data_source_id: str = Field(..., min_length=1)
    fingerprint: str | None = Field(None, description="Current content fingerprint of the data source")
    data_source_name: str = ""
    schema_info: dict[str, str] = Field(default_factory=dict)


class AskResponse(BaseModel):
    prompt: str
    data_source_id: str
    cache_key: str
    result: AnalysisResult
    explanation: str | None
    cached: bool
    shared: bool
    billed: bool
    usage: UsageResponse | None  # None when the ledger was unreachable on a cache hit
    latency_ms: int


class CacheStatsResponse(BaseModel):
    ttl_seconds: int
    hits: int
    misses: int
    errors: int
    hit_rate: float


@router.post("", response_model=AskResponse)
def ask_endpoint(
    req: AskRequest,
    background_tasks: BackgroundTasks,
    x_user_id: str = Header(..., min_length=1),
    pipeline: QueryPipeline = Depends(get_pipeline),
    background: bool = Depends(background_writes),
):
    """Answer from cache when possible, otherwise bill one query."""
    source = DataSourceRef(
        id=req.data_source_id,
        name=req.data_source_name,
        fingerprint=req.fingerprint,
        schema_info=req.schema_info,
    )
    try:
        outcome = pipeline.ask(
            x_user_id,
            source,
            req.prompt,
            schedule=background_tasks.add_task if background else None,
        )
    except Exception as exc:
        logger.exception("Pipeline.ask failed")
        raise HTTPException(status_code=500, detail=str(exc))

    if not outcome.allowed:
        return JSONResponse(
            status_code=429,
            content={
                "error": "Query limit reached",
                "message": "You've used all your queries for this month",
                "reset_date": outcome.usage.reset_date.isoformat(),
                "days_until_reset": days_until_reset(outcome.usage),
            },
        )

    return AskResponse(
        prompt=req.prompt,
        data_source_id=req.data_source_id,
        cache_key=outcome.cache_key,
        result=outcome.answer.result,
        explanation=outcome.answer.explanation,
        cached=outcome.cached,
        shared=outcome.shared,
        billed=outcome.billed,
        usage=usage_response(outcome.usage) if outcome.usage is not None else None,
        latency_ms=outcome.latency_ms,
    )


@router.get("/cache/stats", response_model=CacheStatsResponse)
def cache_stats_endpoint(pipeline: QueryPipeline = Depends(get_pipeline)):
    """Return query cache statistics."""
    return CacheStatsResponse(**pipeline.cache.stats())


@router.delete("/cache/{key}")
def cache_delete_endpoint(key: str, pipeline: QueryPipeline = Depends(get_pipeline)):
    """Invalidate one cached answer."""
    pipeline.cache.delete(key)
    return {"deleted": key}
