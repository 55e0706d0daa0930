"""GET /usage/{user_id} and GET /tiers -- quota status for the dashboard."""
from __future__ import annotations

import math
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from querygate.api.deps import get_pipeline
from querygate.copilot.service import QueryPipeline
from querygate.governance.tiers import TIER_LIMITS
from querygate.governance.usage_gate import (
    UsageRecord, days_until_reset, query_status, remaining_queries,
)

router = APIRouter()


class UsageResponse(BaseModel):
    user_id: str
    tier: str
    queries_used: int
    queries_limit: int | None  # None = unbounded
    remaining: int | None
    status: str
    reset_date: datetime
    days_until_reset: int


class TierResponse(BaseModel):
    tier: str
    queries_per_month: int
    max_rollover: int
    max_data_sources: int | None
    max_columns: int
    max_users: int | None
    features: list[str]


def _finite(value: float) -> int | None:
    return None if math.isinf(value) else int(value)


def usage_response(record: UsageRecord) -> UsageResponse:
    return UsageResponse(
        user_id=record.user_id,
        tier=record.tier.value,
        queries_used=record.queries_used,
        queries_limit=_finite(record.queries_limit),
        remaining=_finite(remaining_queries(record)),
        status=query_status(record).value,
        reset_date=record.reset_date,
        days_until_reset=days_until_reset(record),
    )


@router.get("/usage/{user_id}", response_model=UsageResponse)
def usage_endpoint(user_id: str, pipeline: QueryPipeline = Depends(get_pipeline)):
    """Current counters, with any due billing-period reset applied first."""
    pipeline.ledger.reset_if_past_due(user_id)
    return usage_response(pipeline.ledger.get(user_id))


@router.get("/tiers", response_model=list[TierResponse])
def tiers_endpoint():
    return [
        TierResponse(
            tier=tier.value,
            queries_per_month=limits.queries_per_month,
            max_rollover=limits.max_rollover,
            max_data_sources=_finite(limits.max_data_sources),
            max_columns=limits.max_columns,
            max_users=_finite(limits.max_users),
            features=sorted(limits.features),
        )
        for tier, limits in TIER_LIMITS.items()
    ]
