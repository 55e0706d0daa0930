"""
Result models passed between the analysis step, the cache and the API.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class DataSourceRef(BaseModel):
    """The parts of a data source the query pipeline needs."""

    id: str = Field(..., min_length=1)
    name: str = ""
    fingerprint: str | None = Field(None, description="Changes whenever the source content is replaced")
    schema_info: dict[str, str] = Field(default_factory=dict, description="Column -> type")


class AnalysisResult(BaseModel):
    """Structured answer to a natural-language question."""

    summary: str = ""
    data: list[dict] = Field(default_factory=list)
    visualization: str = "table"  # bar | line | pie | table | kpi | mixed
    insights: list[str] = Field(default_factory=list)


class CachedQueryResult(BaseModel):
    """What the cache stores for a query: the answer plus its explanation."""

    model_config = ConfigDict(frozen=True)

    result: AnalysisResult
    explanation: str | None = None
