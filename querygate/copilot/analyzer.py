"""
Analysis step -- the expensive, billable part of answering a question.

``Analyzer.analyze`` asks the LLM for a structured answer over a data
source's schema.  ``Analyzer.explain`` produces a short plain-language
explanation of that answer; it is optional decoration, so it is bounded by
a timeout and falls back to a template instead of failing the request.
"""
from __future__ import annotations

import json
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable

from querygate.copilot.llm_client import call_llm
from querygate.copilot.results import AnalysisResult, DataSourceRef
from querygate.core.logging import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*|```")

_ANALYZE_TEMPLATE = """Answer the question using the data source below.

Data source: {name}
Columns: {columns}

Question: "{prompt}"

Reply with JSON only, using the keys:
  "summary" (string), "data" (list of row objects),
  "visualization" (bar | line | pie | table | kpi | mixed),
  "insights" (list of strings)."""

_EXPLAIN_TEMPLATE = """Explain this data query in 2-3 short sentences for a business user.

User asked: "{prompt}"
Data source: {name}
Visualization: {visualization}
Data points: {rows} rows
Key insights: {insights}"""


def _strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


class Analyzer:
    """LLM-backed analysis with a time-boxed explanation.

    Parameters
    ----------
    provider : str, optional
        LLM provider override (defaults to settings).
    explanation_timeout : float
        Seconds to wait for an explanation before using the template.
    llm : callable
        ``(prompt, provider=..., json_mode=..., timeout=...) -> str``; defaults to ``call_llm``.
    """

    def __init__(
        self,
        provider: str | None = None,
        explanation_timeout: float = 3.0,
        llm: Callable[..., str] = call_llm,
    ):
        self.provider = provider
        self.explanation_timeout = explanation_timeout
        self._llm = llm

    def analyze(self, prompt: str, source: DataSourceRef) -> AnalysisResult:
        columns = ", ".join(f"{c} ({t})" for c, t in source.schema_info.items()) or "unknown"
        reply = self._llm(
            _ANALYZE_TEMPLATE.format(name=source.name or source.id, columns=columns, prompt=prompt),
            provider=self.provider,
            json_mode=True,
        )
        cleaned = _strip_fences(reply)
        try:
            return AnalysisResult.model_validate(json.loads(cleaned))
        except ValueError:
            logger.info("LLM reply is not structured JSON -- using it as the summary")
            return AnalysisResult(summary=cleaned)

    def explain(self, prompt: str, source: DataSourceRef, result: AnalysisResult) -> str:
        llm_prompt = _EXPLAIN_TEMPLATE.format(
            prompt=prompt,
            name=source.name or source.id,
            visualization=result.visualization,
            rows=len(result.data),
            insights="; ".join(result.insights) or "none",
        )
        # Fresh single-worker pool per call; an abandoned call finishes on its own thread.
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="explain")
        future = pool.submit(
            self._llm, llm_prompt, provider=self.provider, timeout=self.explanation_timeout,
        )
        pool.shutdown(wait=False)
        try:
            return _strip_fences(future.result(timeout=self.explanation_timeout))
        except FutureTimeout:
            logger.warning("Explanation timed out after %.1fs -- using template", self.explanation_timeout)
        except Exception:
            logger.warning("Explanation failed -- using template", exc_info=True)
        return self.fallback_explanation(source, result)

    @staticmethod
    def fallback_explanation(source: DataSourceRef, result: AnalysisResult) -> str:
        text = (
            f"This query analyzes {source.name or source.id} data as a "
            f"{result.visualization} visualization of {len(result.data)} data points."
        )
        if result.summary:
            text += f" {result.summary}"
        return text
