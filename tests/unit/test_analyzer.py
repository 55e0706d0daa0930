"""
Unit tests -- analysis step and time-boxed explanations.
"""
import json
import time

import pytest
from querygate.copilot.analyzer import Analyzer
from querygate.copilot.results import AnalysisResult, DataSourceRef

SOURCE = DataSourceRef(
    id="ds_1",
    name="Sales",
    fingerprint="fp_1",
    schema_info={"month": "date", "revenue": "number"},
)

STRUCTURED = {
    "summary": "Revenue peaked in March",
    "data": [{"month": "2025-03", "revenue": 900}],
    "visualization": "bar",
    "insights": ["March is the best month"],
}


def _llm_returning(reply):
    prompts = []

    def llm(prompt, provider=None, **kwargs):
        prompts.append(prompt)
        return reply

    llm.prompts = prompts
    return llm


def test_analyze_parses_json_reply():
    analyzer = Analyzer(llm=_llm_returning(json.dumps(STRUCTURED)))
    result = analyzer.analyze("revenue by month", SOURCE)
    assert result == AnalysisResult(**STRUCTURED)


def test_analyze_strips_code_fences():
    reply = "```json\n" + json.dumps(STRUCTURED) + "\n```"
    result = Analyzer(llm=_llm_returning(reply)).analyze("revenue by month", SOURCE)
    assert result.visualization == "bar"


def test_analyze_prompt_mentions_schema_and_question():
    llm = _llm_returning("{}")
    Analyzer(llm=llm).analyze("revenue by month", SOURCE)
    assert "revenue (number)" in llm.prompts[0]
    assert "revenue by month" in llm.prompts[0]
    assert "Sales" in llm.prompts[0]


def test_analyze_falls_back_to_text_summary():
    result = Analyzer(llm=_llm_returning("Revenue is flat.")).analyze("revenue", SOURCE)
    assert result.summary == "Revenue is flat."
    assert result.data == []


def test_analyze_mock_provider():
    result = Analyzer(provider="mock").analyze("revenue", SOURCE)
    assert result.summary.startswith("[MOCK]")


def test_analyze_provider_error_propagates():
    def broken(prompt, provider=None, **kwargs):
        raise RuntimeError("provider down")

    with pytest.raises(RuntimeError, match="provider down"):
        Analyzer(llm=broken).analyze("revenue", SOURCE)


def test_explain_returns_llm_text():
    explanation = Analyzer(llm=_llm_returning("Shows monthly revenue.")).explain(
        "revenue", SOURCE, AnalysisResult(**STRUCTURED),
    )
    assert explanation == "Shows monthly revenue."


def test_explain_timeout_uses_template():
    def slow(prompt, provider=None, **kwargs):
        time.sleep(0.5)
        return "too late"

    analyzer = Analyzer(llm=slow, explanation_timeout=0.05)
    explanation = analyzer.explain("revenue", SOURCE, AnalysisResult(**STRUCTURED))
    assert "Sales" in explanation
    assert "bar visualization of 1 data points" in explanation


def test_explain_failure_uses_template():
    def broken(prompt, provider=None, **kwargs):
        raise RuntimeError("provider down")

    explanation = Analyzer(llm=broken).explain("revenue", SOURCE, AnalysisResult(summary="Flat."))
    assert explanation.endswith("Flat.")


def test_explain_passes_timeout_to_llm():
    seen = {}

    def llm(prompt, provider=None, **kwargs):
        seen.update(kwargs)
        return "ok"

    Analyzer(llm=llm, explanation_timeout=1.5).explain("revenue", SOURCE, AnalysisResult())
    assert seen["timeout"] == 1.5


def test_fast_explanation_after_slow_ones():
    """Abandoned slow calls must not hold up a later explanation."""
    def slow(prompt, provider=None, **kwargs):
        time.sleep(1.0)
        return "too late"

    def fast(prompt, provider=None, **kwargs):
        return "fast explanation"

    analyzer = Analyzer(llm=slow, explanation_timeout=0.1)
    for _ in range(6):
        assert "Sales" in analyzer.explain("revenue", SOURCE, AnalysisResult())

    analyzer._llm = fast
    analyzer.explanation_timeout = 0.5
    assert analyzer.explain("revenue", SOURCE, AnalysisResult()) == "fast explanation"
